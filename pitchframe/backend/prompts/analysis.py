ANALYSIS_PROMPT_VERSION = "a1_v2"

SYSTEM_PROMPT = (
    "You are an experienced startup investor reviewing written pitches. "
    "Score only what the text supports; if information is missing, score it low. "
    "Return ONLY valid JSON. No markdown. No code fences. No extra text. "
    "Use double quotes for all JSON strings."
)

USER_PROMPT_TEMPLATE = """Analyze this pitch text and provide a comprehensive evaluation.

Pitch Text:
<<<{pitch_text}>>>

Return a JSON object with exactly these keys:

{
  "overall_score": integer(30-100),
  "scores": {
    "clarity": integer(30-100),
    "engagement": integer(30-100),
    "market_fit": integer(30-100),
    "uniqueness": integer(30-100),
    "financial_viability": integer(30-100),
    "team_strength": integer(30-100)
  },
  "feedback": {
    "clarity": string,
    "engagement": string,
    "market_fit": string,
    "uniqueness": string,
    "financial_viability": string,
    "team_strength": string
  },
  "strengths": string[1-6],
  "weaknesses": string[1-6],
  "recommendations": string[1-5],
  "summary": string,
  "market_analysis": string,
  "competitive_advantage": string,
  "risk_assessment": string
}

Each feedback value is one sentence explaining the matching score.
"""


def build_user_prompt(pitch_text: str, max_chars: int) -> str:
    excerpt = (pitch_text or "").strip()[:max_chars]
    return USER_PROMPT_TEMPLATE.replace("{pitch_text}", excerpt)
