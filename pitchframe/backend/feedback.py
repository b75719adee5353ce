from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .constants import MAX_RECOMMENDATIONS, STRENGTH_THRESHOLD, WEAKNESS_THRESHOLD
from .models import CATEGORY_KEYS, Analysis, CategoryScores


STRENGTH_SENTENCES = {
    "clarity": "Clear and well-structured presentation",
    "engagement": "Engaging and compelling narrative",
    "market_fit": "Strong market understanding and customer focus",
    "uniqueness": "Clear differentiation and unique value proposition",
    "financial_viability": "Solid financial planning and business model",
    "team_strength": "Strong team and relevant experience",
}

WEAKNESS_SENTENCES = {
    "clarity": "Could improve clarity and simplicity of messaging",
    "engagement": "Needs more compelling and engaging content",
    "market_fit": "Limited market research and customer validation",
    "uniqueness": "Unclear competitive advantage and differentiation",
    "financial_viability": "Insufficient financial planning and projections",
    "team_strength": "Limited team information and experience details",
}

RECOMMENDATION_SENTENCES = {
    "clarity": "Simplify language and use shorter sentences",
    "engagement": "Add more exciting and innovative language",
    "market_fit": "Include more market data and customer insights",
    "uniqueness": "Clearly define what makes your solution unique",
    "financial_viability": "Add detailed financial models and revenue projections",
    "team_strength": "Highlight team expertise and relevant background",
}

GENERIC_STRENGTHS = (
    "Good overall structure and business terminology",
    "Comprehensive coverage of key pitch elements",
)

GENERIC_WEAKNESSES = (
    "Could benefit from more specific metrics and data",
    "Consider adding more detailed market research",
)

GENERIC_RECOMMENDATIONS = (
    "Add more data-driven insights and metrics",
    "Include competitive analysis and market positioning",
    "Provide more detailed financial projections",
)

# high: score >= 75, medium: 60-74, low: below 60
CATEGORY_FEEDBACK = {
    "clarity": {
        "high": "The message is easy to follow and sentences are kept short.",
        "medium": "The message is understandable but some passages could be tighter.",
        "low": "Long or convoluted sentences make the core message hard to follow.",
    },
    "engagement": {
        "high": "The pitch conveys energy and a compelling vision.",
        "medium": "The pitch is informative but could carry more conviction.",
        "low": "The pitch reads flat and gives investors little reason to lean in.",
    },
    "market_fit": {
        "high": "The problem, the customer and the size of the opportunity are well framed.",
        "medium": "The market is mentioned but demand and target customers need more evidence.",
        "low": "There is little evidence of who the customer is or how large the market is.",
    },
    "uniqueness": {
        "high": "The differentiation is explicit and appears defensible.",
        "medium": "Some differentiation is implied but the competitive edge is not spelled out.",
        "low": "It is unclear what sets this solution apart from alternatives.",
    },
    "financial_viability": {
        "high": "Revenue model and financial ambition are concrete.",
        "medium": "The business model is outlined but numbers and projections are thin.",
        "low": "The pitch does not explain how the business will make money.",
    },
    "team_strength": {
        "high": "The team's experience and credentials come through clearly.",
        "medium": "The team is introduced but relevant experience is only lightly covered.",
        "low": "The pitch says little about who is building the company.",
    },
}


@dataclass(frozen=True)
class Feedback:
    overall_score: int
    summary: str
    category_feedback: Dict[str, Optional[str]] = field(default_factory=dict)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def compute_overall_score(scores: CategoryScores) -> int:
    """Mean of the six category scores, rounded half up."""
    total = sum(value for _, value in scores.items())
    count = len(CATEGORY_KEYS)
    return (2 * total + count) // (2 * count)


def score_tier(score: int) -> str:
    if score >= STRENGTH_THRESHOLD:
        return "high"
    if score < WEAKNESS_THRESHOLD:
        return "low"
    return "medium"


def score_color(score: int) -> str:
    if score >= 80:
        return "#4CAF50"
    if score >= 60:
        return "#FF9800"
    return "#F44336"


def build_summary(overall_score: int) -> str:
    if overall_score >= 70:
        descriptor = "strong"
    elif overall_score >= 50:
        descriptor = "moderate"
    else:
        descriptor = "potential for improvement in"

    if overall_score >= 70:
        closing = "The content demonstrates good understanding of key business concepts."
    else:
        closing = "Consider focusing on the areas identified for improvement to strengthen your pitch."

    return (
        f"This pitch shows {descriptor} potential with an overall score of "
        f"{overall_score}/100. {closing}"
    )


def apply_list_fallbacks(
    strengths: List[str],
    weaknesses: List[str],
    recommendations: List[str],
) -> tuple[List[str], List[str], List[str]]:
    strengths = list(strengths) or list(GENERIC_STRENGTHS)
    weaknesses = list(weaknesses) or list(GENERIC_WEAKNESSES)
    recommendations = list(recommendations) or list(GENERIC_RECOMMENDATIONS)
    return strengths, weaknesses, recommendations[:MAX_RECOMMENDATIONS]


def synthesize_feedback(scores: CategoryScores) -> Feedback:
    strengths: List[str] = []
    weaknesses: List[str] = []
    recommendations: List[str] = []
    category_feedback: Dict[str, Optional[str]] = {}

    for key, value in scores.items():
        category_feedback[key] = CATEGORY_FEEDBACK[key][score_tier(value)]
        if value >= STRENGTH_THRESHOLD:
            strengths.append(STRENGTH_SENTENCES[key])
        if value < WEAKNESS_THRESHOLD:
            weaknesses.append(WEAKNESS_SENTENCES[key])
            recommendations.append(RECOMMENDATION_SENTENCES[key])

    strengths, weaknesses, recommendations = apply_list_fallbacks(
        strengths, weaknesses, recommendations
    )
    overall_score = compute_overall_score(scores)
    return Feedback(
        overall_score=overall_score,
        summary=build_summary(overall_score),
        category_feedback=category_feedback,
        strengths=strengths,
        weaknesses=weaknesses,
        recommendations=recommendations,
    )


def build_analysis(scores: CategoryScores, *, scorer: str) -> Analysis:
    feedback = synthesize_feedback(scores)
    return Analysis(
        overall_score=feedback.overall_score,
        scores=scores,
        category_feedback=feedback.category_feedback,
        strengths=feedback.strengths,
        weaknesses=feedback.weaknesses,
        recommendations=feedback.recommendations,
        summary=feedback.summary,
        scorer=scorer,
    )
