import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .constants import DEFAULT_ANALYSIS_TIMEOUT_SECONDS, DEFAULT_MAX_CONTENT_LENGTH


DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


class ScoringStrategy(str, Enum):
    HEURISTIC = "heuristic"
    EXTERNAL = "external"
    MOCK = "mock"


@dataclass(frozen=True)
class ScoringConfig:
    strategy: ScoringStrategy = ScoringStrategy.HEURISTIC
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    timeout_seconds: float = DEFAULT_ANALYSIS_TIMEOUT_SECONDS
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH
    mock_seed: Optional[int] = None

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        raw_strategy = os.getenv("PITCHFRAME_SCORING_STRATEGY", "heuristic").strip().lower()
        try:
            strategy = ScoringStrategy(raw_strategy or "heuristic")
        except ValueError as exc:
            raise RuntimeError(
                f"Unknown PITCHFRAME_SCORING_STRATEGY {raw_strategy!r}. "
                "Use heuristic, external or mock."
            ) from exc

        raw_seed = os.getenv("PITCHFRAME_MOCK_SEED", "").strip()
        return cls(
            strategy=strategy,
            api_key=os.getenv("PITCHFRAME_LLM_API_KEY", "").strip() or None,
            base_url=os.getenv("PITCHFRAME_LLM_BASE_URL", DEFAULT_BASE_URL).strip() or DEFAULT_BASE_URL,
            model=os.getenv("PITCHFRAME_LLM_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL,
            timeout_seconds=float(
                os.getenv("PITCHFRAME_LLM_TIMEOUT_SECONDS", str(DEFAULT_ANALYSIS_TIMEOUT_SECONDS))
            ),
            max_content_length=int(
                os.getenv("PITCHFRAME_MAX_CONTENT_LENGTH", str(DEFAULT_MAX_CONTENT_LENGTH))
            ),
            mock_seed=int(raw_seed) if raw_seed else None,
        )
