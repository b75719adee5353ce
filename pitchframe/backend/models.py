from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import MAX_CATEGORY_SCORE, MIN_CATEGORY_SCORE
from .errors import InvalidStatusTransition


CATEGORY_KEYS = (
    "clarity",
    "engagement",
    "market_fit",
    "uniqueness",
    "financial_viability",
    "team_strength",
)

CATEGORY_LABELS = {
    "clarity": "Clarity",
    "engagement": "Engagement",
    "market_fit": "Market Fit",
    "uniqueness": "Uniqueness",
    "financial_viability": "Financial Viability",
    "team_strength": "Team Strength",
}

CategoryScore = Annotated[int, Field(ge=MIN_CATEGORY_SCORE, le=MAX_CATEGORY_SCORE)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PitchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (PitchStatus.COMPLETED, PitchStatus.ERROR)


ALLOWED_TRANSITIONS = {
    PitchStatus.PENDING: {PitchStatus.PROCESSING, PitchStatus.ANALYZING, PitchStatus.ERROR},
    PitchStatus.PROCESSING: {PitchStatus.ANALYZING, PitchStatus.ERROR},
    PitchStatus.ANALYZING: {PitchStatus.COMPLETED, PitchStatus.ERROR},
    PitchStatus.COMPLETED: set(),
    PitchStatus.ERROR: set(),
}


def ensure_transition(current, new) -> PitchStatus:
    current_status = PitchStatus(current)
    new_status = PitchStatus(new)
    if new_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidStatusTransition(
            f"Cannot move pitch from {current_status.value} to {new_status.value}."
        )
    return new_status


@dataclass(frozen=True)
class FeatureSet:
    word_count: int
    sentence_count: int
    avg_words_per_sentence: float
    lowercase_text: str
    keyword_hits: Mapping[str, bool] = field(default_factory=dict)

    def has(self, keyword: str) -> bool:
        if keyword in self.keyword_hits:
            return self.keyword_hits[keyword]
        return keyword in self.lowercase_text

    def has_any(self, *keywords: str) -> bool:
        return any(self.has(keyword) for keyword in keywords)

    def has_all(self, *keywords: str) -> bool:
        return all(self.has(keyword) for keyword in keywords)


class CategoryScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    clarity: CategoryScore
    engagement: CategoryScore
    market_fit: CategoryScore
    uniqueness: CategoryScore
    financial_viability: CategoryScore
    team_strength: CategoryScore

    def items(self) -> List[tuple]:
        return [(key, getattr(self, key)) for key in CATEGORY_KEYS]


class Analysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_score: CategoryScore
    scores: CategoryScores
    category_feedback: Dict[str, Optional[str]] = Field(default_factory=dict)
    strengths: List[str]
    weaknesses: List[str]
    recommendations: List[str] = Field(max_length=5)
    summary: str
    market_analysis: Optional[str] = None
    competitive_advantage: Optional[str] = None
    risk_assessment: Optional[str] = None
    scorer: str = "heuristic"
    timestamp: datetime = Field(default_factory=utc_now)


@dataclass
class PitchRecord:
    pitch_id: str
    created_at: datetime
    updated_at: datetime
    status: str
    user_id: Optional[str] = None
    filename: Optional[str] = None
    source: str = "text"
    text_excerpt: str = ""
    analysis: Optional[dict] = None
    report_uri: Optional[str] = None
    error: Optional[str] = None
    parent_pitch_id: Optional[str] = None


class AnalyzeTextRequest(BaseModel):
    text: str


class CreatePitchResponse(BaseModel):
    pitch_id: str
    status: str


class PitchStatusResponse(BaseModel):
    pitch_id: str
    status: str
    user_id: Optional[str]
    filename: Optional[str]
    source: str
    text_excerpt: str
    created_at: datetime
    updated_at: datetime
    analysis: Optional[Analysis]
    report_uri: Optional[str] = None
    parent_pitch_id: Optional[str] = None
    error: Optional[str]


class PitchListItem(BaseModel):
    pitch_id: str
    status: str
    filename: Optional[str]
    created_at: datetime
    overall_score: Optional[int] = None
    top_recommendations: List[str] = Field(default_factory=list)


class ReportUrlResponse(BaseModel):
    pitch_id: str
    signed_url: str
    expires_in_seconds: int
