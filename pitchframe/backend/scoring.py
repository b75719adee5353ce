from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple

from .constants import BASE_CATEGORY_SCORE, MAX_CATEGORY_SCORE, MIN_CATEGORY_SCORE
from .features import extract_features
from .feedback import build_analysis
from .models import CATEGORY_KEYS, Analysis, CategoryScores, FeatureSet


@dataclass(frozen=True)
class ScoringRule:
    category: str
    delta: int
    any_of: Tuple[str, ...] = ()
    all_of: Tuple[str, ...] = ()
    when: Optional[Callable[[FeatureSet], bool]] = None

    def applies(self, features: FeatureSet) -> bool:
        if self.when is not None:
            return self.when(features)
        if self.all_of:
            return features.has_all(*self.all_of)
        return features.has_any(*self.any_of)


SCORING_RULES = (
    ScoringRule("clarity", 15, when=lambda f: f.avg_words_per_sentence < 25),
    ScoringRule("clarity", -10, when=lambda f: f.avg_words_per_sentence > 40),
    ScoringRule("clarity", 10, any_of=("clearly", "simple")),
    ScoringRule("clarity", -5, any_of=("complex", "complicated")),
    ScoringRule("engagement", 15, any_of=("exciting", "innovative")),
    ScoringRule("engagement", 20, any_of=("revolutionary", "breakthrough")),
    ScoringRule("engagement", 10, any_of=("passion", "vision")),
    ScoringRule("engagement", 5, when=lambda f: f.word_count > 200),
    ScoringRule("market_fit", 15, any_of=("market", "customer")),
    ScoringRule("market_fit", 10, any_of=("target audience", "demand")),
    ScoringRule("market_fit", 15, all_of=("problem", "solution")),
    ScoringRule("market_fit", 10, any_of=("market size", "opportunity")),
    ScoringRule("uniqueness", 15, any_of=("unique", "innovative")),
    ScoringRule("uniqueness", 20, any_of=("patent", "proprietary")),
    ScoringRule("uniqueness", 10, any_of=("first", "only")),
    ScoringRule("uniqueness", 15, any_of=("competitive advantage",)),
    ScoringRule("financial_viability", 15, any_of=("revenue", "profit")),
    ScoringRule("financial_viability", 10, any_of=("funding", "investment")),
    ScoringRule("financial_viability", 15, any_of=("business model", "monetization")),
    ScoringRule("financial_viability", 10, any_of=("roi", "return")),
    ScoringRule("financial_viability", 10, any_of=("$", "million", "billion")),
    ScoringRule("team_strength", 10, any_of=("team", "founder")),
    ScoringRule("team_strength", 15, any_of=("experience", "expertise")),
    ScoringRule("team_strength", 10, any_of=("background", "qualification")),
    ScoringRule("team_strength", 5, any_of=("advisor", "mentor")),
)


def clamp_score(value) -> int:
    return max(MIN_CATEGORY_SCORE, min(MAX_CATEGORY_SCORE, int(value)))


def score_content(features: FeatureSet) -> CategoryScores:
    totals = {key: BASE_CATEGORY_SCORE for key in CATEGORY_KEYS}
    for rule in SCORING_RULES:
        if rule.applies(features):
            totals[rule.category] += rule.delta
    return CategoryScores(**{key: clamp_score(value) for key, value in totals.items()})


class PitchScorer(Protocol):
    name: str

    def evaluate(self, text: str) -> Analysis:
        pass


class HeuristicScorer:
    name = "heuristic"

    def evaluate(self, text: str) -> Analysis:
        scores = score_content(extract_features(text))
        return build_analysis(scores, scorer=self.name)


class MockScorer:
    """Random category scores in steps of ten between 50 and 100.

    Only for demos and tests; pass a seeded ``random.Random`` to make it
    reproducible.
    """

    name = "mock"

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def evaluate(self, text: str) -> Analysis:
        del text
        scores = CategoryScores(
            **{key: self._rng.randint(5, 10) * 10 for key in CATEGORY_KEYS}
        )
        return build_analysis(scores, scorer=self.name)
