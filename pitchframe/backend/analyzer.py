from __future__ import annotations

import logging
import random
from typing import Optional

from .config import ScoringConfig, ScoringStrategy
from .errors import EmptyInputError, ExternalServiceError
from .llm_client import ExternalServiceScorer
from .models import Analysis
from .scoring import HeuristicScorer, MockScorer, PitchScorer


logger = logging.getLogger("uvicorn.error")


def build_scorer(config: ScoringConfig) -> PitchScorer:
    if config.strategy == ScoringStrategy.EXTERNAL:
        return ExternalServiceScorer(config)
    if config.strategy == ScoringStrategy.MOCK:
        rng = random.Random(config.mock_seed) if config.mock_seed is not None else None
        return MockScorer(rng)
    return HeuristicScorer()


def analyze_pitch(
    text: Optional[str],
    config: Optional[ScoringConfig] = None,
    *,
    scorer: Optional[PitchScorer] = None,
) -> Analysis:
    """Score a pitch and produce its complete analysis.

    Empty input is rejected before any scoring. When the selected scorer
    talks to an external service and that call fails, the heuristic scorer
    runs once in its place.
    """
    if text is None or not text.strip():
        raise EmptyInputError("No text provided for analysis.")

    active = scorer or build_scorer(config or ScoringConfig())
    try:
        return active.evaluate(text)
    except ExternalServiceError as exc:
        logger.warning(
            "scoring_fallback scorer=%s fallback=heuristic error=%s",
            active.name,
            exc,
        )
        return HeuristicScorer().evaluate(text)
