from __future__ import annotations

import json
import logging
import math
from typing import Any, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from .config import ScoringConfig
from .constants import MAX_ERROR_CHARS
from .errors import ExternalServiceError
from .feedback import apply_list_fallbacks, compute_overall_score
from .models import CATEGORY_KEYS, Analysis, CategoryScores
from .prompts.analysis import SYSTEM_PROMPT, build_user_prompt
from .scoring import clamp_score


logger = logging.getLogger("uvicorn.error")
NARRATIVE_KEYS = ("market_analysis", "competitive_advantage", "risk_assessment")


def _truncate(text: str, max_chars: int = MAX_ERROR_CHARS) -> str:
    value = (text or "").strip()
    if len(value) <= max_chars:
        return value
    return value[: max_chars - 3] + "..."


def _extract_content(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts: list[str] = []
        for item in value:
            if isinstance(item, dict):
                text = item.get("text")
                if text:
                    parts.append(str(text))
        return "\n".join(parts).strip()
    return str(value or "").strip()


def _status_message(exc: APIStatusError) -> str:
    return (getattr(exc, "message", "") or str(exc)).lower()


def _unsupported_response_format(exc: APIStatusError) -> bool:
    message = _status_message(exc)
    return "response_format" in message or "json_object" in message


def _unsupported_temperature(exc: APIStatusError) -> bool:
    message = _status_message(exc)
    return "temperature" in message and "default (1)" in message


def parse_json_with_repair(raw_content: str) -> dict:
    try:
        parsed = json.loads(raw_content)
    except json.JSONDecodeError:
        start = raw_content.find("{")
        end = raw_content.rfind("}")
        if start == -1 or end <= start:
            raise ExternalServiceError("Scoring service output is not valid JSON.")
        try:
            parsed = json.loads(raw_content[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ExternalServiceError(
                "Scoring service output could not be repaired into valid JSON."
            ) from exc

    if not isinstance(parsed, dict):
        raise ExternalServiceError("Scoring service JSON root must be an object.")
    return parsed


def _validate_score(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ExternalServiceError(f"{field} must be a number.")
    if not math.isfinite(value):
        raise ExternalServiceError(f"{field} must be a finite number.")
    return clamp_score(round(value))


def _validate_string_list(value: Any, field: str) -> list[str]:
    if not isinstance(value, list):
        raise ExternalServiceError(f"{field} must be an array of strings.")
    cleaned: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise ExternalServiceError(f"{field}[{index}] must be a string.")
        if item.strip():
            cleaned.append(item.strip())
    return cleaned


def _optional_string(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ExternalServiceError(f"{field} must be a string.")
    return value.strip() or None


def validate_analysis_payload(payload: dict, *, scorer: str = "external") -> Analysis:
    missing = [
        key
        for key in (
            "overall_score",
            "scores",
            "feedback",
            "strengths",
            "weaknesses",
            "recommendations",
            "summary",
            *NARRATIVE_KEYS,
        )
        if key not in payload
    ]
    if missing:
        raise ExternalServiceError(
            "Scoring service JSON is missing keys: " + ", ".join(missing) + "."
        )

    raw_scores = payload.get("scores")
    if not isinstance(raw_scores, dict):
        raise ExternalServiceError("scores must be an object.")
    missing_scores = [key for key in CATEGORY_KEYS if key not in raw_scores]
    if missing_scores:
        raise ExternalServiceError("scores is missing categories: " + ", ".join(missing_scores) + ".")
    scores = CategoryScores(
        **{key: _validate_score(raw_scores[key], f"scores.{key}") for key in CATEGORY_KEYS}
    )
    # The reported overall score is only checked for shape; the stored value
    # is always the rounded mean of the category scores.
    _validate_score(payload.get("overall_score"), "overall_score")

    raw_feedback = payload.get("feedback")
    if not isinstance(raw_feedback, dict):
        raise ExternalServiceError("feedback must be an object.")
    category_feedback = {
        key: _optional_string(raw_feedback.get(key), f"feedback.{key}") for key in CATEGORY_KEYS
    }

    summary = _optional_string(payload.get("summary"), "summary")
    if not summary:
        raise ExternalServiceError("summary must be a non-empty string.")

    strengths, weaknesses, recommendations = apply_list_fallbacks(
        _validate_string_list(payload.get("strengths"), "strengths"),
        _validate_string_list(payload.get("weaknesses"), "weaknesses"),
        _validate_string_list(payload.get("recommendations"), "recommendations"),
    )

    narrative = {key: _optional_string(payload.get(key), key) for key in NARRATIVE_KEYS}
    return Analysis(
        overall_score=compute_overall_score(scores),
        scores=scores,
        category_feedback=category_feedback,
        strengths=strengths,
        weaknesses=weaknesses,
        recommendations=recommendations,
        summary=summary,
        scorer=scorer,
        **narrative,
    )


class ExternalServiceScorer:
    """Scores a pitch through an OpenAI-compatible chat completions API.

    The SDK's own retries are disabled and the request is bounded by
    ``config.timeout_seconds``. Any failure surfaces as
    ``ExternalServiceError`` so the caller can fall back to the heuristic
    scorer.
    """

    name = "external"

    def __init__(self, config: ScoringConfig, client: Any = None) -> None:
        self._config = config
        self._client = client

    def _build_client(self) -> OpenAI:
        if not self._config.api_key:
            raise ExternalServiceError(
                "Missing PITCHFRAME_LLM_API_KEY. Set it or use the heuristic scoring strategy."
            )
        return OpenAI(
            base_url=self._config.base_url,
            api_key=self._config.api_key,
            timeout=self._config.timeout_seconds,
            max_retries=0,
        )

    def _request_content(self, text: str) -> str:
        client = self._client or self._build_client()
        base_kwargs = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(text, self._config.max_content_length)},
            ],
            "max_tokens": 1500,
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
        }

        # Parameter variants are only retried when the provider rejects one of them.
        attempts = [
            dict(base_kwargs),
            {k: v for k, v in base_kwargs.items() if k != "temperature"},
            {k: v for k, v in base_kwargs.items() if k != "response_format"},
            {k: v for k, v in base_kwargs.items() if k not in {"temperature", "response_format"}},
        ]
        last_status_error: Optional[APIStatusError] = None

        for kwargs in attempts:
            try:
                response = client.chat.completions.create(**kwargs)
            except APIStatusError as exc:
                last_status_error = exc
                if _unsupported_response_format(exc) or _unsupported_temperature(exc):
                    continue
                status_code = getattr(exc, "status_code", None)
                detail = _truncate(getattr(exc, "message", None) or str(exc))
                raise ExternalServiceError(
                    f"Scoring service request failed ({status_code}): {detail}"
                ) from exc
            except APITimeoutError as exc:
                raise ExternalServiceError(
                    f"Scoring service timed out after {self._config.timeout_seconds:g} seconds."
                ) from exc
            except APIConnectionError as exc:
                raise ExternalServiceError(f"Failed to connect to scoring service: {exc}") from exc
            except Exception as exc:
                raise ExternalServiceError(f"Unexpected scoring service error: {exc}") from exc

            choice = response.choices[0] if getattr(response, "choices", None) else None
            if choice is None:
                raise ExternalServiceError("Scoring service response did not contain choices.")
            content = _extract_content(choice.message.content)
            if not content:
                raise ExternalServiceError("Scoring service returned empty content.")
            return content

        detail = _truncate(getattr(last_status_error, "message", None) or str(last_status_error))
        raise ExternalServiceError(f"Scoring service rejected every request variant: {detail}")

    def evaluate(self, text: str) -> Analysis:
        raw_content = self._request_content(text)
        analysis = validate_analysis_payload(parse_json_with_repair(raw_content), scorer=self.name)
        logger.info(
            "external_scoring_done model=%s overall_score=%s",
            self._config.model,
            analysis.overall_score,
        )
        return analysis
