import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from pitchframe.backend.analyzer import analyze_pitch
from pitchframe.backend.config import ScoringConfig, ScoringStrategy
from pitchframe.backend.errors import ExternalServiceError
from pitchframe.backend.feedback import GENERIC_STRENGTHS
from pitchframe.backend.llm_client import (
    ExternalServiceScorer,
    parse_json_with_repair,
    validate_analysis_payload,
)


REQUEST = httpx.Request("POST", "https://llm.example/v1/chat/completions")


class FakeCompletions:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=response))])


def fake_client(*responses):
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(responses)))


def bad_request(message):
    return openai.BadRequestError(message, response=httpx.Response(400, request=REQUEST), body=None)


def valid_payload(**overrides):
    payload = {
        "overall_score": 90,
        "scores": {
            "clarity": 85,
            "engagement": 120,
            "market_fit": 10,
            "uniqueness": 70,
            "financial_viability": 64.6,
            "team_strength": 80,
        },
        "feedback": {"clarity": "Crisp.", "engagement": "Lively."},
        "strengths": ["Strong team"],
        "weaknesses": [],
        "recommendations": ["one", "two", "three", "four", "five", "six", "seven"],
        "summary": "A promising pitch.",
        "market_analysis": "Large market.",
        "competitive_advantage": None,
        "risk_assessment": "Execution risk.",
    }
    payload.update(overrides)
    return payload


CONFIG = ScoringConfig(strategy=ScoringStrategy.EXTERNAL, api_key="test-key", max_content_length=12)


def test_payload_scores_are_clamped_and_overall_recomputed():
    analysis = validate_analysis_payload(valid_payload())
    assert analysis.scores.engagement == 100
    assert analysis.scores.market_fit == 30
    assert analysis.scores.financial_viability == 65
    # (85 + 100 + 30 + 70 + 65 + 80) / 6 = 71.67
    assert analysis.overall_score == 72
    assert analysis.scorer == "external"


def test_payload_missing_feedback_becomes_none():
    analysis = validate_analysis_payload(valid_payload())
    assert analysis.category_feedback["clarity"] == "Crisp."
    assert analysis.category_feedback["team_strength"] is None


def test_payload_lists_get_fallbacks_and_cap():
    analysis = validate_analysis_payload(valid_payload(strengths=[]))
    assert analysis.strengths == list(GENERIC_STRENGTHS)
    assert len(analysis.weaknesses) == 2
    assert analysis.recommendations == ["one", "two", "three", "four", "five"]
    assert analysis.market_analysis == "Large market."
    assert analysis.competitive_advantage is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"scores": {"clarity": 80}},
        {"scores": "high"},
        {"summary": ""},
        {"strengths": "great"},
        {"overall_score": "ninety"},
    ],
)
def test_invalid_payloads_are_rejected(overrides):
    with pytest.raises(ExternalServiceError):
        validate_analysis_payload(valid_payload(**overrides))


def test_missing_top_level_key_is_rejected():
    payload = valid_payload()
    del payload["risk_assessment"]
    with pytest.raises(ExternalServiceError, match="risk_assessment"):
        validate_analysis_payload(payload)


def test_json_repair_extracts_object():
    raw = "Sure, here it is:\n" + json.dumps({"a": 1}) + "\nThanks!"
    assert parse_json_with_repair(raw) == {"a": 1}


def test_json_repair_gives_up_on_garbage():
    with pytest.raises(ExternalServiceError):
        parse_json_with_repair("no json at all")
    with pytest.raises(ExternalServiceError):
        parse_json_with_repair("[1, 2]")


def test_scorer_sends_truncated_pitch():
    client = fake_client(json.dumps(valid_payload()))
    analysis = ExternalServiceScorer(CONFIG, client=client).evaluate("0123456789ABCDEFGHIJ")
    call = client.chat.completions.calls[0]
    user_message = call["messages"][1]["content"]
    assert "0123456789AB" in user_message
    assert "0123456789ABC" not in user_message
    assert call["response_format"] == {"type": "json_object"}
    assert analysis.overall_score == 72


def test_scorer_retries_without_unsupported_response_format():
    client = fake_client(bad_request("response_format is not supported"), json.dumps(valid_payload()))
    ExternalServiceScorer(CONFIG, client=client).evaluate("pitch")
    calls = client.chat.completions.calls
    assert len(calls) == 2
    assert "temperature" not in calls[1]


def test_scorer_does_not_retry_other_status_errors():
    client = fake_client(bad_request("invalid model"), json.dumps(valid_payload()))
    with pytest.raises(ExternalServiceError, match="400"):
        ExternalServiceScorer(CONFIG, client=client).evaluate("pitch")
    assert len(client.chat.completions.calls) == 1


def test_scorer_timeout_is_a_service_error():
    client = fake_client(openai.APITimeoutError(request=REQUEST))
    with pytest.raises(ExternalServiceError, match="timed out"):
        ExternalServiceScorer(CONFIG, client=client).evaluate("pitch")


def test_scorer_without_key_fails_before_any_request():
    with pytest.raises(ExternalServiceError, match="PITCHFRAME_LLM_API_KEY"):
        ExternalServiceScorer(ScoringConfig(strategy=ScoringStrategy.EXTERNAL)).evaluate("pitch")


def test_malformed_service_output_falls_back_to_heuristic(financial_text):
    scorer = ExternalServiceScorer(CONFIG, client=fake_client("not json"))
    analysis = analyze_pitch(financial_text, scorer=scorer)
    assert analysis.scorer == "heuristic"
    assert analysis.scores.financial_viability == 100


@pytest.mark.parametrize(
    "original, replacement",
    [
        ('"clarity": 85', '"clarity": NaN'),
        ('"engagement": 120', '"engagement": Infinity'),
        ('"team_strength": 80', '"team_strength": 1e400'),
        ('"overall_score": 90', '"overall_score": -Infinity'),
    ],
)
def test_non_finite_scores_fall_back_to_heuristic(financial_text, original, replacement):
    raw = json.dumps(valid_payload())
    assert original in raw
    client = fake_client(raw.replace(original, replacement))
    analysis = analyze_pitch(financial_text, scorer=ExternalServiceScorer(CONFIG, client=client))
    assert analysis.scorer == "heuristic"
    assert analysis.scores.financial_viability == 100


def test_non_finite_score_is_a_service_error():
    scores = dict(valid_payload()["scores"], clarity=float("inf"))
    with pytest.raises(ExternalServiceError, match="finite"):
        validate_analysis_payload(valid_payload(scores=scores))
