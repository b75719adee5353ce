import json

import pytest

from pitchframe.backend.analyzer import analyze_pitch
from pitchframe.backend.errors import RenderError
from pitchframe.backend.models import CATEGORY_LABELS
from pitchframe.backend.report import (
    NOT_AVAILABLE,
    build_chart_data,
    build_report_payload,
    render_report,
    report_download_name,
)


@pytest.fixture
def analysis(strong_pitch):
    return analyze_pitch(strong_pitch)


def test_report_shows_every_score(analysis):
    html = render_report(analysis)
    assert 'id="overall-score"' in html
    assert f"{analysis.overall_score}/100" in html
    for key, label in CATEGORY_LABELS.items():
        assert f'id="score-{key}"' in html
        assert label in html
    assert analysis.summary in html
    for item in analysis.recommendations:
        assert item in html


def test_report_accepts_stored_json(analysis):
    stored = json.loads(analysis.model_dump_json())
    assert render_report(stored) == render_report(analysis)


def test_missing_feedback_renders_placeholder(analysis):
    stored = analysis.model_dump(mode="json")
    stored["category_feedback"] = {"clarity": None}
    assert NOT_AVAILABLE in render_report(stored)


def test_report_escapes_text(analysis):
    html = render_report(analysis.model_copy(update={"summary": "<script>alert(1)</script>"}))
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html


def test_narrative_sections_only_when_present(analysis):
    assert "Market Analysis" not in render_report(analysis)
    html = render_report(analysis.model_copy(update={"market_analysis": "Freight is huge."}))
    assert "Market Analysis" in html
    assert "Freight is huge." in html


@pytest.mark.parametrize("bad", [None, "text", {"overall_score": 70}])
def test_invalid_analysis_cannot_be_rendered(bad):
    with pytest.raises(RenderError):
        render_report(bad)


def test_chart_data_follows_category_order(analysis):
    chart = build_chart_data(analysis)
    assert chart["labels"][0] == "Clarity"
    assert chart["datasets"][0]["data"] == [value for _, value in analysis.scores.items()]


def test_download_names():
    assert report_download_name("deck.pdf") == "deck_analysis.json"
    assert report_download_name(None) == "pitch_analysis.json"


def test_report_payload(analysis):
    payload = build_report_payload("deck.pdf", analysis.timestamp, analysis)
    assert payload["filename"] == "deck.pdf"
    assert payload["upload_date"] == analysis.timestamp.date().isoformat()
    assert payload["analysis"]["overall_score"] == analysis.overall_score
