from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import ValidationError

from .errors import RenderError
from .feedback import score_color
from .models import CATEGORY_KEYS, CATEGORY_LABELS, Analysis


TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
NOT_AVAILABLE = "not available"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def _coerce_analysis(analysis: Union[Analysis, dict, None]) -> Analysis:
    if isinstance(analysis, Analysis):
        return analysis
    if not isinstance(analysis, dict):
        raise RenderError("Analysis must be an object.")
    try:
        return Analysis.model_validate(analysis)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        raise RenderError("Analysis is invalid: " + ", ".join(fields)) from exc


def build_chart_data(analysis: Analysis) -> dict:
    return {
        "labels": [CATEGORY_LABELS[key] for key in CATEGORY_KEYS],
        "datasets": [
            {
                "label": "Score",
                "data": [getattr(analysis.scores, key) for key in CATEGORY_KEYS],
                "backgroundColor": "rgba(102, 126, 234, 0.2)",
                "borderColor": "rgba(102, 126, 234, 1)",
                "borderWidth": 2,
            }
        ],
    }


def render_report(analysis: Union[Analysis, dict]) -> str:
    """Render a self-contained HTML report for a finished analysis."""
    model = _coerce_analysis(analysis)
    categories = [
        {
            "key": key,
            "label": CATEGORY_LABELS[key],
            "score": getattr(model.scores, key),
            "feedback": model.category_feedback.get(key) or NOT_AVAILABLE,
        }
        for key in CATEGORY_KEYS
    ]
    narrative = [
        (label, value)
        for label, value in (
            ("Market Analysis", model.market_analysis),
            ("Competitive Advantage", model.competitive_advantage),
            ("Risk Assessment", model.risk_assessment),
        )
        if value
    ]
    template = _environment.get_template("report.html")
    return template.render(
        analysis=model,
        categories=categories,
        narrative=narrative,
        overall_color=score_color(model.overall_score),
        chart_data=build_chart_data(model),
    )


def report_download_name(filename: Optional[str]) -> str:
    stem = Path(filename or "").stem or "pitch"
    return f"{stem}_analysis.json"


def build_report_payload(
    filename: Optional[str],
    created_at: Optional[datetime],
    analysis: Union[Analysis, dict],
) -> dict:
    model = _coerce_analysis(analysis)
    return {
        "filename": filename or "pitch.txt",
        "upload_date": created_at.date().isoformat() if created_at else None,
        "analysis": model.model_dump(mode="json"),
    }
