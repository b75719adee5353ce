from pathlib import Path

import pytest
from pptx import Presentation
from pptx.util import Inches

from pitchframe.backend.storage import InMemoryPitchStore


FINANCIAL_TEXT = (
    "Our revenue doubled last year. New funding supports a proven business model "
    "with strong ROI and a $2 million pipeline."
)

STRONG_PITCH = (
    "We are a founder team with deep experience in logistics software. "
    "Our customer is the mid-size freight carrier and the market size is large. "
    "The problem is idle trucks and our solution is a proprietary routing engine. "
    "This is an exciting and innovative product with a clear competitive advantage. "
    "We earn revenue through a subscription business model and seek funding of $3 million."
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in (
        "DATABASE_URL",
        "PITCHFRAME_REPORTS_BUCKET",
        "PITCHFRAME_SCORING_STRATEGY",
        "PITCHFRAME_LLM_API_KEY",
        "PITCHFRAME_MOCK_SEED",
        "GOOGLE_APPLICATION_CREDENTIALS",
        "GOOGLE_APPLICATION_CREDENTIALS_B64",
        "GOOGLE_APPLICATION_CREDENTIALS_JSON",
        "GCP_PROJECT_ID",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store() -> InMemoryPitchStore:
    return InMemoryPitchStore()


def build_pptx(path: Path) -> Path:
    presentation = Presentation()
    first = presentation.slides.add_slide(presentation.slide_layouts[5])
    first.shapes.title.text = "Acme Routing"
    box = first.shapes.add_textbox(Inches(1), Inches(2), Inches(6), Inches(1))
    box.text_frame.text = "Our team of founders has ten years of experience."
    second = presentation.slides.add_slide(presentation.slide_layouts[5])
    second.shapes.title.text = "Revenue comes from a subscription business model."
    presentation.slides.add_slide(presentation.slide_layouts[6])
    path.parent.mkdir(parents=True, exist_ok=True)
    presentation.save(str(path))
    return path


@pytest.fixture
def pptx_deck(tmp_path) -> Path:
    return build_pptx(tmp_path / "decks" / "pitch.pptx")


@pytest.fixture
def financial_text() -> str:
    return FINANCIAL_TEXT


@pytest.fixture
def strong_pitch() -> str:
    return STRONG_PITCH
