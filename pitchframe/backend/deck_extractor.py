import re
from dataclasses import dataclass
from pathlib import Path

from pypdf import PdfReader
from pptx import Presentation


SUPPORTED_DECK_EXTENSIONS = {".pdf", ".pptx", ".ppt"}


@dataclass
class DeckText:
    text: str
    num_pages_or_slides: int


def detect_extension(filename: str) -> str:
    return Path(filename or "").suffix.lower()


def sanitize_filename(filename: str) -> str:
    candidate = Path(filename or "").name
    sanitized = re.sub(r"[^A-Za-z0-9._-]", "_", candidate)
    if sanitized in {"", ".", ".."}:
        sanitized = "deck"

    stem = Path(sanitized).stem[:120] or "deck"
    ext = Path(sanitized).suffix[:20]
    return f"{stem}{ext}"


def validate_deck_extension(extension: str) -> None:
    if extension not in SUPPORTED_DECK_EXTENSIONS:
        raise ValueError("Unsupported deck format. Please upload PDF or PPTX.")
    if extension == ".ppt":
        raise ValueError("Legacy .ppt is not supported. Please upload PDF or PPTX.")


def extract_deck_text(deck_path: Path) -> DeckText:
    extension = deck_path.suffix.lower()
    validate_deck_extension(extension)
    if extension == ".pdf":
        return _extract_pdf(deck_path)
    return _extract_pptx(deck_path)


def _extract_pdf(deck_path: Path) -> DeckText:
    reader = PdfReader(str(deck_path))
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return DeckText(
        text="\n\n".join(page for page in pages if page).strip(),
        num_pages_or_slides=len(pages),
    )


def _extract_pptx(deck_path: Path) -> DeckText:
    presentation = Presentation(str(deck_path))
    slides: list[str] = []

    for slide in presentation.slides:
        chunks = []
        for shape in slide.shapes:
            text = getattr(shape, "text", "")
            if text and text.strip():
                chunks.append(text.strip())
        slides.append("\n".join(chunks))

    return DeckText(
        text="\n\n".join(slide for slide in slides if slide).strip(),
        num_pages_or_slides=len(slides),
    )
