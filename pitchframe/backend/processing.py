import logging
import shutil
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, UploadFile

from .analyzer import analyze_pitch
from .config import ScoringConfig
from .constants import CHUNK_SIZE, MAX_ERROR_CHARS, MAX_UPLOAD_BYTES
from .deck_extractor import extract_deck_text
from .errors import EmptyInputError
from .gcs_utils import archive_report, get_reports_bucket
from .models import PitchStatus
from .report import build_report_payload, render_report
from .storage import PitchStore


logger = logging.getLogger("uvicorn.error")


async def write_upload_to_disk(
    upload: UploadFile,
    destination: Path,
    *,
    field_name: str,
    max_size_bytes: int = MAX_UPLOAD_BYTES,
) -> int:
    total_bytes = 0
    destination.parent.mkdir(parents=True, exist_ok=True)

    with destination.open("wb") as output:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            total_bytes += len(chunk)
            if total_bytes > max_size_bytes:
                raise HTTPException(
                    status_code=413,
                    detail=f"{field_name} is too large. Max size is {max_size_bytes} bytes.",
                )
            output.write(chunk)

    await upload.close()
    if total_bytes == 0:
        raise HTTPException(status_code=400, detail=f"{field_name} file is empty.")
    return total_bytes


def _error_message(exc: Exception) -> str:
    message = str(exc).strip() or exc.__class__.__name__
    if len(message) > MAX_ERROR_CHARS:
        return message[:MAX_ERROR_CHARS] + "...(truncated)"
    return message


def extract_deck_into_store(store: PitchStore, pitch_id: str, deck_upload: dict) -> str:
    store.update_pitch(pitch_id, status=PitchStatus.PROCESSING.value, error=None)
    deck_path = Path(deck_upload["storage_path"])
    try:
        extraction = extract_deck_text(deck_path)
    finally:
        shutil.rmtree(deck_path.parent, ignore_errors=True)

    if not extraction.text.strip():
        raise EmptyInputError("No readable text was found in the uploaded deck.")

    store.save_pitch_text(pitch_id, extraction.text)
    logger.info(
        "pitch_id=%s deck_processed pages_or_slides=%s text_len=%s",
        pitch_id,
        extraction.num_pages_or_slides,
        len(extraction.text),
    )
    return extraction.text


def archive_completed_report(store: PitchStore, pitch_id: str) -> Optional[str]:
    bucket = get_reports_bucket()
    if not bucket:
        return None

    record = store.get_pitch(pitch_id)
    if record is None or record.analysis is None:
        return None

    try:
        report_uri = archive_report(
            bucket,
            pitch_id=pitch_id,
            user_id=record.user_id,
            report_html=render_report(record.analysis),
            report_payload=build_report_payload(record.filename, record.created_at, record.analysis),
        )
        store.update_pitch(pitch_id, report_uri=report_uri)
        return report_uri
    except Exception:
        logger.warning("pitch_id=%s report_archive_failed", pitch_id, exc_info=True)
        return None


def process_pitch_job(
    store: PitchStore,
    pitch_id: str,
    config: ScoringConfig,
    deck_upload: Optional[dict] = None,
) -> None:
    try:
        if deck_upload is not None:
            text = extract_deck_into_store(store, pitch_id, deck_upload)
        else:
            text = store.get_pitch_text(pitch_id)

        store.update_pitch(pitch_id, status=PitchStatus.ANALYZING.value)
        analysis = analyze_pitch(text, config)
        store.update_pitch(
            pitch_id,
            status=PitchStatus.COMPLETED.value,
            analysis=analysis.model_dump(mode="json"),
            error=None,
        )
        logger.info(
            "pitch_id=%s analysis_completed scorer=%s overall_score=%s",
            pitch_id,
            analysis.scorer,
            analysis.overall_score,
        )
    except Exception as exc:
        logger.warning("pitch_id=%s analysis_failed error=%s", pitch_id, exc, exc_info=True)
        try:
            store.update_pitch(pitch_id, status=PitchStatus.ERROR.value, error=_error_message(exc))
        except Exception:
            logger.exception("pitch_id=%s failed to record error status", pitch_id)
        return

    archive_completed_report(store, pitch_id)
