import logging
import os
import shutil
import threading
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from .analyzer import analyze_pitch
from .config import ScoringConfig
from .constants import MAX_REQUEST_BYTES, MAX_UPLOAD_BYTES
from .deck_extractor import detect_extension, sanitize_filename, validate_deck_extension
from .errors import EmptyInputError, RenderError
from .gcs_utils import (
    SIGNED_URL_TTL,
    build_report_prefix,
    delete_prefix,
    generate_signed_download_url,
    parse_gcs_uri,
)
from .models import (
    Analysis,
    AnalyzeTextRequest,
    CreatePitchResponse,
    PitchListItem,
    PitchRecord,
    PitchStatus,
    PitchStatusResponse,
    ReportUrlResponse,
)
from .processing import process_pitch_job, write_upload_to_disk
from .report import build_report_payload, render_report, report_download_name
from .storage import build_pitch_store, resolve_period_start


logger = logging.getLogger("uvicorn.error")

DECK_STORAGE_ROOT = Path(os.getenv("DECK_STORAGE_DIR", "data/decks")).resolve()
ALLOWED_MIME_BY_EXTENSION = {
    ".pdf": {
        "application/pdf",
        "application/x-pdf",
        "application/octet-stream",
    },
    ".pptx": {
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/zip",
        "application/octet-stream",
    },
}

app = FastAPI(title="PitchFrame Analysis Backend")
pitch_store = build_pitch_store()


def _fire_and_forget(fn, *args, **kwargs):
    """Run *fn* in a daemon thread so the HTTP response is returned before
    the analysis starts."""
    t = threading.Thread(target=fn, args=args, kwargs=kwargs, daemon=True)
    t.start()


frontend_origins = os.getenv(
    "FRONTEND_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in frontend_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def enforce_upload_size(request, call_next):
    if request.method == "POST" and request.url.path.startswith("/api/pitches"):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > MAX_REQUEST_BYTES:
                    return JSONResponse(
                        status_code=413,
                        content={"detail": f"Request too large. Max size is {MAX_REQUEST_BYTES} bytes."},
                    )
            except ValueError:
                pass
    return await call_next(request)


def get_scoring_config() -> ScoringConfig:
    try:
        return ScoringConfig.from_env()
    except (RuntimeError, ValueError) as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _validate_deck_mime(content_type: Optional[str], extension: str) -> None:
    if not content_type:
        return
    allowed = ALLOWED_MIME_BY_EXTENSION.get(extension, set())
    if content_type not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid deck content type for {extension}: {content_type}",
        )


async def _save_deck_upload(pitch_id: str, deck: UploadFile) -> dict:
    raw_name = deck.filename or "deck"
    extension = detect_extension(raw_name)
    try:
        validate_deck_extension(extension)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _validate_deck_mime(deck.content_type, extension)

    safe_filename = sanitize_filename(raw_name)
    deck_path = DECK_STORAGE_ROOT / pitch_id / safe_filename
    try:
        size_bytes = await write_upload_to_disk(
            deck,
            deck_path,
            field_name="deck",
            max_size_bytes=MAX_UPLOAD_BYTES,
        )
    except Exception:
        shutil.rmtree(deck_path.parent, ignore_errors=True)
        raise

    return {
        "filename": safe_filename,
        "content_type": deck.content_type,
        "size_bytes": size_bytes,
        "storage_path": str(deck_path),
    }


def _get_pitch_or_404(pitch_id: str) -> PitchRecord:
    record = pitch_store.get_pitch(pitch_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Pitch not found.")
    return record


def _require_completed(record: PitchRecord) -> dict:
    if record.status != PitchStatus.COMPLETED.value or record.analysis is None:
        raise HTTPException(
            status_code=409,
            detail=f"Analysis is not available yet (status={record.status}).",
        )
    return record.analysis


def _top_recommendations(record: PitchRecord, limit: int = 2) -> List[str]:
    if not isinstance(record.analysis, dict):
        return []
    return list(record.analysis.get("recommendations") or [])[:limit]


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "storage": pitch_store.storage_name}


@app.post("/api/analyze", response_model=Analysis)
def analyze_text(
    payload: AnalyzeTextRequest,
    config: ScoringConfig = Depends(get_scoring_config),
) -> Analysis:
    try:
        return analyze_pitch(payload.text, config)
    except EmptyInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/pitches", response_model=CreatePitchResponse)
async def create_pitch(
    text: Optional[str] = Form(None),
    deck: Optional[UploadFile] = File(None),
    user_id: Optional[str] = Form(None),
    config: ScoringConfig = Depends(get_scoring_config),
) -> CreatePitchResponse:
    has_text = bool(text and text.strip())
    if deck is None and not has_text:
        raise HTTPException(status_code=400, detail="Provide pitch text or a deck file.")
    if deck is not None and has_text:
        raise HTTPException(status_code=400, detail="Provide either pitch text or a deck file, not both.")

    pitch_id = str(uuid.uuid4())
    deck_upload = None
    if deck is not None:
        deck_upload = await _save_deck_upload(pitch_id, deck)
        pitch_store.create_pitch(
            pitch_id,
            user_id=user_id,
            filename=deck_upload["filename"],
            source="deck",
        )
    else:
        pitch_store.create_pitch(pitch_id, user_id=user_id, source="text")
        pitch_store.save_pitch_text(pitch_id, text)

    logger.info("pitch_id=%s pitch_created source=%s", pitch_id, "deck" if deck_upload else "text")
    _fire_and_forget(process_pitch_job, pitch_store, pitch_id, config, deck_upload)
    return CreatePitchResponse(pitch_id=pitch_id, status=PitchStatus.PENDING.value)


@app.get("/api/pitches", response_model=List[PitchListItem])
def list_pitches(
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    period: str = "all",
    sort: str = "date-desc",
    limit: int = Query(50, ge=1, le=200),
) -> List[PitchListItem]:
    try:
        records = pitch_store.list_pitches(
            user_id=user_id,
            status=status,
            since=resolve_period_start(period),
            sort=sort,
            limit=limit,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return [
        PitchListItem(
            pitch_id=record.pitch_id,
            status=record.status,
            filename=record.filename,
            created_at=record.created_at,
            overall_score=(record.analysis or {}).get("overall_score"),
            top_recommendations=_top_recommendations(record),
        )
        for record in records
    ]


@app.get("/api/pitches/{pitch_id}", response_model=PitchStatusResponse)
def get_pitch_status(pitch_id: str) -> PitchStatusResponse:
    record = _get_pitch_or_404(pitch_id)
    return PitchStatusResponse(
        pitch_id=record.pitch_id,
        status=record.status,
        user_id=record.user_id,
        filename=record.filename,
        source=record.source,
        text_excerpt=record.text_excerpt,
        created_at=record.created_at,
        updated_at=record.updated_at,
        analysis=Analysis.model_validate(record.analysis) if record.analysis else None,
        report_uri=record.report_uri,
        parent_pitch_id=record.parent_pitch_id,
        error=record.error,
    )


@app.delete("/api/pitches/{pitch_id}")
def delete_pitch(pitch_id: str) -> dict:
    record = _get_pitch_or_404(pitch_id)
    pitch_store.delete_pitch(pitch_id)
    if record.report_uri:
        try:
            bucket, _ = parse_gcs_uri(record.report_uri)
            delete_prefix(bucket, build_report_prefix(pitch_id, record.user_id))
        except Exception:
            logger.warning("pitch_id=%s report_cleanup_failed", pitch_id, exc_info=True)
    logger.info("pitch_id=%s pitch_deleted", pitch_id)
    return {"pitch_id": pitch_id, "deleted": True}


@app.post("/api/pitches/{pitch_id}/reanalyze", response_model=CreatePitchResponse)
def reanalyze_pitch(
    pitch_id: str,
    config: ScoringConfig = Depends(get_scoring_config),
) -> CreatePitchResponse:
    record = _get_pitch_or_404(pitch_id)
    text = pitch_store.get_pitch_text(pitch_id)
    if not text or not text.strip():
        raise HTTPException(status_code=409, detail="This pitch has no extracted text to analyze.")

    new_pitch_id = str(uuid.uuid4())
    pitch_store.create_pitch(
        new_pitch_id,
        user_id=record.user_id,
        filename=record.filename,
        source=record.source,
        parent_pitch_id=pitch_id,
    )
    pitch_store.save_pitch_text(new_pitch_id, text)
    logger.info("pitch_id=%s reanalysis_created parent=%s", new_pitch_id, pitch_id)
    _fire_and_forget(process_pitch_job, pitch_store, new_pitch_id, config)
    return CreatePitchResponse(pitch_id=new_pitch_id, status=PitchStatus.PENDING.value)


@app.get("/api/pitches/{pitch_id}/report", response_class=HTMLResponse)
def get_pitch_report(pitch_id: str) -> HTMLResponse:
    analysis = _require_completed(_get_pitch_or_404(pitch_id))
    try:
        return HTMLResponse(render_report(analysis))
    except RenderError as exc:
        logger.exception("pitch_id=%s report_render_failed", pitch_id)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/api/pitches/{pitch_id}/report.json")
def download_pitch_report(pitch_id: str) -> JSONResponse:
    record = _get_pitch_or_404(pitch_id)
    analysis = _require_completed(record)
    try:
        payload = build_report_payload(record.filename, record.created_at, analysis)
    except RenderError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    download_name = report_download_name(record.filename)
    return JSONResponse(
        content=payload,
        headers={"Content-Disposition": f'attachment; filename="{download_name}"'},
    )


@app.get("/api/pitches/{pitch_id}/report-url", response_model=ReportUrlResponse)
def get_pitch_report_url(pitch_id: str) -> ReportUrlResponse:
    record = _get_pitch_or_404(pitch_id)
    _require_completed(record)
    if not record.report_uri:
        raise HTTPException(status_code=404, detail="No archived report for this pitch.")

    try:
        signed_url = generate_signed_download_url(record.report_uri)
    except Exception as exc:
        logger.warning("pitch_id=%s signed_url_generation_failed: %s", pitch_id, exc)
        raise HTTPException(status_code=500, detail=f"Could not generate report URL: {exc}") from exc

    return ReportUrlResponse(
        pitch_id=pitch_id,
        signed_url=signed_url,
        expires_in_seconds=int(SIGNED_URL_TTL.total_seconds()),
    )
