import json
import logging
import os
from datetime import timedelta
from typing import Optional, Tuple

from google.api_core.exceptions import NotFound
from google.cloud import storage

from .gcp_auth import get_gcp_credentials, get_project_id_hint, get_signing_credentials


logger = logging.getLogger("uvicorn.error")
_storage_client: Optional[storage.Client] = None

SIGNED_URL_TTL = timedelta(hours=1)


def get_reports_bucket() -> Optional[str]:
    bucket = os.getenv("PITCHFRAME_REPORTS_BUCKET", "").strip()
    return bucket or None


def get_storage_client() -> storage.Client:
    global _storage_client
    if _storage_client is None:
        credentials = get_gcp_credentials()
        project = get_project_id_hint()
        if credentials is not None or project:
            _storage_client = storage.Client(credentials=credentials, project=project)
        else:
            _storage_client = storage.Client()
    return _storage_client


def normalize_blob_path(blob_path: str) -> str:
    return blob_path.lstrip("/")


def build_gs_uri(bucket: str, blob_path: str) -> str:
    return f"gs://{bucket}/{normalize_blob_path(blob_path)}"


def parse_gcs_uri(gcs_uri: str) -> Tuple[str, str]:
    if not gcs_uri.startswith("gs://"):
        raise ValueError(f"Invalid GCS URI: {gcs_uri}")
    bucket, _, blob_path = gcs_uri[5:].partition("/")
    if not bucket or not blob_path:
        raise ValueError(f"Invalid GCS URI: {gcs_uri}")
    return bucket, blob_path


def build_report_prefix(pitch_id: str, user_id: Optional[str]) -> str:
    return f"pitches/{user_id or 'anonymous'}/{pitch_id}/"


def upload_bytes(bucket: str, blob_path: str, data: bytes, content_type: str) -> str:
    clean_path = normalize_blob_path(blob_path)
    blob = get_storage_client().bucket(bucket).blob(clean_path)
    blob.upload_from_string(data, content_type=content_type)
    return build_gs_uri(bucket, clean_path)


def upload_text(
    bucket: str,
    blob_path: str,
    text: str,
    content_type: str = "text/plain; charset=utf-8",
) -> str:
    return upload_bytes(bucket, blob_path, (text or "").encode("utf-8"), content_type=content_type)


def upload_json(bucket: str, blob_path: str, obj) -> str:
    payload = json.dumps(obj, ensure_ascii=False)
    return upload_bytes(bucket, blob_path, payload.encode("utf-8"), content_type="application/json")


def archive_report(
    bucket: str,
    *,
    pitch_id: str,
    user_id: Optional[str],
    report_html: str,
    report_payload: dict,
) -> str:
    """Upload the rendered report and its JSON export; returns the HTML report URI."""
    prefix = build_report_prefix(pitch_id, user_id)
    report_uri = upload_text(bucket, f"{prefix}report.html", report_html, content_type="text/html; charset=utf-8")
    upload_json(bucket, f"{prefix}analysis.json", report_payload)
    logger.info("pitch_id=%s report_archived uri=%s", pitch_id, report_uri)
    return report_uri


def delete_prefix(bucket: str, prefix: str) -> None:
    client = get_storage_client()
    for blob in client.list_blobs(bucket, prefix=normalize_blob_path(prefix)):
        try:
            blob.delete()
        except NotFound:
            continue
        except Exception:
            logger.warning(
                "Failed deleting GCS object during prefix cleanup: gs://%s/%s",
                bucket,
                blob.name,
                exc_info=True,
            )


def generate_signed_download_url(gcs_uri: str, expiration: timedelta = SIGNED_URL_TTL) -> str:
    bucket, blob_path = parse_gcs_uri(gcs_uri)
    credentials = get_signing_credentials()
    blob = get_storage_client().bucket(bucket).blob(blob_path)
    return blob.generate_signed_url(
        version="v4",
        expiration=expiration,
        method="GET",
        credentials=credentials,
    )
