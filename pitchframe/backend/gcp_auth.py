import base64
import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from google.oauth2 import service_account


STORAGE_SCOPE = "https://www.googleapis.com/auth/devstorage.read_write"


def _parse_key(raw: str, source: str) -> dict:
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"{source} does not contain valid JSON.") from exc
    if not isinstance(info, dict) or "private_key" not in info:
        raise RuntimeError(f"{source} must hold a service account key with a private_key.")
    return info


def load_service_account_info() -> Optional[dict]:
    """Service account key for the report archive, or None.

    Sources in order: base64 JSON, inline JSON, key file path.
    """
    encoded = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_B64", "").strip()
    if encoded:
        try:
            raw = base64.b64decode(encoded + "=" * ((-len(encoded)) % 4)).decode("utf-8")
        except Exception as exc:
            raise RuntimeError("GOOGLE_APPLICATION_CREDENTIALS_B64 is not valid base64.") from exc
        return _parse_key(raw, "GOOGLE_APPLICATION_CREDENTIALS_B64")

    inline = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON", "").strip()
    if inline:
        return _parse_key(inline, "GOOGLE_APPLICATION_CREDENTIALS_JSON")

    key_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "").strip()
    if key_path:
        path = Path(key_path)
        if not path.is_file():
            raise RuntimeError(f"GOOGLE_APPLICATION_CREDENTIALS points to a missing file: {key_path}")
        return _parse_key(path.read_text(encoding="utf-8"), "GOOGLE_APPLICATION_CREDENTIALS")

    return None


@lru_cache(maxsize=1)
def get_gcp_credentials() -> Optional[service_account.Credentials]:
    info = load_service_account_info()
    if info is None:
        return None
    return service_account.Credentials.from_service_account_info(info, scopes=[STORAGE_SCOPE])


def get_signing_credentials() -> service_account.Credentials:
    # V4 signed URLs are signed locally with the key's private_key.
    credentials = get_gcp_credentials()
    if credentials is None:
        raise RuntimeError(
            "Signed report URLs need a service account key. Set GOOGLE_APPLICATION_CREDENTIALS_B64, "
            "GOOGLE_APPLICATION_CREDENTIALS_JSON or GOOGLE_APPLICATION_CREDENTIALS."
        )
    return credentials


def get_project_id_hint() -> Optional[str]:
    explicit = os.getenv("GCP_PROJECT_ID", "").strip()
    if explicit:
        return explicit
    info = load_service_account_info()
    return info.get("project_id") if info else None
