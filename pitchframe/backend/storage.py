import json
import os
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from .constants import TEXT_EXCERPT_CHARS, UNSET
from .models import ALLOWED_TRANSITIONS, PitchRecord, PitchStatus, ensure_transition, utc_now

try:
    import psycopg
    from psycopg.types.json import Jsonb
except Exception:  # pragma: no cover - only relevant when Postgres is enabled.
    psycopg = None
    Jsonb = None


SORT_OPTIONS = {"date-desc", "date-asc", "score-desc", "score-asc"}
PERIOD_OPTIONS = {"today", "week", "month", "all"}


def normalize_database_url(database_url: str) -> str:
    if database_url.startswith("postgres://"):
        return "postgresql://" + database_url[len("postgres://") :]
    return database_url


def resolve_period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    current = now or utc_now()
    if period == "today":
        return current.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return current - timedelta(days=7)
    if period == "month":
        return current - timedelta(days=30)
    if period == "all":
        return None
    raise ValueError(f"Unknown period {period!r}. Use one of: {', '.join(sorted(PERIOD_OPTIONS))}.")


def _validate_sort(sort: str) -> None:
    if sort not in SORT_OPTIONS:
        raise ValueError(f"Unknown sort {sort!r}. Use one of: {', '.join(sorted(SORT_OPTIONS))}.")


def _check_analysis_update(status: Optional[str], analysis: object) -> None:
    # A finished analysis is only ever written together with the completed status.
    if analysis is not UNSET and analysis is not None:
        if status is None or PitchStatus(status) != PitchStatus.COMPLETED:
            raise ValueError("An analysis can only be stored with the completed status.")


def _overall_score(record: PitchRecord) -> Optional[int]:
    if isinstance(record.analysis, dict):
        value = record.analysis.get("overall_score")
        if isinstance(value, int):
            return value
    return None


class PitchStore(Protocol):
    storage_name: str

    def create_pitch(
        self,
        pitch_id: str,
        *,
        user_id: Optional[str] = None,
        filename: Optional[str] = None,
        source: str = "text",
        parent_pitch_id: Optional[str] = None,
    ) -> None:
        pass

    def get_pitch(self, pitch_id: str) -> Optional[PitchRecord]:
        pass

    def save_pitch_text(self, pitch_id: str, text: str) -> None:
        pass

    def get_pitch_text(self, pitch_id: str) -> Optional[str]:
        pass

    def update_pitch(
        self,
        pitch_id: str,
        *,
        status: Optional[str] = None,
        analysis: object = UNSET,
        report_uri: object = UNSET,
        error: object = UNSET,
    ) -> None:
        pass

    def list_pitches(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        sort: str = "date-desc",
        limit: int = 50,
    ) -> List[PitchRecord]:
        pass

    def delete_pitch(self, pitch_id: str) -> None:
        pass


class InMemoryPitchStore:
    storage_name = "memory"

    def __init__(self) -> None:
        self._pitches: Dict[str, PitchRecord] = {}
        self._text_by_pitch: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create_pitch(
        self,
        pitch_id: str,
        *,
        user_id: Optional[str] = None,
        filename: Optional[str] = None,
        source: str = "text",
        parent_pitch_id: Optional[str] = None,
    ) -> None:
        now = utc_now()
        with self._lock:
            self._pitches[pitch_id] = PitchRecord(
                pitch_id=pitch_id,
                created_at=now,
                updated_at=now,
                status=PitchStatus.PENDING.value,
                user_id=user_id,
                filename=filename,
                source=source,
                parent_pitch_id=parent_pitch_id,
            )

    def get_pitch(self, pitch_id: str) -> Optional[PitchRecord]:
        with self._lock:
            return self._pitches.get(pitch_id)

    def save_pitch_text(self, pitch_id: str, text: str) -> None:
        with self._lock:
            record = self._pitches[pitch_id]
            self._text_by_pitch[pitch_id] = text
            record.text_excerpt = text[:TEXT_EXCERPT_CHARS]
            record.updated_at = utc_now()

    def get_pitch_text(self, pitch_id: str) -> Optional[str]:
        with self._lock:
            return self._text_by_pitch.get(pitch_id)

    def update_pitch(
        self,
        pitch_id: str,
        *,
        status: Optional[str] = None,
        analysis: object = UNSET,
        report_uri: object = UNSET,
        error: object = UNSET,
    ) -> None:
        _check_analysis_update(status, analysis)
        with self._lock:
            record = self._pitches.get(pitch_id)
            if record is None:
                raise KeyError(f"Pitch {pitch_id} not found.")
            if status is not None:
                record.status = ensure_transition(record.status, status).value
            if analysis is not UNSET:
                record.analysis = analysis
            if report_uri is not UNSET:
                record.report_uri = report_uri
            if error is not UNSET:
                record.error = error
            record.updated_at = utc_now()

    def list_pitches(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        sort: str = "date-desc",
        limit: int = 50,
    ) -> List[PitchRecord]:
        _validate_sort(sort)
        with self._lock:
            records = list(self._pitches.values())

        if user_id is not None:
            records = [record for record in records if record.user_id == user_id]
        if status is not None:
            wanted = PitchStatus(status).value
            records = [record for record in records if record.status == wanted]
        if since is not None:
            records = [record for record in records if record.created_at >= since]

        field, direction = sort.split("-")
        descending = direction == "desc"
        if field == "date":
            records.sort(key=lambda record: record.created_at, reverse=descending)
        else:
            scored = [record for record in records if _overall_score(record) is not None]
            unscored = [record for record in records if _overall_score(record) is None]
            scored.sort(key=_overall_score, reverse=descending)
            records = scored + unscored
        return records[:limit]

    def delete_pitch(self, pitch_id: str) -> None:
        with self._lock:
            self._pitches.pop(pitch_id, None)
            self._text_by_pitch.pop(pitch_id, None)


class PostgresPitchStore:
    storage_name = "postgres"

    _SELECT_COLUMNS = """
        pitch_id::text,
        created_at,
        updated_at,
        status,
        user_id,
        filename,
        source,
        text_excerpt,
        analysis,
        report_uri,
        error,
        parent_pitch_id::text
    """

    def __init__(self, database_url: str) -> None:
        if psycopg is None or Jsonb is None:
            raise RuntimeError("psycopg is required when DATABASE_URL is set.")
        self._database_url = normalize_database_url(database_url)
        self._ensure_schema()

    def _connect(self):
        return psycopg.connect(self._database_url, autocommit=True)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS pitches (
                        pitch_id UUID PRIMARY KEY,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                        status TEXT NOT NULL,
                        user_id TEXT NULL,
                        filename TEXT NULL,
                        source TEXT NOT NULL DEFAULT 'text',
                        pitch_text TEXT NULL,
                        text_excerpt TEXT NOT NULL DEFAULT '',
                        analysis JSONB NULL,
                        report_uri TEXT NULL,
                        error TEXT NULL,
                        parent_pitch_id UUID NULL
                    )
                    """
                )
                cur.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_pitches_user_created_at
                    ON pitches (user_id, created_at DESC)
                    """
                )

    def _row_to_record(self, row) -> PitchRecord:
        (
            pitch_id,
            created_at,
            updated_at,
            status,
            user_id,
            filename,
            source,
            text_excerpt,
            analysis,
            report_uri,
            error,
            parent_pitch_id,
        ) = row
        if analysis is not None and isinstance(analysis, str):
            analysis = json.loads(analysis)
        return PitchRecord(
            pitch_id=pitch_id,
            created_at=created_at,
            updated_at=updated_at,
            status=status,
            user_id=user_id,
            filename=filename,
            source=source,
            text_excerpt=text_excerpt or "",
            analysis=analysis,
            report_uri=report_uri,
            error=error,
            parent_pitch_id=parent_pitch_id,
        )

    def create_pitch(
        self,
        pitch_id: str,
        *,
        user_id: Optional[str] = None,
        filename: Optional[str] = None,
        source: str = "text",
        parent_pitch_id: Optional[str] = None,
    ) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO pitches (pitch_id, status, user_id, filename, source, parent_pitch_id)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (pitch_id, PitchStatus.PENDING.value, user_id, filename, source, parent_pitch_id),
                )

    def get_pitch(self, pitch_id: str) -> Optional[PitchRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {self._SELECT_COLUMNS} FROM pitches WHERE pitch_id = %s",
                    (pitch_id,),
                )
                row = cur.fetchone()
                if row is None:
                    return None
                return self._row_to_record(row)

    def save_pitch_text(self, pitch_id: str, text: str) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pitches
                    SET pitch_text = %s, text_excerpt = %s, updated_at = NOW()
                    WHERE pitch_id = %s
                    """,
                    (text, text[:TEXT_EXCERPT_CHARS], pitch_id),
                )
                if cur.rowcount == 0:
                    raise KeyError(f"Pitch {pitch_id} not found.")

    def get_pitch_text(self, pitch_id: str) -> Optional[str]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT pitch_text FROM pitches WHERE pitch_id = %s", (pitch_id,))
                row = cur.fetchone()
                if row is None:
                    return None
                return row[0]

    def update_pitch(
        self,
        pitch_id: str,
        *,
        status: Optional[str] = None,
        analysis: object = UNSET,
        report_uri: object = UNSET,
        error: object = UNSET,
    ) -> None:
        _check_analysis_update(status, analysis)
        assignments: List[str] = []
        values: List[Any] = []

        if status is not None:
            assignments.append("status = %s")
            values.append(PitchStatus(status).value)
        if analysis is not UNSET:
            assignments.append("analysis = %s")
            values.append(Jsonb(analysis) if analysis is not None else None)
        if report_uri is not UNSET:
            assignments.append("report_uri = %s")
            values.append(report_uri)
        if error is not UNSET:
            assignments.append("error = %s")
            values.append(error)

        assignments.append("updated_at = NOW()")
        query = f"UPDATE pitches SET {', '.join(assignments)} WHERE pitch_id = %s"
        values.append(pitch_id)

        if status is not None:
            # The transition is checked in the same statement that applies it.
            new_status = PitchStatus(status)
            allowed_from = [
                current.value for current, targets in ALLOWED_TRANSITIONS.items() if new_status in targets
            ]
            query += " AND status = ANY(%s)"
            values.append(allowed_from)

        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, values)
                if cur.rowcount:
                    return
                cur.execute("SELECT status FROM pitches WHERE pitch_id = %s", (pitch_id,))
                row = cur.fetchone()
                if row is None:
                    raise KeyError(f"Pitch {pitch_id} not found.")
                if status is not None:
                    ensure_transition(row[0], status)

    def list_pitches(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        sort: str = "date-desc",
        limit: int = 50,
    ) -> List[PitchRecord]:
        _validate_sort(sort)
        conditions: List[str] = []
        values: List[Any] = []
        if user_id is not None:
            conditions.append("user_id = %s")
            values.append(user_id)
        if status is not None:
            conditions.append("status = %s")
            values.append(PitchStatus(status).value)
        if since is not None:
            conditions.append("created_at >= %s")
            values.append(since)

        field, direction = sort.split("-")
        order = "DESC" if direction == "desc" else "ASC"
        if field == "date":
            order_by = f"created_at {order}"
        else:
            order_by = f"(analysis->>'overall_score')::int {order} NULLS LAST, created_at DESC"

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        values.append(limit)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {self._SELECT_COLUMNS} FROM pitches {where} ORDER BY {order_by} LIMIT %s",
                    values,
                )
                return [self._row_to_record(row) for row in cur.fetchall()]

    def delete_pitch(self, pitch_id: str) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM pitches WHERE pitch_id = %s", (pitch_id,))


def build_pitch_store() -> PitchStore:
    database_url = os.getenv("DATABASE_URL", "").strip()
    if database_url:
        return PostgresPitchStore(database_url=database_url)
    return InMemoryPitchStore()
