from __future__ import annotations

import json
import re
import threading
from datetime import datetime
from typing import Any

from claimletter.db.postgres import PostgresTxRunner
from claimletter.errors import AdapterFailure, ApiError, Conflict, NotFound
from claimletter.models import IMMUTABLE_FIELDS, LETTER_STATUSES, PAYMENT_STATUSES, LetterRecord, utcnow_iso

_COLUMNS: tuple[str, ...] = (
    "id",
    "created_at",
    "updated_at",
    "user_email",
    "payment_session_id",
    "payment_status",
    "price_id",
    "letter_text",
    "analysis",
    "summary",
    "ai_response",
    "status",
    "last_error",
    "version",
)

_UPDATABLE = frozenset(_COLUMNS) - IMMUTABLE_FIELDS - {"updated_at"}


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"fields not updatable: {', '.join(sorted(unknown))}")
    if "status" in fields and fields["status"] not in LETTER_STATUSES:
        raise ValueError(f"invalid status: {fields['status']}")
    if "payment_status" in fields and fields["payment_status"] not in PAYMENT_STATUSES:
        raise ValueError(f"invalid payment_status: {fields['payment_status']}")
    return dict(fields)


class InMemoryLettersRepository:
    """Letters gateway over a plain dict; one lock makes the version check and write atomic."""

    backend_name = "memory"

    def __init__(self, rows: dict[str, LetterRecord] | None = None) -> None:
        self._rows: dict[str, LetterRecord] = {} if rows is None else rows
        self._lock = threading.Lock()

    def create(self, record: LetterRecord) -> LetterRecord:
        with self._lock:
            if record.id in self._rows:
                raise ValueError(f"letter record already exists: {record.id}")
            self._rows[record.id] = record
        return record

    def get(self, record_id: str) -> LetterRecord:
        with self._lock:
            record = self._rows.get(record_id)
        if record is None:
            raise NotFound(record_id)
        return record

    def update(
        self,
        record_id: str,
        fields: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> LetterRecord:
        changes = _validate_fields(fields)
        with self._lock:
            current = self._rows.get(record_id)
            if current is None:
                raise NotFound(record_id)
            if expected_version is not None and current.version != expected_version:
                raise Conflict(record_id, expected_version=expected_version, actual_version=current.version)
            updated = current.with_changes(**changes, version=current.version + 1, updated_at=utcnow_iso())
            self._rows[record_id] = updated
        return updated

    def ping(self) -> str:
        with self._lock:
            count = len(self._rows)
        return f"in-memory store reachable ({count} records)"


class PostgresLettersRepository:
    """Letters gateway for the postgres backend; conditional writes compare the version column."""

    backend_name = "postgres"

    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "letters") -> None:
        self._tx_runner = tx_runner
        self._table_name = _validate_identifier(table_name)

    def _run(self, fn: Any) -> Any:
        try:
            return self._tx_runner.run_in_tx(fn=fn)
        except ApiError:
            raise
        except Exception as exc:
            raise AdapterFailure("store", f"{type(exc).__name__}: {exc}") from exc

    @staticmethod
    def _to_iso(value: Any) -> str:
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value or "")

    def _row_to_record(self, row: tuple[Any, ...]) -> LetterRecord:
        payload = dict(zip(_COLUMNS, row))
        payload["created_at"] = self._to_iso(payload["created_at"])
        payload["updated_at"] = self._to_iso(payload["updated_at"])
        analysis = payload.get("analysis")
        if isinstance(analysis, str):
            analysis = json.loads(analysis)
        payload["analysis"] = analysis if isinstance(analysis, dict) else None
        payload["version"] = int(payload["version"])
        payload["letter_text"] = payload.get("letter_text") or ""
        return LetterRecord.from_dict(payload)

    @staticmethod
    def _param(name: str, value: Any) -> tuple[str, Any]:
        if name == "analysis":
            return "%s::jsonb", None if value is None else json.dumps(value, ensure_ascii=True, sort_keys=True)
        return "%s", value

    def create(self, record: LetterRecord) -> LetterRecord:
        payload = record.to_dict()
        placeholders: list[str] = []
        params: list[Any] = []
        for name in _COLUMNS:
            placeholder, value = self._param(name, payload[name])
            placeholders.append(placeholder)
            params.append(value)
        sql = f"""
            INSERT INTO {self._table_name} ({", ".join(_COLUMNS)})
            VALUES ({", ".join(placeholders)})
        """

        def _op(conn: Any) -> LetterRecord:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
            return record

        return self._run(_op)

    def get(self, record_id: str) -> LetterRecord:
        sql = f"""
            SELECT {", ".join(_COLUMNS)}
            FROM {self._table_name}
            WHERE id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (record_id,))
                return cur.fetchone()

        row = self._run(_op)
        if row is None:
            raise NotFound(record_id)
        return self._row_to_record(row)

    def update(
        self,
        record_id: str,
        fields: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> LetterRecord:
        changes = _validate_fields(fields)
        assignments: list[str] = []
        params: list[Any] = []
        for name in sorted(changes):
            placeholder, value = self._param(name, changes[name])
            assignments.append(f"{name} = {placeholder}")
            params.append(value)
        assignments.append("version = version + 1")
        assignments.append("updated_at = now()")
        where = "id = %s"
        params.append(record_id)
        if expected_version is not None:
            where += " AND version = %s"
            params.append(int(expected_version))
        sql = f"""
            UPDATE {self._table_name}
            SET {", ".join(assignments)}
            WHERE {where}
            RETURNING {", ".join(_COLUMNS)}
        """
        probe_sql = f"SELECT version FROM {self._table_name} WHERE id = %s"

        def _op(conn: Any) -> tuple[tuple[Any, ...] | None, int | None]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                row = cur.fetchone()
                if row is not None:
                    return row, None
                cur.execute(probe_sql, (record_id,))
                existing = cur.fetchone()
            return None, None if existing is None else int(existing[0])

        row, actual_version = self._run(_op)
        if row is not None:
            return self._row_to_record(row)
        if actual_version is None:
            raise NotFound(record_id)
        raise Conflict(record_id, expected_version=expected_version, actual_version=actual_version)

    def ping(self) -> str:
        sql = f"SELECT count(*) FROM (SELECT 1 FROM {self._table_name} LIMIT 1) AS probe"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql)
                row = cur.fetchone()
            return int(row[0]) if row else 0

        self._run(_op)
        return f"postgres table {self._table_name} reachable"
