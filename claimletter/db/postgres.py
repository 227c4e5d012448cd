from __future__ import annotations

from collections.abc import Callable
from typing import Any


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction with a bounded statement timeout."""

    def __init__(self, dsn: str, *, timeout_s: float = 10.0) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self._dsn = dsn.strip()
        self._timeout_s = timeout_s

    def run_in_tx(self, *, fn: Callable[[Any], Any]) -> Any:
        psycopg = _import_psycopg()
        timeout_ms = int(self._timeout_s * 1000)
        with psycopg.connect(self._dsn, connect_timeout=max(1, int(self._timeout_s))) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT set_config('statement_timeout', %s, true)", (str(timeout_ms),))
            result = fn(conn)
            conn.commit()
            return result
