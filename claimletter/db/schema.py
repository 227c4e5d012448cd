from __future__ import annotations

import re

from claimletter.db.postgres import _import_psycopg


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


class PostgresLettersSchemaManager:
    """Create the letters table and lock it down to the privileged service role."""

    def __init__(self, dsn: str, *, table_name: str = "letters") -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()
        self._table = _validate_identifier(table_name)

    def statements(self) -> list[str]:
        table = self._table
        policy = f"deny_all_{table}"
        return [
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id text PRIMARY KEY,
                created_at timestamptz NOT NULL DEFAULT now(),
                updated_at timestamptz NOT NULL DEFAULT now(),
                user_email text,
                payment_session_id text,
                payment_status text NOT NULL DEFAULT 'unpaid'
                    CHECK (payment_status IN ('unpaid', 'paid', 'refunded')),
                price_id text,
                letter_text text NOT NULL DEFAULT '',
                analysis jsonb,
                summary text,
                ai_response text,
                status text NOT NULL DEFAULT 'uploaded'
                    CHECK (status IN ('uploaded', 'analyzed', 'responded', 'error')),
                last_error text,
                version integer NOT NULL DEFAULT 1
            )
            """,
            f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table} (created_at DESC)",
            f"CREATE INDEX IF NOT EXISTS idx_{table}_session ON {table} (payment_session_id)",
            f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY",
            f"DROP POLICY IF EXISTS {policy} ON {table}",
            f"""
            CREATE POLICY {policy} ON {table}
            AS PERMISSIVE FOR ALL TO public
            USING (false)
            WITH CHECK (false)
            """,
        ]

    def apply(self) -> list[str]:
        psycopg = _import_psycopg()
        statements = self.statements()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)
            conn.commit()
        return [self._table]
