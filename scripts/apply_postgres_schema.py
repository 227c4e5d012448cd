#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from claimletter.db.schema import PostgresLettersSchemaManager


def main() -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Create the letters table with its deny-all RLS policy")
    parser.add_argument(
        "--dsn",
        default=os.getenv("POSTGRES_DSN", "") or os.getenv("DATABASE_URL", ""),
        help="PostgreSQL DSN",
    )
    parser.add_argument("--table", default=os.getenv("LETTERS_TABLE", "letters"), help="letters table name")
    parser.add_argument("--dry-run", action="store_true", help="print the statements without executing them")
    args = parser.parse_args()

    dsn = str(args.dsn or "").strip()
    if not dsn and not args.dry_run:
        raise SystemExit("POSTGRES_DSN is required (pass --dsn or set env)")

    manager = PostgresLettersSchemaManager(dsn or "postgresql://dry-run", table_name=args.table)
    if args.dry_run:
        print(";\n\n".join(manager.statements()) + ";")
        return 0
    applied = manager.apply()
    print(json.dumps({"applied_tables": applied, "count": len(applied)}, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
