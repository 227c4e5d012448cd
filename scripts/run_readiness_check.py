#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import requests
from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from claimletter.context import build_context_from_env
from claimletter.errors import ApiError


def _check_remote(url: str, timeout_s: float) -> tuple[bool, dict[str, Any]]:
    try:
        response = requests.get(url, timeout=timeout_s)
    except requests.RequestException as exc:
        return False, {"error": f"{type(exc).__name__}: {exc}"}
    try:
        body = response.json()
    except ValueError:
        return False, {"error": f"HTTP {response.status_code}: response is not JSON"}
    data = body.get("data", body) if isinstance(body, dict) else {}
    passed = response.status_code == 200 and bool(data.get("all_passed"))
    return passed, data


def _check_local() -> tuple[bool, dict[str, Any]]:
    try:
        context = build_context_from_env()
    except ApiError as exc:
        return False, {"error": f"{exc.code}: {exc.message}", "missing_keys": list(getattr(exc, "keys", []))}
    report = context.readiness().check_all()
    return report.all_passed, report.as_dict()


def main() -> int:
    parser = argparse.ArgumentParser(description="Verify configuration and every external dependency.")
    parser.add_argument("--url", default="", help="readiness endpoint of a deployed service; default runs in-process")
    parser.add_argument("--timeout-s", type=float, default=60.0, help="HTTP timeout for --url mode")
    parser.add_argument("--env-file", default=".env", help="dotenv file loaded before the in-process check")
    parser.add_argument("--json", action="store_true", help="print the full JSON report instead of the console view")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.url:
        passed, data = _check_remote(args.url, args.timeout_s)
    else:
        load_dotenv(args.env_file)
        passed, data = _check_local()

    if args.json or "console_output" not in data:
        print(json.dumps(data, ensure_ascii=False, sort_keys=True, indent=2))
    else:
        print(data["console_output"])
    return 0 if passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
