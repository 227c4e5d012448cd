from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any

from claimletter.errors import ApiError
from claimletter.security import redact_text
from claimletter.settings import check_required_settings

logger = logging.getLogger(__name__)

Probe = Callable[[], Any]

READY_MESSAGE = "All environment variables and integrations are working: ready for production deploy."
NOT_READY_MESSAGE = "Not ready: see failed integrations or missing keys."


@dataclass(frozen=True)
class ProbeResult:
    name: str
    ok: bool
    elapsed_ms: float
    detail: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "status": "pass" if self.ok else "fail",
            "elapsed_ms": self.elapsed_ms,
            "time": f"{round(self.elapsed_ms)} ms",
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ReadinessReport:
    env_checks: dict[str, bool]
    probes: dict[str, ProbeResult]
    elapsed_ms: float
    missing_keys: list[str] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return not self.missing_keys and all(result.ok for result in self.probes.values())

    @property
    def failed(self) -> list[str]:
        return [name for name, result in self.probes.items() if not result.ok]

    @property
    def message(self) -> str:
        return READY_MESSAGE if self.all_passed else NOT_READY_MESSAGE

    def env_check_lines(self) -> list[str]:
        return [
            f"[ok] Found {key}" if present else f"[missing] Missing {key}"
            for key, present in self.env_checks.items()
        ]

    def console_output(self) -> str:
        lines = ["=== Production Readiness Check ===", "", "Environment Variables:"]
        lines.extend(f"  {line}" for line in self.env_check_lines())
        lines.extend(["", "Integration Checks:"])
        for name, result in self.probes.items():
            suffix = f" - {result.detail}" if result.detail else ""
            lines.append(f"  [{'pass' if result.ok else 'FAIL'}] {name}: {round(result.elapsed_ms)} ms{suffix}")
        if self.missing_keys:
            lines.extend(["", f"Missing or invalid environment keys: {', '.join(self.missing_keys)}"])
        lines.extend(["", self.message])
        return "\n".join(lines) + "\n"

    def as_dict(self) -> dict[str, Any]:
        return {
            "all_passed": self.all_passed,
            "message": self.message,
            "missing_keys": list(self.missing_keys),
            "env_checks": self.env_check_lines(),
            "integrations": {name: result.as_dict() for name, result in self.probes.items()},
            "failed": self.failed,
            "elapsed_ms": self.elapsed_ms,
            "console_output": self.console_output(),
        }


def _describe(exc: BaseException) -> str:
    if isinstance(exc, ApiError):
        return redact_text(exc.message)
    text = str(exc).strip()
    return redact_text(f"{type(exc).__name__}: {text}" if text else type(exc).__name__)


def run_probe(name: str, probe: Probe) -> ProbeResult:
    """Run one probe; any exception becomes a failed result."""
    started = time.monotonic()
    try:
        outcome = probe()
    except Exception as exc:
        elapsed = round((time.monotonic() - started) * 1000, 1)
        logger.warning("readiness probe %s failed: %s", name, _describe(exc))
        return ProbeResult(name=name, ok=False, elapsed_ms=elapsed, detail=_describe(exc))
    elapsed = round((time.monotonic() - started) * 1000, 1)
    detail = redact_text(str(outcome)) if outcome not in (None, "") else None
    return ProbeResult(name=name, ok=True, elapsed_ms=elapsed, detail=detail)


class ReadinessAggregator:
    """Runs every dependency probe in parallel and rolls the results up.

    Total latency is bounded by the slowest probe, capped at
    ``timeout_s + grace_s``. A probe still running at that point is reported
    as timed out and abandoned.
    """

    def __init__(
        self,
        probes: Mapping[str, Probe],
        *,
        timeout_s: float = 10.0,
        grace_s: float = 0.5,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self._probes = dict(probes)
        self._timeout_s = timeout_s
        self._grace_s = max(0.0, grace_s)
        self._environ = environ

    @property
    def probe_names(self) -> list[str]:
        return list(self._probes)

    def check_all(self) -> ReadinessReport:
        env_checks = check_required_settings(self._environ)
        missing = [key for key, present in env_checks.items() if not present]
        started = time.monotonic()
        results: dict[str, ProbeResult] = {}
        if self._probes:
            results = self._run_all(started)
        elapsed = round((time.monotonic() - started) * 1000, 1)
        report = ReadinessReport(env_checks=env_checks, probes=results, elapsed_ms=elapsed, missing_keys=missing)
        logger.info(
            "readiness all_passed=%s failed=%s missing=%s elapsed_ms=%s",
            report.all_passed,
            ",".join(report.failed) or "-",
            ",".join(missing) or "-",
            elapsed,
        )
        return report

    def _run_all(self, started: float) -> dict[str, ProbeResult]:
        executor = ThreadPoolExecutor(max_workers=len(self._probes), thread_name_prefix="readiness")
        try:
            futures = {name: executor.submit(run_probe, name, probe) for name, probe in self._probes.items()}
            deadline = started + self._timeout_s + self._grace_s
            results: dict[str, ProbeResult] = {}
            for name, future in futures.items():
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    results[name] = future.result(timeout=remaining)
                except FutureTimeoutError:
                    future.cancel()
                    results[name] = ProbeResult(
                        name=name,
                        ok=False,
                        elapsed_ms=round((time.monotonic() - started) * 1000, 1),
                        detail=f"timed out after {self._timeout_s:g}s",
                    )
                    logger.warning("readiness probe %s timed out", name)
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
