from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from claimletter.errors import AdapterFailure, ApiError

T = TypeVar("T")


def call_with_deadline(adapter: str, fn: Callable[[], T], *, timeout_s: float) -> T:
    """Run ``fn`` on a worker thread and give up after ``timeout_s``.

    Library faults become ``AdapterFailure``; a missed deadline becomes a
    timeout failure. The call is never retried here.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"adapter-{adapter}")
    try:
        future = executor.submit(fn)
        try:
            return future.result(timeout=timeout_s)
        except FutureTimeoutError as exc:
            future.cancel()
            raise AdapterFailure(adapter, f"no response within {timeout_s:g}s", timeout=True) from exc
        except ApiError:
            raise
        except Exception as exc:
            raise AdapterFailure(adapter, f"{type(exc).__name__}: {exc}") from exc
    finally:
        # A timed-out worker is abandoned, not joined.
        executor.shutdown(wait=False, cancel_futures=True)
