from __future__ import annotations

import requests

from claimletter.errors import AdapterFailure

ADAPTER_NAME = "site"


class SiteReachabilityProbe:
    """GET the public site URL and require a 2xx answer."""

    def __init__(self, *, site_url: str, timeout_s: float = 10.0) -> None:
        self._site_url = site_url.strip()
        self._timeout_s = timeout_s

    def probe(self) -> str:
        if not self._site_url:
            raise AdapterFailure(ADAPTER_NAME, "SITE_URL is not configured", http_status=503)
        try:
            response = requests.get(self._site_url, timeout=self._timeout_s, allow_redirects=True)
        except requests.Timeout as exc:
            raise AdapterFailure(ADAPTER_NAME, f"no response within {self._timeout_s:g}s", timeout=True) from exc
        except requests.RequestException as exc:
            raise AdapterFailure(ADAPTER_NAME, f"{type(exc).__name__}: {exc}") from exc
        if not response.ok:
            raise AdapterFailure(ADAPTER_NAME, f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"
