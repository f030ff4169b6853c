"""Standard HTTP client helpers for external integrations."""

from __future__ import annotations

from typing import Dict, Optional

import httpx

USER_AGENT = "PrintGuardian/1.0"


def _build_headers(api_key: Optional[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {"User-Agent": USER_AGENT}
    if api_key:
        headers["X-Api-Key"] = api_key
    return headers


def build_client(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    timeout: float = 10.0,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Provide a configured blocking HTTP client."""

    return httpx.Client(
        base_url=base_url or "",
        timeout=timeout,
        headers=_build_headers(api_key),
        transport=transport,
    )


__all__ = ["USER_AGENT", "build_client"]
