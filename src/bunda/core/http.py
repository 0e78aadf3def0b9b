"""
Outbound HTTP for the geocoding provider.

`get_json` performs one GET and decodes the body. Transport errors, timeouts and
non-2xx responses raise `httpx.HTTPError`; the gateway turns those into fallbacks.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "bunda/0.1.0"


def get_json(url: str, *, params: dict[str, Any] | None = None, timeout_seconds: float = 10) -> Any:
    """GET `url` and return the decoded JSON body.

    The `access_token` parameter is kept out of the debug log.
    """
    logger.debug("GET %s %s", url, {k: v for k, v in (params or {}).items() if k != "access_token"})
    resp = httpx.get(url, params=params, headers={"User-Agent": USER_AGENT}, timeout=timeout_seconds)
    resp.raise_for_status()
    return resp.json()
