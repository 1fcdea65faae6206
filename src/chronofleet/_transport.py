"""HTTP transport for routing and geocoding providers."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from chronofleet._redact import redact_url
from chronofleet.exceptions import ChronoTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles/mocks while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        ...


class HttpTransport:
    """aiohttp-backed transport returning decoded JSON bodies."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float = 10.0) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        """GET *url* with *params* and decode the JSON body.

        Raises :class:`ChronoTransportError` on network failures, non-200
        statuses and bodies that are not JSON.
        """
        safe_url = redact_url(url)
        try:
            async with self._http.get(url, params=dict(params), timeout=self._timeout) as resp:
                text = await resp.text()
                _logger.debug("GET %s -> %s", redact_url(str(resp.url)), resp.status)
                if resp.status != 200:
                    raise ChronoTransportError(
                        f"HTTP {resp.status} from {safe_url}: {text[:200]}",
                        status_code=resp.status,
                        url=safe_url,
                    )
        except ChronoTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ChronoTransportError(f"Request to {safe_url} failed: {exc}", url=safe_url) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ChronoTransportError(f"Invalid JSON from {safe_url}: {text[:200]}", url=safe_url) from exc
