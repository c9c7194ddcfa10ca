# /cexdash/adapters/transport.py
import asyncio
import json
from typing import Any, Dict, NamedTuple

import aiohttp
from yarl import URL

from cexdash.core.logger import get_logger

log = get_logger(__name__)

class TransportError(Exception):
    """The request never produced an HTTP response (timeout, DNS, reset)."""

class HttpResponse(NamedTuple):
    status: int
    body: Any  # decoded JSON, or None when the body was not JSON

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

def decode_body(status: int, raw: bytes) -> Any:
    """JSON from a raw response body; None for an empty, undecodable or non-JSON body."""
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        log.warning("HTTP_NON_JSON_RESPONSE", status=status, snippet=raw[:120].decode("utf-8", "replace"))
        return None

class HttpTransport:
    """One-shot aiohttp requests with a hard total timeout per call."""

    async def request(self, method: str, url: str, *, headers: Dict[str, str] | None = None, timeout: float = 10.0) -> HttpResponse:
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                # encoded=True: the query was signed as-is and must not be re-quoted.
                async with session.request(method, URL(url, encoded=True), headers=headers) as response:
                    status = response.status
                    raw = await response.read()
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Network error: {e}") from e

        return HttpResponse(status, decode_body(status, raw))
