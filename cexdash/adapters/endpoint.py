# /cexdash/adapters/endpoint.py
from typing import Any, Dict, List

from cexdash.adapters.transport import HttpTransport, TransportError
from cexdash.core.logger import get_logger

log = get_logger(__name__)

TIME_PATH = "/api/v3/time"

def extract_server_time(body: Any) -> int | None:
    """``serverTime`` from a time-check response, or None if it is not numeric."""
    if not isinstance(body, dict):
        return None
    value = body.get("serverTime")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)

class EndpointSelector:
    """
    Picks the base URL used for every exchange call.

    Candidates are probed in order and the first one whose time check returns
    a numeric ``serverTime`` wins. If none does, the first candidate is used
    anyway. The choice is kept for the lifetime of the instance; concurrent
    first calls may both probe but always converge on the same answer.
    """
    def __init__(self, transport: HttpTransport, candidates: List[str], timeout: float, headers: Dict[str, str] | None = None):
        if not candidates:
            raise ValueError("At least one exchange endpoint is required.")
        self.transport = transport
        self.candidates = [c.rstrip("/") for c in candidates]
        self.timeout = timeout
        self.headers = headers or {}
        self.selected: str | None = None

    async def resolve(self) -> str:
        if self.selected:
            return self.selected

        for url in self.candidates:
            try:
                response = await self.transport.request("GET", f"{url}{TIME_PATH}", headers=self.headers, timeout=self.timeout)
            except TransportError as e:
                log.warning("CEX_ENDPOINT_UNREACHABLE", url=url, error=str(e))
                continue
            if extract_server_time(response.body) is not None:
                self.selected = url
                log.info("CEX_ENDPOINT_SELECTED", url=url)
                return url
            log.warning("CEX_ENDPOINT_NO_SERVER_TIME", url=url, status=response.status)

        self.selected = self.candidates[0]
        log.warning("CEX_ENDPOINT_UNVERIFIED_DEFAULT", url=self.selected)
        return self.selected
