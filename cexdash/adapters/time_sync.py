# /cexdash/adapters/time_sync.py
import time
from typing import Callable, Dict

from cexdash.adapters.endpoint import TIME_PATH, EndpointSelector, extract_server_time
from cexdash.adapters.transport import HttpTransport, TransportError
from cexdash.core.logger import get_logger

log = get_logger(__name__)

def wall_clock_ms() -> int:
    return int(time.time() * 1000)

class TimeSynchronizer:
    """
    Keeps the offset between the local clock and the exchange clock.

    The first ``ensure_synced`` fetches the server time once. Any failure
    leaves the offset at 0 and still counts as synced, so a bad first fetch
    pins the offset at 0 until ``reset`` is called or the process restarts.
    """
    def __init__(self, transport: HttpTransport, endpoints: EndpointSelector, timeout: float,
                 clock: Callable[[], int] = wall_clock_ms, headers: Dict[str, str] | None = None):
        self.transport = transport
        self.endpoints = endpoints
        self.timeout = timeout
        self.clock = clock
        self.headers = headers or {}
        self.offset_ms = 0
        self.synced = False

    async def ensure_synced(self) -> None:
        if self.synced:
            return
        try:
            base = await self.endpoints.resolve()
            response = await self.transport.request("GET", f"{base}{TIME_PATH}", headers=self.headers, timeout=self.timeout)
            server_time = extract_server_time(response.body)
            if server_time is None:
                log.warning("CEX_TIME_SYNC_INVALID_RESPONSE", status=response.status)
                self.offset_ms = 0
            else:
                self.offset_ms = server_time - self.clock()
                log.info("CEX_TIME_SYNCED", offset_ms=self.offset_ms)
        except TransportError as e:
            log.error("CEX_TIME_SYNC_FAILED", error=str(e))
            self.offset_ms = 0
        self.synced = True

    def reset(self) -> None:
        """Force the next ``ensure_synced`` to fetch the server time again."""
        self.synced = False

    def timestamp(self) -> int:
        return self.clock() + self.offset_ms
