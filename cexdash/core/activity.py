# /cexdash/core/activity.py
import threading
import time
import uuid
from collections import deque
from typing import Dict, List, Literal

from pydantic import BaseModel

from cexdash.core.logger import get_logger

log = get_logger(__name__)

ActivityStatus = Literal["success", "error", "pending"]

EXPLORERS: Dict[str, str] = {
    "BTC": "https://www.blockchain.com/btc/tx/",
    "ETH": "https://etherscan.io/tx/",
    "BSC": "https://bscscan.com/tx/",
    "POLYGON": "https://polygonscan.com/tx/",
    "TRX": "https://tronscan.org/#/transaction/",
    "SOL": "https://explorer.solana.com/tx/",
    "USDT_ETH": "https://etherscan.io/tx/",
    "USDT_BSC": "https://bscscan.com/tx/",
    "USDT_POLYGON": "https://polygonscan.com/tx/",
    "USDT_TRX": "https://tronscan.org/#/transaction/",
}

def explorer_url(coin: str, network: str, tx_id: str) -> str:
    """Block explorer link for a transfer, or "" when the network is unknown."""
    key = f"USDT_{network}" if coin == "USDT" else network
    prefix = EXPLORERS.get(key)
    return prefix + tx_id if tx_id and prefix else ""

class ActivityEntry(BaseModel):
    id: str
    action: str
    timestamp: int
    status: ActivityStatus

class ActivityLog:
    """Bounded in-memory record of dashboard actions, newest kept."""
    def __init__(self, max_entries: int = 50):
        self._entries: deque[ActivityEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, action: str, status: ActivityStatus = "success") -> ActivityEntry:
        now = int(time.time() * 1000)
        entry = ActivityEntry(id=f"activity_{now}_{uuid.uuid4().hex[:8]}", action=action, timestamp=now, status=status)
        with self._lock:
            self._entries.append(entry)
        log.info("ACTIVITY_RECORDED", action=action, status=status)
        return entry

    def recent(self) -> List[ActivityEntry]:
        with self._lock:
            return list(reversed(self._entries))
