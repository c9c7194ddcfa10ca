# /cexdash/adapters/mock.py
# Canned exchange data served when mock mode is on. Nothing here touches the network.
import time
from decimal import Decimal
from typing import Dict, List

from cexdash.core.models import ApiKeyCapabilities, Balance, Deposit, Withdrawal, WithdrawResult

DAY_MS = 86_400_000

MOCK_PRICES: Dict[str, str] = {
    "BTCUSDT": "43000",
    "ETHUSDT": "2300",
    "BNBUSDT": "600",
    "USDTUSDT": "1",
}

def mock_balances() -> List[Balance]:
    return [
        Balance(asset="BTC", free=Decimal("0.5"), locked=Decimal("0.1")),
        Balance(asset="ETH", free=Decimal("5.0"), locked=Decimal("1.0")),
        Balance(asset="USDT", free=Decimal("10000"), locked=Decimal("2000")),
        Balance(asset="BNB", free=Decimal("10"), locked=Decimal("0")),
    ]

def mock_deposits(coin: str | None = None) -> List[Deposit]:
    now = int(time.time() * 1000)
    deposits = [
        Deposit(id="1", coin="BTC", amount=Decimal("0.5"), network="BTC", status=1,
                insertTime=now - DAY_MS, txId="0x1234567890abcdef"),
        Deposit(id="2", coin="ETH", amount=Decimal("5"), network="ETH", status=1,
                insertTime=now - 2 * DAY_MS, txId="0xabcdef1234567890"),
    ]
    return [d for d in deposits if d.coin == coin] if coin else deposits

def mock_withdrawals() -> List[Withdrawal]:
    return []

def mock_capabilities() -> ApiKeyCapabilities:
    return ApiKeyCapabilities(can_read=True, can_withdraw=True)

def mock_withdraw_result() -> WithdrawResult:
    return WithdrawResult(id=f"withdraw_{int(time.time() * 1000)}", status="success")
