# /cexdash/core/validation.py
import math
import re
from decimal import Decimal

from cexdash.core.config import settings
from cexdash.core.models import ValidationResult, WithdrawRequest

COIN_PATTERN = re.compile(r"^[A-Z0-9]{2,10}$")
NETWORK_PATTERN = re.compile(r"^[A-Z0-9]{2,20}$")
MIN_ADDRESS_LENGTH = 20
MAX_ADDRESS_LENGTH = 200
MAX_TAG_LENGTH = 100

# Flat fee rates per coin; a rough estimate, not the exchange's live fee schedule.
FEE_RATES = {
    "BTC": 0.0005,
    "ETH": 0.005,
    "BNB": 0.001,
    "USDT": 1,
}
DEFAULT_FEE_RATE = 0.001

def parse_amount(raw) -> float | None:
    """Numeric amount from JSON input; ``None`` when it is not a number."""
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float, Decimal)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError:
            return None
    return None

def amount_decimal(raw) -> Decimal:
    """Exact Decimal for an amount that already passed validation; strings skip float."""
    if isinstance(raw, str):
        return Decimal(raw.strip())
    if isinstance(raw, (int, Decimal)):
        return Decimal(raw)
    return Decimal(str(raw))

def validate_withdraw_request(request: WithdrawRequest, max_amount: float | None = None) -> ValidationResult:
    """Check a withdrawal's shape and ranges, collecting every problem found."""
    if max_amount is None:
        max_amount = settings.WITHDRAW_MAX_AMOUNT
    errors = []

    if not request.coin:
        errors.append("Coin is required")
    elif not COIN_PATTERN.match(request.coin):
        errors.append("Invalid coin format")

    if not request.network:
        errors.append("Network is required")
    elif not NETWORK_PATTERN.match(request.network):
        errors.append("Invalid network format")

    if not request.address:
        errors.append("Address is required")
    elif not MIN_ADDRESS_LENGTH <= len(request.address) <= MAX_ADDRESS_LENGTH:
        errors.append("Address length must be between 20 and 200 characters")

    amount = parse_amount(request.amount)
    if amount is None:
        errors.append("Amount must be a number")
    elif not math.isfinite(amount):
        errors.append("Amount must be a finite number")
    elif amount <= 0:
        errors.append("Amount must be greater than 0")
    elif amount > max_amount:
        errors.append("Amount exceeds maximum limit")

    if request.address_tag and len(request.address_tag) > MAX_TAG_LENGTH:
        errors.append("Address tag is too long")

    return ValidationResult(valid=not errors, errors=errors)

def estimate_withdraw_fee(coin: str, amount: float) -> float:
    return amount * FEE_RATES.get(coin, DEFAULT_FEE_RATE)
