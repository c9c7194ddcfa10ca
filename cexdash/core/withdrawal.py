# /cexdash/core/withdrawal.py
# Fail-fast gate sequence in front of the one money-moving exchange call.
from enum import Enum
from typing import Any, Dict, List

from pydantic import ValidationError

from cexdash.adapters.exchange import ExchangeClient, ExchangeError
from cexdash.core.activity import ActivityLog
from cexdash.core.config import settings
from cexdash.core.logger import get_logger, WITHDRAWALS_REJECTED, WITHDRAWALS_SUBMITTED
from cexdash.core.models import WithdrawRequest, WithdrawResult
from cexdash.core.rate_limiter import RateLimiter
from cexdash.core.security import validate_withdraw_action_key
from cexdash.core.validation import amount_decimal, validate_withdraw_request

log = get_logger(__name__)

class RejectionReason(Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    THROTTLED = "throttled"
    INVALID = "invalid"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    OPERATION_FAILED = "operation_failed"

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self]

STATUS_CODES = {
    RejectionReason.UNAUTHORIZED: 401,
    RejectionReason.FORBIDDEN: 403,
    RejectionReason.THROTTLED: 429,
    RejectionReason.INVALID: 400,
    RejectionReason.INSUFFICIENT_FUNDS: 400,
    RejectionReason.OPERATION_FAILED: 500,
}

class WithdrawalRejected(Exception):
    """A withdrawal stopped at one of the gates, or failed at the exchange."""
    def __init__(self, reason: RejectionReason, message: str, errors: List[str] | None = None):
        self.reason = reason
        self.message = message
        self.errors = errors or []
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return self.reason.status_code

class WithdrawalAuthorizer:
    """
    Runs a withdrawal request through its gates in a fixed order:

    1. session, 2. action key, 3. rate limit, 4. request shape,
    5. free balance, 6. submission to the exchange.

    The first failing gate raises ``WithdrawalRejected``. Only a request that
    reaches the rate-limit gate consumes a slot. Nothing is retried.
    """
    def __init__(self, client: ExchangeClient, limiter: RateLimiter, activity: ActivityLog,
                 max_attempts: int | None = None, window_ms: int | None = None):
        self.client = client
        self.limiter = limiter
        self.activity = activity
        self.max_attempts = max_attempts or settings.WITHDRAW_RATE_LIMIT_MAX
        self.window_ms = window_ms or settings.WITHDRAW_RATE_LIMIT_WINDOW_MS

    def _reject(self, reason: RejectionReason, message: str, activity: str, errors: List[str] | None = None):
        WITHDRAWALS_REJECTED.labels(reason.value).inc()
        self.activity.record(activity, "error")
        log.warning("WITHDRAW_REJECTED", reason=reason.name, detail=message, errors=errors or [])
        raise WithdrawalRejected(reason, message, errors)

    def _parse(self, payload: Dict[str, Any]) -> WithdrawRequest:
        try:
            return WithdrawRequest.model_validate(payload)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            self._reject(RejectionReason.INVALID, "Invalid withdrawal parameters",
                         "Withdrawal validation failed", [f"Invalid value for {f}" for f in fields])

    async def authorize_and_submit(self, authenticated: bool, action_key: str | None, client_id: str,
                                   payload: Dict[str, Any] | None) -> WithdrawResult:
        if not authenticated:
            self._reject(RejectionReason.UNAUTHORIZED, "Unauthorized", "Unauthenticated withdrawal attempt")

        if not validate_withdraw_action_key(action_key):
            self._reject(RejectionReason.FORBIDDEN, "Invalid action key", "Withdrawal attempt with invalid action key")

        if not self.limiter.allow(client_id, self.max_attempts, self.window_ms):
            self._reject(RejectionReason.THROTTLED,
                         "Too many withdrawal attempts. Please wait before trying again.",
                         "Withdrawal rate limit exceeded")

        request = self._parse(payload if isinstance(payload, dict) else {})
        result = validate_withdraw_request(request)
        if not result.valid:
            self._reject(RejectionReason.INVALID, "Invalid withdrawal parameters",
                         f"Withdrawal validation failed for {request.coin or 'unknown coin'}", result.errors)
        amount = amount_decimal(request.amount)

        balances = await self.client.get_account_balances()
        if not balances.ok:
            self._reject(RejectionReason.OPERATION_FAILED,
                         "Unable to verify account balance. Please try again later.",
                         f"Withdrawal failed: balance check unavailable for {request.coin}")
        balance = next((b for b in balances.data if b.asset == request.coin), None)
        if balance is None:
            self._reject(RejectionReason.INSUFFICIENT_FUNDS,
                         f"Insufficient balance. {request.coin} not found in your account",
                         f"Withdrawal failed: {request.coin} not found in balances")
        if balance.free < amount:
            self._reject(RejectionReason.INSUFFICIENT_FUNDS,
                         f"Insufficient balance. Available: {balance.free} {request.coin}",
                         f"Withdrawal failed: insufficient balance for {request.coin}")

        try:
            submitted = await self.client.initiate_withdraw(
                request.coin, request.network, request.address, amount, request.address_tag
            )
        except ExchangeError as e:
            self.activity.record(f"Withdrawal error: {e.category}", "error")
            WITHDRAWALS_REJECTED.labels("exchange_" + e.category).inc()
            raise

        WITHDRAWALS_SUBMITTED.labels(request.coin).inc()
        self.activity.record(f"Withdrawal initiated: {amount} {request.coin} to {request.address[:10]}...", "success")
        return WithdrawResult(id=submitted.id, status="success", message="Withdrawal initiated successfully")
