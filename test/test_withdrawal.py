from decimal import Decimal

import pytest

from cexdash.adapters.exchange import CredentialError, OperationError
from cexdash.core.activity import ActivityLog
from cexdash.core.models import Balance, ReadResult, WithdrawResult
from cexdash.core.rate_limiter import RateLimiter
from cexdash.core.withdrawal import RejectionReason, WithdrawalAuthorizer, WithdrawalRejected

ACTION_KEY = "action-key-123"
GOOD_REQUEST = {"coin": "BTC", "network": "BTC", "address": "bc1q" + "x" * 30, "amount": 0.1}


class StubClient:
    def __init__(self, balances=None, withdraw_error=None):
        self.balances = balances if balances is not None else ReadResult(
            data=[Balance(asset="BTC", free=Decimal("0.5"), locked=Decimal("0.1"))]
        )
        self.withdraw_error = withdraw_error
        self.balance_calls = 0
        self.withdraw_calls = []

    async def get_account_balances(self):
        self.balance_calls += 1
        return self.balances

    async def initiate_withdraw(self, coin, network, address, amount, address_tag=None):
        self.withdraw_calls.append((coin, network, address, amount, address_tag))
        if self.withdraw_error:
            raise self.withdraw_error
        return WithdrawResult(id="w-1", status="success")


def make_authorizer(client, limiter=None):
    return WithdrawalAuthorizer(client, limiter or RateLimiter(), ActivityLog(10), max_attempts=1, window_ms=60_000)


async def rejection(authorizer, authenticated=True, key=ACTION_KEY, client_id="1.2.3.4", payload=None):
    with pytest.raises(WithdrawalRejected) as exc:
        await authorizer.authorize_and_submit(authenticated, key, client_id, payload or dict(GOOD_REQUEST))
    return exc.value


@pytest.mark.asyncio
async def test_successful_withdrawal(secrets_configured):
    client = StubClient()
    authorizer = make_authorizer(client)
    result = await authorizer.authorize_and_submit(True, ACTION_KEY, "1.2.3.4", dict(GOOD_REQUEST))
    assert result.id == "w-1" and result.status == "success"
    assert result.message == "Withdrawal initiated successfully"
    assert client.withdraw_calls == [("BTC", "BTC", GOOD_REQUEST["address"], Decimal("0.1"), None)]
    assert authorizer.activity.recent()[0].status == "success"


@pytest.mark.asyncio
async def test_unauthenticated_is_rejected_first(secrets_configured):
    client = StubClient()
    limiter = RateLimiter()
    error = await rejection(make_authorizer(client, limiter), authenticated=False, key=None)
    assert error.reason is RejectionReason.UNAUTHORIZED and error.status_code == 401
    assert limiter.tracked_identifiers() == 0 and client.balance_calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("key", [None, "", "wrong-key"])
async def test_bad_action_key_consumes_no_rate_limit_slot(secrets_configured, key):
    client = StubClient()
    limiter = RateLimiter()
    authorizer = make_authorizer(client, limiter)
    error = await rejection(authorizer, key=key)
    assert error.reason is RejectionReason.FORBIDDEN and error.status_code == 403
    assert limiter.tracked_identifiers() == 0
    # The slot is still available for a correctly keyed attempt.
    await authorizer.authorize_and_submit(True, ACTION_KEY, "1.2.3.4", dict(GOOD_REQUEST))


@pytest.mark.asyncio
async def test_unconfigured_action_key_blocks_every_withdrawal(monkeypatch):
    from cexdash.core.config import settings
    monkeypatch.setattr(settings, "WITHDRAW_ACTION_KEY", None)
    error = await rejection(make_authorizer(StubClient()), key="anything")
    assert error.reason is RejectionReason.FORBIDDEN


@pytest.mark.asyncio
async def test_second_attempt_in_window_is_throttled(secrets_configured):
    client = StubClient()
    authorizer = make_authorizer(client)
    await authorizer.authorize_and_submit(True, ACTION_KEY, "1.2.3.4", dict(GOOD_REQUEST))
    error = await rejection(authorizer)
    assert error.reason is RejectionReason.THROTTLED and error.status_code == 429
    assert client.balance_calls == 1 and len(client.withdraw_calls) == 1
    # Other clients have their own window.
    await authorizer.authorize_and_submit(True, ACTION_KEY, "5.6.7.8", dict(GOOD_REQUEST))


@pytest.mark.asyncio
async def test_invalid_request_lists_every_problem(secrets_configured):
    client = StubClient()
    error = await rejection(make_authorizer(client), payload={"coin": "btc", "address": "short", "amount": "abc"})
    assert error.reason is RejectionReason.INVALID and error.status_code == 400
    assert error.errors == [
        "Invalid coin format",
        "Network is required",
        "Address length must be between 20 and 200 characters",
        "Amount must be a number",
    ]
    assert client.balance_calls == 0


@pytest.mark.asyncio
async def test_invalid_request_still_counts_against_the_window(secrets_configured):
    client = StubClient()
    authorizer = make_authorizer(client)
    await rejection(authorizer, payload={"coin": "BTC", "amount": -1})
    error = await rejection(authorizer)
    assert error.reason is RejectionReason.THROTTLED


@pytest.mark.asyncio
async def test_wrongly_typed_fields_are_invalid(secrets_configured):
    error = await rejection(make_authorizer(StubClient()), payload={"coin": 5, "network": ["BTC"], "amount": 1})
    assert error.reason is RejectionReason.INVALID
    assert error.errors == ["Invalid value for coin", "Invalid value for network"]


@pytest.mark.asyncio
@pytest.mark.parametrize("free,message", [
    (Decimal("0.05"), "Insufficient balance. Available: 0.05 BTC"),
])
async def test_insufficient_free_balance_never_submits(secrets_configured, free, message):
    client = StubClient(ReadResult(data=[Balance(asset="BTC", free=free, locked=Decimal("10"))]))
    error = await rejection(make_authorizer(client))
    assert error.reason is RejectionReason.INSUFFICIENT_FUNDS and error.status_code == 400
    assert error.message == message
    assert client.withdraw_calls == []


@pytest.mark.asyncio
async def test_missing_coin_balance_is_insufficient(secrets_configured):
    client = StubClient(ReadResult(data=[Balance(asset="ETH", free=Decimal("9"), locked=Decimal("0"))]))
    error = await rejection(make_authorizer(client))
    assert error.reason is RejectionReason.INSUFFICIENT_FUNDS
    assert error.message.startswith("Insufficient balance")
    assert client.withdraw_calls == []


@pytest.mark.asyncio
async def test_unavailable_balances_block_submission(secrets_configured):
    client = StubClient(ReadResult(data=[], error="Get account balances failed: HTTP 503 (Code: 503)"))
    error = await rejection(make_authorizer(client))
    assert error.reason is RejectionReason.OPERATION_FAILED and error.status_code == 500
    assert client.withdraw_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("exchange_error", [
    CredentialError("Initiate withdrawal", "Invalid API-key, IP, or permissions for action.", -2015),
    OperationError("Initiate withdrawal", "Insufficient balance", -4026),
])
async def test_exchange_failures_propagate_and_are_recorded(secrets_configured, exchange_error):
    client = StubClient(withdraw_error=exchange_error)
    authorizer = make_authorizer(client)
    with pytest.raises(type(exchange_error)):
        await authorizer.authorize_and_submit(True, ACTION_KEY, "1.2.3.4", dict(GOOD_REQUEST))
    assert len(client.withdraw_calls) == 1
    latest = authorizer.activity.recent()[0]
    assert latest.status == "error" and exchange_error.category in latest.action


@pytest.mark.asyncio
async def test_string_amount_is_submitted_without_float_rounding(secrets_configured):
    client = StubClient()
    payload = {**GOOD_REQUEST, "amount": "0.123456789012345678901"}
    await make_authorizer(client).authorize_and_submit(True, ACTION_KEY, "1.2.3.4", payload)
    assert client.withdraw_calls[0][3] == Decimal("0.123456789012345678901")
