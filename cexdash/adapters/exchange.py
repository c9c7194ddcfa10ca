# /cexdash/adapters/exchange.py
# Signed REST client for the exchange. Reads degrade to fallbacks; withdrawals raise.
from typing import Any, Dict, List, TypeVar

from pydantic import ValidationError

from cexdash.adapters import mock
from cexdash.adapters.endpoint import EndpointSelector
from cexdash.adapters.time_sync import TimeSynchronizer, wall_clock_ms
from cexdash.adapters.transport import HttpResponse, HttpTransport, TransportError
from cexdash.core.config import settings
from cexdash.core.decorators import retriable_read_call
from cexdash.core.logger import get_logger, EXCHANGE_ERRORS, READ_FALLBACKS
from cexdash.core.models import (
    ApiKeyCapabilities,
    Balance,
    Deposit,
    ReadResult,
    Withdrawal,
    WithdrawResult,
)
from cexdash.core.security import mask_api_key
from cexdash.core.signer import signed_query

log = get_logger(__name__)

T = TypeVar("T")

ACCOUNT_PATH = "/api/v3/account"
TICKER_PATH = "/api/v3/ticker/price"
DEPOSIT_HISTORY_PATH = "/sapi/v1/capital/deposit/hisrec"
WITHDRAW_HISTORY_PATH = "/sapi/v1/capital/withdraw/history"
API_RESTRICTIONS_PATH = "/sapi/v1/account/apiRestrictions"
WITHDRAW_APPLY_PATH = "/sapi/v1/capital/withdraw/apply"

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

CREDENTIAL_CODES = {-2008, -2014, -2015}
CLOCK_SKEW_CODES = {-1021, -1022}

FALLBACK_PRICES: Dict[str, str] = dict(mock.MOCK_PRICES)

class ExchangeError(Exception):
    """A call reached the exchange (or tried to) and did not succeed."""
    category = "operation"

    def __init__(self, operation: str, message: str, code: int | None = None):
        self.operation = operation
        self.message = message
        self.code = code
        super().__init__(self.describe())

    def describe(self) -> str:
        suffix = f" (Code: {self.code})" if self.code is not None else ""
        return f"{self.operation} failed: {self.message}{suffix}"

class CredentialError(ExchangeError):
    category = "credential"

    def describe(self) -> str:
        return (
            "API key authentication failed. Check API key/secret, IP whitelist, "
            f"and region endpoint. Exchange: {self.message}"
        )

class ClockSkewError(ExchangeError):
    category = "clock_skew"

    def describe(self) -> str:
        return f"Timestamp sync error. {self.message}"

class OperationError(ExchangeError):
    category = "operation"

def translate_error(operation: str, response: HttpResponse) -> ExchangeError:
    """Map a non-successful exchange response onto the error taxonomy."""
    body = response.body if isinstance(response.body, dict) else {}
    code = body.get("code")
    if not isinstance(code, int) or isinstance(code, bool):
        code = response.status
    message = str(body.get("msg") or f"HTTP {response.status}")

    if code in CREDENTIAL_CODES or response.status in (401, 403):
        return CredentialError(operation, message, code)
    if code in CLOCK_SKEW_CODES:
        return ClockSkewError(operation, message, code)
    return OperationError(operation, message, code)

class ExchangeClient:
    """
    Talks to the exchange's REST API with HMAC-signed requests.

    One instance owns the endpoint choice and the clock offset for its
    lifetime. Mock mode is decided here, once, and every public operation
    then serves canned data without touching the network.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        use_mock: bool | None = None,
        base_urls: List[str] | None = None,
        transport: HttpTransport | None = None,
        clock=wall_clock_ms,
        recv_window_ms: int | None = None,
    ):
        if api_key is None and settings.BINANCE_API_KEY:
            api_key = settings.BINANCE_API_KEY.get_secret_value()
        if api_secret is None and settings.BINANCE_API_SECRET:
            api_secret = settings.BINANCE_API_SECRET.get_secret_value()
        self.api_key = api_key or ""
        self._api_secret = api_secret or ""
        self.use_mock = settings.USE_MOCK_SERVER if use_mock is None else use_mock
        self.recv_window_ms = recv_window_ms or settings.RECV_WINDOW_MS
        self.transport = transport or HttpTransport()
        self.endpoints = EndpointSelector(
            self.transport, base_urls or settings.CEX_BASE_URLS, settings.PROBE_TIMEOUT, headers=self._headers()
        )
        self.time_sync = TimeSynchronizer(
            self.transport, self.endpoints, settings.TIME_SYNC_TIMEOUT, clock=clock, headers=self._headers()
        )
        if self.use_mock:
            log.warning("CEX_CLIENT_MOCK_MODE")
        else:
            log.info("CEX_CLIENT_INITIALIZED", api_key=mask_api_key(self.api_key))

    def _headers(self) -> Dict[str, str]:
        return {
            "User-Agent": USER_AGENT,
            "X-MBX-APIKEY": self.api_key,
            "Accept": "application/json, text/plain, */*",
        }

    async def _signed_request(self, method: str, path: str, params: Dict[str, Any], timeout: float) -> HttpResponse:
        await self.time_sync.ensure_synced()
        base = await self.endpoints.resolve()
        payload = dict(params)
        payload["timestamp"] = self.time_sync.timestamp()
        payload["recvWindow"] = self.recv_window_ms
        query = signed_query(self._api_secret, payload)
        return await self.transport.request(method, f"{base}{path}?{query}", headers=self._headers(), timeout=timeout)

    def _expect_success(self, operation: str, response: HttpResponse) -> Any:
        if response.ok and response.body is not None:
            return response.body
        if response.ok:
            raise OperationError(operation, "Malformed response from exchange")
        error = translate_error(operation, response)
        if isinstance(error, ClockSkewError):
            # The next signed call re-syncs; this one is not retried.
            self.time_sync.reset()
        raise error

    def _read_failed(self, operation: str, error: Exception, fallback: T) -> ReadResult[T]:
        category = getattr(error, "category", "transport")
        log.warning("CEX_READ_FALLBACK", operation=operation, category=category, error=str(error))
        EXCHANGE_ERRORS.labels(operation, category).inc()
        READ_FALLBACKS.labels(operation).inc()
        return ReadResult(data=fallback, error=str(error))

    async def get_account_balances(self) -> ReadResult[List[Balance]]:
        if self.use_mock:
            return ReadResult(data=mock.mock_balances())
        operation = "Get account balances"
        try:
            response = await self._signed_request("GET", ACCOUNT_PATH, {}, settings.ACCOUNT_TIMEOUT)
            body = self._expect_success(operation, response)
            if not isinstance(body, dict) or not isinstance(body.get("balances"), list):
                raise OperationError(operation, "Unexpected balances response")
            balances = [Balance.model_validate(b) for b in body["balances"]]
        except (TransportError, ExchangeError, ValidationError) as e:
            return self._read_failed(operation, e, [])
        return ReadResult(data=balances)

    async def _history(self, operation: str, path: str, model, params: Dict[str, Any]) -> ReadResult[list]:
        try:
            response = await self._signed_request("GET", path, params, settings.ACCOUNT_TIMEOUT)
            body = self._expect_success(operation, response)
            if not isinstance(body, list):
                raise OperationError(operation, "Unexpected history response")
            items = [model.model_validate(item) for item in body]
        except (TransportError, ExchangeError, ValidationError) as e:
            return self._read_failed(operation, e, [])
        return ReadResult(data=items)

    async def get_deposit_history(self, coin: str | None = None, start_time: int | None = None,
                                  end_time: int | None = None) -> ReadResult[List[Deposit]]:
        if self.use_mock:
            return ReadResult(data=mock.mock_deposits(coin))
        params = {"coin": coin or None, "startTime": start_time, "endTime": end_time}
        return await self._history("Get deposit history", DEPOSIT_HISTORY_PATH, Deposit, params)

    async def get_withdraw_history(self, coin: str | None = None) -> ReadResult[List[Withdrawal]]:
        if self.use_mock:
            return ReadResult(data=mock.mock_withdrawals())
        return await self._history("Get withdraw history", WITHDRAW_HISTORY_PATH, Withdrawal, {"coin": coin or None})

    @retriable_read_call
    async def _fetch_prices(self) -> HttpResponse:
        base = await self.endpoints.resolve()
        return await self.transport.request("GET", f"{base}{TICKER_PATH}", headers=self._headers(),
                                            timeout=settings.PRICES_TIMEOUT)

    async def get_prices(self) -> ReadResult[Dict[str, str]]:
        """Ticker snapshot as ``{symbol: price}``; the static price set on any failure."""
        if self.use_mock:
            return ReadResult(data=dict(mock.MOCK_PRICES))
        operation = "Get prices"
        try:
            body = self._expect_success(operation, await self._fetch_prices())
            if not isinstance(body, list):
                raise OperationError(operation, "Unexpected prices response")
        except (TransportError, ExchangeError) as e:
            return self._read_failed(operation, e, dict(FALLBACK_PRICES))
        prices = {
            item["symbol"]: str(item["price"])
            for item in body
            if isinstance(item, dict) and item.get("symbol") and item.get("price")
        }
        return ReadResult(data=prices)

    async def validate_api_key(self) -> ApiKeyCapabilities:
        """
        Confirm the configured key can read, then probe whether it may withdraw.

        A failed read is raised (never reported as "read-only"); a failed
        permissions probe only downgrades ``can_withdraw``.
        """
        if self.use_mock:
            return mock.mock_capabilities()
        operation = "Validate API key"
        try:
            response = await self._signed_request("GET", ACCOUNT_PATH, {}, settings.ACCOUNT_TIMEOUT)
            self._expect_success(operation, response)
        except TransportError as e:
            EXCHANGE_ERRORS.labels(operation, "transport").inc()
            log.error("CEX_API_KEY_VALIDATION_FAILED", error=str(e))
            raise OperationError(operation, str(e)) from e
        except ExchangeError as e:
            EXCHANGE_ERRORS.labels(operation, e.category).inc()
            log.error("CEX_API_KEY_VALIDATION_FAILED", error=str(e), category=e.category)
            raise

        try:
            response = await self._signed_request("GET", API_RESTRICTIONS_PATH, {}, settings.ACCOUNT_TIMEOUT)
            body = self._expect_success(operation, response)
        except (TransportError, ExchangeError) as e:
            log.warning("CEX_API_RESTRICTIONS_UNAVAILABLE", error=str(e))
            return ApiKeyCapabilities(can_read=True, can_withdraw=False)
        can_withdraw = bool(body.get("enableWithdrawals", True)) if isinstance(body, dict) else True
        return ApiKeyCapabilities(can_read=True, can_withdraw=can_withdraw)

    async def initiate_withdraw(self, coin: str, network: str, address: str, amount,
                                address_tag: str | None = None) -> WithdrawResult:
        """Submit a withdrawal exactly once. Every failure is raised as an ``ExchangeError``."""
        if self.use_mock:
            return mock.mock_withdraw_result()
        operation = "Initiate withdrawal"
        params = {"coin": coin, "network": network, "address": address, "amount": amount}
        if address_tag:
            params["addressTag"] = address_tag
        try:
            response = await self._signed_request("POST", WITHDRAW_APPLY_PATH, params, settings.WITHDRAW_TIMEOUT)
            body = self._expect_success(operation, response)
        except TransportError as e:
            EXCHANGE_ERRORS.labels(operation, "transport").inc()
            log.error("CEX_WITHDRAW_TRANSPORT_FAILURE", coin=coin, error=str(e))
            raise OperationError(operation, str(e)) from e
        except ExchangeError as e:
            EXCHANGE_ERRORS.labels(operation, e.category).inc()
            log.error("CEX_WITHDRAW_REJECTED", coin=coin, category=e.category, code=e.code, error=e.message)
            raise

        if not isinstance(body, dict) or not body.get("id"):
            EXCHANGE_ERRORS.labels(operation, "operation").inc()
            raise OperationError(operation, "Malformed withdrawal response")
        log.info("CEX_WITHDRAW_SUBMITTED", coin=coin, network=network, withdraw_id=str(body["id"]))
        return WithdrawResult(id=str(body["id"]), status="success")
