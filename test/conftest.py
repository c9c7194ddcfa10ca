from urllib.parse import parse_qsl, urlsplit

import pytest
from pydantic import SecretStr

from cexdash.adapters.exchange import ExchangeClient
from cexdash.adapters.transport import HttpResponse, TransportError
from cexdash.core.config import settings

API_KEY = "test-api-key-0123456789"
API_SECRET = "test-api-secret-9876543210"
BASE_URL = "https://api.test"
LOCAL_NOW = 1_700_000_000_000
SERVER_NOW = LOCAL_NOW + 1_500

class FakeTransport:
    """Scripted stand-in for HttpTransport.

    Routes are looked up by full ``scheme://host/path`` first, then by path.
    A route is an HttpResponse, an exception to raise, or a callable
    ``(method, url) -> HttpResponse``.
    """
    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    async def request(self, method, url, *, headers=None, timeout=10.0):
        self.calls.append({"method": method, "url": url, "headers": dict(headers or {}), "timeout": timeout})
        parts = urlsplit(url)
        handler = self.routes.get(f"{parts.scheme}://{parts.netloc}{parts.path}", self.routes.get(parts.path))
        if handler is None:
            raise TransportError(f"no route for {url}")
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler) and not isinstance(handler, HttpResponse):
            handler = handler(method, url)
        return handler

    def calls_to(self, path):
        return [c for c in self.calls if urlsplit(c["url"]).path == path]

def query_of(url):
    return urlsplit(url).query

def params_of(url):
    return dict(parse_qsl(query_of(url)))

class SpyClient(ExchangeClient):
    """Mock-mode client that counts the calls the withdrawal flow makes."""
    def __init__(self, **kwargs):
        kwargs.setdefault("use_mock", True)
        super().__init__(**kwargs)
        self.balance_calls = 0
        self.withdraw_calls = []

    async def get_account_balances(self):
        self.balance_calls += 1
        return await super().get_account_balances()

    async def initiate_withdraw(self, coin, network, address, amount, address_tag=None):
        self.withdraw_calls.append((coin, network, address, amount, address_tag))
        return await super().initiate_withdraw(coin, network, address, amount, address_tag)

@pytest.fixture
def transport():
    return FakeTransport({"/api/v3/time": HttpResponse(200, {"serverTime": SERVER_NOW})})

@pytest.fixture
def make_client(transport):
    def _make(**kwargs):
        kwargs.setdefault("api_key", API_KEY)
        kwargs.setdefault("api_secret", API_SECRET)
        kwargs.setdefault("use_mock", False)
        kwargs.setdefault("base_urls", [BASE_URL])
        kwargs.setdefault("transport", transport)
        kwargs.setdefault("clock", lambda: LOCAL_NOW)
        return ExchangeClient(**kwargs)
    return _make

@pytest.fixture
def secrets_configured(monkeypatch):
    monkeypatch.setattr(settings, "WITHDRAW_ACTION_KEY", SecretStr("action-key-123"))
    monkeypatch.setattr(settings, "DASHBOARD_PASSWORD", SecretStr("admin-pass"))
    monkeypatch.setattr(settings, "TEAM_DASHBOARD_PASSWORD", SecretStr("team-pass"))
