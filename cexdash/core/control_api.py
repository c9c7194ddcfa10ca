# /cexdash/core/control_api.py
import json
import math
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, HTTPException, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from cexdash.adapters.exchange import CredentialError, ExchangeClient, ExchangeError
from cexdash.core.activity import ActivityLog, explorer_url
from cexdash.core.config import settings
from cexdash.core.logger import get_logger
from cexdash.core.rate_limiter import RateLimiter
from cexdash.core.security import AUTH_FAILED_MESSAGE, sanitize_error_message, validate_dashboard_password
from cexdash.core.validation import estimate_withdraw_fee, parse_amount
from cexdash.core.withdrawal import WithdrawalAuthorizer, WithdrawalRejected

log = get_logger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

# Body that fails to parse for these routes gets the route's own 400 message.
BAD_REQUEST_MESSAGES = {
    "/auth/login": "Password required",
    "/account/estimate-fee": "Invalid parameters",
}

@dataclass
class Services:
    client: ExchangeClient
    limiter: RateLimiter
    activity: ActivityLog
    authorizer: WithdrawalAuthorizer

def build_services(client: ExchangeClient | None = None, limiter: RateLimiter | None = None) -> Services:
    client = client or ExchangeClient()
    limiter = limiter or RateLimiter()
    activity = ActivityLog(settings.ACTIVITY_LOG_SIZE)
    return Services(client, limiter, activity, WithdrawalAuthorizer(client, limiter, activity))

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

class LoginRequest(BaseModel):
    password: str | None = None

class FeeEstimateRequest(BaseModel):
    coin: str | None = None
    amount: Any = None

def get_services(request: Request) -> Services:
    return request.app.state.services

def is_authenticated(request: Request) -> bool:
    return request.session.get("authenticated") is True

def require_session(request: Request):
    if not is_authenticated(request):
        raise HTTPException(status_code=401, detail="Unauthorized")

def require_admin(request: Request):
    require_session(request)
    if request.session.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")

def client_address(request: Request) -> str:
    # Forwarded headers are only honoured by uvicorn for FORWARDED_ALLOW_IPS.
    return request.client.host if request.client else "unknown"

def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")

def usd_price(asset: str, prices: Dict[str, str]) -> Decimal:
    if asset == "USDT":
        return Decimal("1")
    return _decimal(prices.get(f"{asset}USDT", "0"))

def _public_error(error: str | None) -> str | None:
    return sanitize_error_message(Exception(error)) if error else None

def _now_ms() -> int:
    return int(time.time() * 1000)

def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="cexdash", version="0.1.0")
    app.state.services = services or build_services()

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET.get_secret_value(),
        session_cookie="cexdash_session",
        max_age=settings.SESSION_MAX_AGE,
        same_site="strict",
        https_only=False,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        message = BAD_REQUEST_MESSAGES.get(request.url.path, "Invalid request")
        return JSONResponse({"error": message}, status_code=400)

    @app.get("/healthz")
    async def healthz(svc: Services = Depends(get_services)):
        return {"status": "ok", "mock": svc.client.use_mock}

    @app.post("/auth/login")
    async def login(request: Request, body: LoginRequest):
        if not body.password:
            raise HTTPException(status_code=400, detail="Password required")
        result = validate_dashboard_password(body.password)
        if not result.valid:
            log.warning("LOGIN_REJECTED", client=client_address(request))
            raise HTTPException(status_code=401, detail="Invalid password")
        request.session.clear()
        request.session["authenticated"] = True
        request.session["role"] = result.role
        log.info("LOGIN_ACCEPTED", role=result.role, client=client_address(request))
        return {"success": True, "route": result.route, "role": result.role}

    @app.post("/auth/logout")
    async def logout(request: Request):
        request.session.clear()
        return {"success": True}

    @app.get("/auth/check")
    async def check(request: Request):
        if is_authenticated(request):
            return {"authenticated": True, "role": request.session.get("role")}
        return JSONResponse({"authenticated": False}, status_code=401)

    @app.get("/account/balances", dependencies=[Depends(require_session)])
    async def balances(svc: Services = Depends(get_services)):
        result = await svc.client.get_account_balances()
        prices = (await svc.client.get_prices()).data
        rows: List[Dict[str, Any]] = []
        total = Decimal("0")
        for b in result.data:
            if b.free <= 0 and b.locked <= 0:
                continue
            usd_value = b.total * usd_price(b.asset, prices)
            total += usd_value
            row = {"asset": b.asset, "free": float(b.free), "locked": float(b.locked), "usdValue": float(usd_value)}
            if b.asset == "USDT" and settings.USDT_DEPOSIT_ADDRESS:
                row["walletAddress"] = settings.USDT_DEPOSIT_ADDRESS
                row["network"] = settings.USDT_DEPOSIT_NETWORK
            rows.append(row)
        return {"balances": rows, "totalUSD": float(total), "timestamp": _now_ms(), "error": _public_error(result.error)}

    @app.get("/account/deposits", dependencies=[Depends(require_session)])
    async def deposits(
        coin: str | None = Query(None),
        start_time: int | None = Query(None, alias="startTime"),
        end_time: int | None = Query(None, alias="endTime"),
        svc: Services = Depends(get_services),
    ):
        result = await svc.client.get_deposit_history(coin, start_time, end_time)
        prices = (await svc.client.get_prices()).data
        rows = []
        total = Decimal("0")
        for d in result.data:
            usd_value = d.amount * usd_price(d.coin, prices)
            total += usd_value
            rows.append({
                "id": d.id,
                "coin": d.coin,
                "amount": float(d.amount),
                "usdValue": float(usd_value),
                "insertTime": d.insert_time,
                "status": "Completed" if d.status == 1 else "Pending",
                "txId": d.tx_id,
                "network": d.network,
                "explorerUrl": explorer_url(d.coin, d.network, d.tx_id),
            })
        return {"deposits": rows, "totalUSD": float(total), "timestamp": _now_ms(), "error": _public_error(result.error)}

    @app.get("/account/activity", dependencies=[Depends(require_session)])
    async def activity(svc: Services = Depends(get_services)):
        deposit_result = await svc.client.get_deposit_history()
        withdraw_result = await svc.client.get_withdraw_history()
        failed = not (deposit_result.ok and withdraw_result.ok)
        svc.activity.record("Fetched exchange activity", "error" if failed else "success")

        def transfer(t) -> Dict[str, Any]:
            return {
                "coin": t.coin,
                "network": t.network,
                "amount": float(t.amount),
                "status": t.status,
                "txId": t.tx_id,
                "explorerUrl": explorer_url(t.coin, t.network, t.tx_id),
            }

        return {
            "activities": [e.model_dump() for e in svc.activity.recent()],
            "data": {
                "deposits": [transfer(d) for d in deposit_result.data],
                "withdrawals": [transfer(w) for w in withdraw_result.data],
            },
            "error": _public_error(deposit_result.error or withdraw_result.error),
        }

    @app.post("/account/withdraw")
    async def withdraw(
        request: Request,
        x_api_action_key: str | None = Header(None),
        svc: Services = Depends(get_services),
    ):
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None
        try:
            result = await svc.authorizer.authorize_and_submit(
                is_authenticated(request), x_api_action_key, client_address(request), payload
            )
        except WithdrawalRejected as e:
            return JSONResponse({"error": e.message, "errors": e.errors}, status_code=e.status_code)
        except CredentialError as e:
            log.error("WITHDRAW_CREDENTIAL_FAILURE", code=e.code)
            return JSONResponse({"error": AUTH_FAILED_MESSAGE}, status_code=500)
        except ExchangeError as e:
            log.error("WITHDRAW_FAILED", category=e.category, code=e.code)
            return JSONResponse({"error": sanitize_error_message(e)}, status_code=500)
        return result.model_dump()

    @app.post("/account/estimate-fee", dependencies=[Depends(require_session)])
    async def estimate_fee(body: FeeEstimateRequest):
        amount = parse_amount(body.amount)
        if not body.coin or amount is None or not math.isfinite(amount) or amount <= 0:
            raise HTTPException(status_code=400, detail="Invalid parameters")
        fee = estimate_withdraw_fee(body.coin, amount)
        return {"coin": body.coin, "amount": amount, "estimatedFee": fee, "total": amount + fee}

    @app.post("/admin/validate-key", dependencies=[Depends(require_admin)])
    async def validate_key(svc: Services = Depends(get_services)):
        try:
            capabilities = await svc.client.validate_api_key()
        except ExchangeError as e:
            log.error("API_KEY_VALIDATION_FAILED", category=e.category)
            return JSONResponse(
                {"canRead": False, "canWithdraw": False, "error": "Failed to validate API key"}, status_code=500
            )
        return capabilities.model_dump(by_alias=True)

    return app

app = create_app()
