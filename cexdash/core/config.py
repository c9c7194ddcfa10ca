# /cexdash/core/config.py
import secrets
from pydantic_settings import BaseSettings
from pydantic import Field, SecretStr
from typing import List

DEFAULT_CEX_BASE_URLS = [
    "https://api.binance.com",
    "https://api1.binance.com",
    "https://api2.binance.com",
    "https://api3.binance.com",
]

class Settings(BaseSettings):
    # Exchange credentials
    BINANCE_API_KEY: SecretStr | None = None
    BINANCE_API_SECRET: SecretStr | None = None
    CEX_BASE_URLS: List[str] = Field(default_factory=lambda: list(DEFAULT_CEX_BASE_URLS))
    RECV_WINDOW_MS: int = 60000

    # Dashboard access
    DASHBOARD_PASSWORD: SecretStr | None = None
    TEAM_DASHBOARD_PASSWORD: SecretStr | None = None
    WITHDRAW_ACTION_KEY: SecretStr | None = None
    SESSION_SECRET: SecretStr = Field(default_factory=lambda: SecretStr(secrets.token_urlsafe(32)))
    SESSION_MAX_AGE: int = 86400

    # Network budgets (seconds)
    PROBE_TIMEOUT: float = 5.0
    TIME_SYNC_TIMEOUT: float = 7.0
    PRICES_TIMEOUT: float = 9.0
    ACCOUNT_TIMEOUT: float = 10.0
    WITHDRAW_TIMEOUT: float = 15.0

    # Withdrawal policy
    WITHDRAW_MAX_AMOUNT: float = 1_000_000
    WITHDRAW_RATE_LIMIT_MAX: int = 1
    WITHDRAW_RATE_LIMIT_WINDOW_MS: int = 60000

    # Presentation
    USDT_DEPOSIT_ADDRESS: str | None = None
    USDT_DEPOSIT_NETWORK: str = "TRC20"
    ACTIVITY_LOG_SIZE: int = 50

    # Operational Settings
    USE_MOCK_SERVER: bool = False
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: SecretStr | None = None
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8080
    # Proxies whose X-Forwarded-For is trusted for the client address (uvicorn syntax).
    FORWARDED_ALLOW_IPS: str = "127.0.0.1"

    def secret_values(self) -> List[str]:
        """Every configured secret in plain form, for log masking."""
        fields = (
            self.BINANCE_API_KEY,
            self.BINANCE_API_SECRET,
            self.DASHBOARD_PASSWORD,
            self.TEAM_DASHBOARD_PASSWORD,
            self.WITHDRAW_ACTION_KEY,
            self.SESSION_SECRET,
        )
        return [f.get_secret_value() for f in fields if f is not None and f.get_secret_value()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

try:
    settings = Settings()
except Exception as e:
    # Late import to avoid circular dependency only for logging the failure
    try:
        from cexdash.core.logger import get_logger, configure_logging
        configure_logging()
        log = get_logger("cexdash.config")
        log.critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    except Exception:
        print("FAILED_TO_LOAD_SETTINGS", e)
    raise SystemExit(1)
