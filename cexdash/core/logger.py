# /cexdash/core/logger.py
import logging
import structlog
import sentry_sdk
from prometheus_client import Counter
from cexdash.core.config import settings
from cexdash.core.security import mask_api_key

# --- Prometheus Metrics ---
WITHDRAWALS_SUBMITTED = Counter("cexdash_withdrawals_submitted_total", "Withdrawals accepted by the exchange", ["coin"])
WITHDRAWALS_REJECTED = Counter("cexdash_withdrawals_rejected_total", "Withdrawals stopped before submission", ["reason"])
EXCHANGE_ERRORS = Counter("cexdash_exchange_errors_total", "Failed exchange calls", ["operation", "category"])
READ_FALLBACKS = Counter("cexdash_read_fallbacks_total", "Read operations answered with fallback data", ["operation"])

def _mask_value(value, secrets_, mask):
    if isinstance(value, str):
        for secret in secrets_:
            if secret in value:
                value = value.replace(secret, mask(secret))
        return value
    if isinstance(value, dict):
        return {k: _mask_value(v, secrets_, mask) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_mask_value(v, secrets_, mask) for v in value)
    return value

def make_secret_masker(mask):
    """Build a structlog processor that rewrites configured secrets to their masked form.

    Processors follow the structlog call signature:

        (logger, method_name, event_dict) -> event_dict
    """
    def mask_secrets(logger, method_name: str, event_dict: dict) -> dict:  # type: ignore[override]
        secrets_ = settings.secret_values()
        if not secrets_:
            return event_dict
        return {k: _mask_value(v, secrets_, mask) for k, v in event_dict.items()}
    return mask_secrets

def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN.get_secret_value(), traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            make_secret_masker(mask_api_key),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

def get_logger(name: str):
    return structlog.get_logger(name)

configure_logging()
log = get_logger("cexdash.system")
