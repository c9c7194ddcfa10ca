# /cexdash/core/config_validator.py
# A script to be run at startup to validate all configs and secrets.
from cexdash.core.config import settings
from cexdash.core.logger import log

def validate():
    log.info("--- CONFIG VALIDATION START ---")
    errors = []

    if not settings.USE_MOCK_SERVER:
        for var in ("BINANCE_API_KEY", "BINANCE_API_SECRET"):
            if not getattr(settings, var, None):
                errors.append(f"Missing required configuration: {var}")
    if not settings.CEX_BASE_URLS:
        errors.append("Missing required configuration: CEX_BASE_URLS")

    # These gates fail closed, so a gap disables the feature rather than the check.
    if not settings.WITHDRAW_ACTION_KEY:
        log.warning("WITHDRAW_ACTION_KEY_NOT_CONFIGURED", detail="All withdrawals will be refused.")
    if not settings.DASHBOARD_PASSWORD and not settings.TEAM_DASHBOARD_PASSWORD:
        log.warning("DASHBOARD_PASSWORDS_NOT_CONFIGURED", detail="All logins will be refused.")

    if errors:
        for error in errors:
            log.critical(error)
        raise ValueError("System configuration is incomplete. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---")

if __name__ == "__main__":
    validate()
