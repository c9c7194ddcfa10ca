# /cexdash/core/security.py
# Credential gates and redaction helpers shared by the HTTP layer and the logger.
import hmac
from typing import NamedTuple

from pydantic import SecretStr

from cexdash.core.config import settings

ADMIN_ROUTE = "/dashboard"
TEAM_ROUTE = "/team-dashboard"

AUTH_FAILED_MESSAGE = "Authentication failed. Please check your API credentials."
AUTH_CONFIG_MESSAGE = "Authentication error. Please verify your configuration."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"

class LoginResult(NamedTuple):
    valid: bool
    route: str | None = None
    role: str | None = None

def _matches(provided: str | None, expected: SecretStr | None) -> bool:
    if expected is None or not expected.get_secret_value():
        return False
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.get_secret_value().encode("utf-8"))

def validate_withdraw_action_key(provided_key: str | None) -> bool:
    """A missing configured key rejects everything."""
    return _matches(provided_key, settings.WITHDRAW_ACTION_KEY)

def validate_dashboard_password(provided_password: str | None) -> LoginResult:
    """Resolve a login password to a role.

    The admin password wins if both passwords are configured to the same value.
    With no password configured nobody can log in.
    """
    if _matches(provided_password, settings.DASHBOARD_PASSWORD):
        return LoginResult(True, ADMIN_ROUTE, "admin")
    if _matches(provided_password, settings.TEAM_DASHBOARD_PASSWORD):
        return LoginResult(True, TEAM_ROUTE, "team")
    return LoginResult(False)

def sanitize_error_message(error: object) -> str:
    if isinstance(error, Exception):
        message = str(error)
        if "API-key" in message:
            return AUTH_FAILED_MESSAGE
        if "secret" in message:
            return AUTH_CONFIG_MESSAGE
        return message
    return UNKNOWN_ERROR_MESSAGE

def mask_api_key(key: str) -> str:
    if len(key) <= 8:
        return "****"
    return key[:4] + "****" + key[-4:]
