# /cexdash/core/signer.py
"""HMAC-SHA256 request signing for the exchange's private endpoints.

The digest covers the exact query string that goes on the wire, so the
string is built once by :func:`encode_params` and reused for both the
signature and the request URL.
"""
import hmac
import hashlib
from decimal import Decimal
from typing import Any, Mapping
from urllib.parse import urlencode

def sign(secret: str, query: str) -> str:
    """Lowercase hex HMAC-SHA256 of ``query`` keyed by ``secret`` (both UTF-8)."""
    return hmac.new(secret.encode("utf-8"), query.encode("utf-8"), hashlib.sha256).hexdigest()

def _wire_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

def encode_params(params: Mapping[str, Any]) -> str:
    """``key=value&key=value`` in insertion order, skipping ``None`` values."""
    return urlencode([(k, _wire_value(v)) for k, v in params.items() if v is not None])

def signed_query(secret: str, params: Mapping[str, Any]) -> str:
    """Encoded parameters followed by a trailing ``signature`` over them."""
    query = encode_params(params)
    return f"{query}&signature={sign(secret, query)}"
