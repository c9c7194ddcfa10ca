# /cexdash/core/decorators.py
# Reusable decorators for operational resilience.
import logging
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential, before_sleep_log
from cexdash.adapters.transport import TransportError
from cexdash.core.logger import get_logger

log = get_logger(__name__)

# Idempotent public reads only. Signed calls and withdrawals are never retried.
retriable_read_call = retry(
    retry=retry_if_exception_type(TransportError),
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=1),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True
)
