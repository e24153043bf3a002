# /gasfee/core/decorators.py
# Retry policy for service bootstrap. Estimate fetches are not
# wrapped: a failed poll is re-attempted by the next scheduled tick.
from tenacity import retry, stop_after_attempt, wait_exponential, before_sleep_log
from gasfee.core.logger import get_logger
import logging

log = get_logger(__name__)

retriable_startup_call = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True # Re-raise the last exception after retries are exhausted
)
