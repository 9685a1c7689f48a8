# bounded retry policies for backend calls
import logging

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from db.errors import is_transient
from utils.logger import get_logger

_logger = get_logger(__name__)

ROLE_FETCH_ATTEMPTS = 3
ASSIGNMENTS_ATTEMPTS = 3  # first try plus two retries


def role_fetch_retrying(wait=None) -> AsyncRetrying:
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(ROLE_FETCH_ATTEMPTS),
        wait=wait if wait is not None else wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(_logger, logging.WARNING),
    )


def assignments_retrying(wait=None) -> AsyncRetrying:
    # delay min(1s * 2^attempt, 10s)
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(ASSIGNMENTS_ATTEMPTS),
        wait=wait if wait is not None else wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(_logger, logging.WARNING),
    )
