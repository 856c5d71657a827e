"""
Retry policy - Bounded exponential-backoff retry around idempotent remote calls.
"""

import logging
from typing import Callable

import mysql.connector
import urllib3
from botocore.exceptions import ClientError, ConnectionError as BotoConnectionError, HTTPClientError
from retrying import retry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 30000

THROTTLING_CODES = {
    'Throttling',
    'ThrottlingException',
    'SlowDown',
    'RequestTimeout',
    'RequestTimeTooSkewed',
    'ServiceUnavailable',
    'InternalError',
}


def is_transient(error: BaseException) -> bool:
    """
    Decide whether a failed remote call is worth repeating.

    Connection resets, timeouts, throttling and 5xx responses are transient;
    missing keys, bad credentials and other 4xx responses are not.
    """
    if isinstance(error, (BotoConnectionError, HTTPClientError)):
        return True
    if isinstance(error, ClientError):
        code = error.response.get('Error', {}).get('Code', '')
        status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode', 0)
        return code in THROTTLING_CODES or status >= 500
    if isinstance(error, urllib3.exceptions.HTTPError):
        return True
    if isinstance(error, (
        mysql.connector.errors.InterfaceError,
        mysql.connector.errors.OperationalError,
        mysql.connector.errors.PoolError,
    )):
        return True
    return False


def transient_retry(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_ms: int = DEFAULT_BACKOFF_MS,
    predicate: Callable[[BaseException], bool] = is_transient,
) -> Callable:
    """
    Build a retry decorator for idempotent calls.

    Args:
        max_attempts: Total attempts including the first call
        backoff_ms: Exponential backoff multiplier in milliseconds
        predicate: Returns True for exceptions that should be retried

    Returns:
        Decorator that re-raises the last exception once attempts run out
    """
    def should_retry(error: BaseException) -> bool:
        transient = predicate(error)
        if transient:
            logger.warning(f"Transient failure, retrying: {error}")
        return transient

    return retry(
        retry_on_exception=should_retry,
        stop_max_attempt_number=max_attempts,
        wait_exponential_multiplier=backoff_ms,
        wait_exponential_max=MAX_BACKOFF_MS,
    )
