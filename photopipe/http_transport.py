"""
HttpTransport - Raw byte transfer to presigned upload URLs.
"""

import logging
from typing import Optional

import urllib3

from .errors import UploadTransferFailure
from .retry_policy import DEFAULT_BACKOFF_MS, DEFAULT_MAX_ATTEMPTS, is_transient, transient_retry

DEFAULT_TIMEOUT = 30.0


def should_retry_upload(error: BaseException) -> bool:
    """Network errors, throttling and 5xx responses are retried."""
    if isinstance(error, UploadTransferFailure):
        return error.status == 429 or error.status >= 500
    return is_transient(error)


class HttpTransport:
    """
    PUTs bytes to presigned URLs with a total timeout and bounded retries.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_ms: int = DEFAULT_BACKOFF_MS,
        http: Optional[urllib3.PoolManager] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.http = http or urllib3.PoolManager(
            timeout=urllib3.Timeout(total=timeout),
            retries=False,
        )
        self._retry = transient_retry(
            max_attempts=max_attempts,
            backoff_ms=backoff_ms,
            predicate=should_retry_upload,
        )

    def put(self, url: str, data: bytes, content_type: str) -> int:
        """
        Upload bytes to a presigned URL.

        Returns:
            HTTP status code

        Raises:
            UploadTransferFailure: Non-2xx response after retries
        """
        return self._retry(self._put)(url, data, content_type)

    def _put(self, url: str, data: bytes, content_type: str) -> int:
        response = self.http.request(
            'PUT',
            url,
            body=data,
            headers={'Content-Type': content_type},
        )
        if not 200 <= response.status < 300:
            raise UploadTransferFailure(response.status, url)
        self.logger.debug(f"Transferred {len(data)} bytes ({response.status})")
        return response.status
