"""Tests for HttpTransport class."""

import pytest
import urllib3
from unittest.mock import MagicMock

from photopipe.errors import UploadTransferFailure
from photopipe.http_transport import HttpTransport, should_retry_upload

URL = 'https://uploads.example.com/full/IMG_0001.jpg?sig=abc'


def response(status):
    return MagicMock(status=status)


class TestHttpTransport:
    """Tests for HttpTransport class."""

    def test_put(self):
        http = MagicMock()
        http.request.return_value = response(200)

        status = HttpTransport(http=http, backoff_ms=0).put(URL, b'bytes', 'image/jpeg')

        assert status == 200
        http.request.assert_called_once_with(
            'PUT', URL, body=b'bytes', headers={'Content-Type': 'image/jpeg'}
        )

    def test_rejected_upload_not_retried(self):
        http = MagicMock()
        http.request.return_value = response(403)

        with pytest.raises(UploadTransferFailure) as exc_info:
            HttpTransport(http=http, backoff_ms=0).put(URL, b'bytes', 'image/jpeg')

        assert exc_info.value.status == 403
        assert str(exc_info.value) == 'Upload failed with status 403'
        assert http.request.call_count == 1

    def test_server_error_retried(self):
        http = MagicMock()
        http.request.side_effect = [response(503), response(200)]

        assert HttpTransport(http=http, backoff_ms=0).put(URL, b'bytes', 'image/jpeg') == 200
        assert http.request.call_count == 2

    def test_network_error_retried_then_raised(self):
        http = MagicMock()
        http.request.side_effect = urllib3.exceptions.ProtocolError('Connection reset')

        with pytest.raises(urllib3.exceptions.ProtocolError):
            HttpTransport(http=http, max_attempts=2, backoff_ms=0).put(URL, b'bytes', 'image/jpeg')

        assert http.request.call_count == 2

    def test_should_retry_upload(self):
        assert should_retry_upload(UploadTransferFailure(429, URL))
        assert should_retry_upload(UploadTransferFailure(500, URL))
        assert not should_retry_upload(UploadTransferFailure(400, URL))
        assert not should_retry_upload(ValueError('bad'))
