"""Tests for the retry policy."""

import pytest
import mysql.connector
import urllib3
from botocore.exceptions import ClientError, EndpointConnectionError

from photopipe.retry_policy import is_transient, transient_retry


class TestIsTransient:
    """Tests for transient error classification."""

    def test_connection_errors(self):
        assert is_transient(EndpointConnectionError(endpoint_url='https://s3.example.com'))
        assert is_transient(urllib3.exceptions.ProtocolError('Connection reset'))
        assert is_transient(urllib3.exceptions.ReadTimeoutError(None, 'https://x', 'timed out'))

    def test_client_errors(self):
        throttled = ClientError({'Error': {'Code': 'SlowDown'}}, 'PutObject')
        server = ClientError(
            {'Error': {'Code': 'Whatever'}, 'ResponseMetadata': {'HTTPStatusCode': 502}}, 'PutObject'
        )
        denied = ClientError(
            {'Error': {'Code': 'AccessDenied'}, 'ResponseMetadata': {'HTTPStatusCode': 403}}, 'PutObject'
        )

        assert is_transient(throttled)
        assert is_transient(server)
        assert not is_transient(denied)

    def test_database_errors(self):
        assert is_transient(mysql.connector.errors.OperationalError('gone away'))
        assert is_transient(mysql.connector.errors.InterfaceError('lost connection'))
        assert not is_transient(mysql.connector.errors.ProgrammingError('syntax'))

    def test_other_errors(self):
        assert not is_transient(ValueError('bad'))
        assert not is_transient(KeyError('missing'))


class TestTransientRetry:
    """Tests for the retry decorator."""

    def test_retries_until_success(self):
        calls = []

        @transient_retry(max_attempts=3, backoff_ms=0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise urllib3.exceptions.ProtocolError('reset')
            return 'ok'

        assert flaky() == 'ok'
        assert len(calls) == 3

    def test_reraises_after_last_attempt(self):
        calls = []

        @transient_retry(max_attempts=2, backoff_ms=0)
        def broken():
            calls.append(1)
            raise mysql.connector.errors.OperationalError('gone away')

        with pytest.raises(mysql.connector.errors.OperationalError):
            broken()
        assert len(calls) == 2

    def test_permanent_errors_not_retried(self):
        calls = []

        @transient_retry(max_attempts=5, backoff_ms=0)
        def invalid():
            calls.append(1)
            raise ValueError('bad input')

        with pytest.raises(ValueError):
            invalid()
        assert len(calls) == 1

    def test_custom_predicate(self):
        calls = []

        @transient_retry(max_attempts=3, backoff_ms=0, predicate=lambda e: isinstance(e, KeyError))
        def lookup():
            calls.append(1)
            raise KeyError('x')

        with pytest.raises(KeyError):
            lookup()
        assert len(calls) == 3
