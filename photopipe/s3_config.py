"""
S3Config - Object store connection settings.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from .retry_policy import DEFAULT_BACKOFF_MS, DEFAULT_MAX_ATTEMPTS


def bucket_from_arn(value: str) -> str:
    """
    Accept either a bare bucket name or an ARN like ``arn:aws:s3:::bucket``.
    """
    if value.startswith('arn:'):
        name = value.split(':')[-1]
        if not name:
            raise ValueError(f"Invalid bucket ARN format: {value}")
        return name
    return value


def str2bool(value: Optional[str], default: bool = True) -> bool:
    """Convert common truthy/falsy strings to bool."""
    if value is None:
        return default
    return value.strip().lower() in ('yes', 'true', 't', 'y', '1')


@dataclass
class S3Config:
    """
    Object store configuration.

    Attributes:
        endpoint: Endpoint URL (None for AWS default endpoints)
        bucket: Bucket name
        access_key: Access key id
        secret_key: Secret access key
        region: Region name
        verify_ssl: Verify TLS certificates
        url_expiry: Lifetime of presigned upload URLs in seconds
        public_url_base: CDN/base URL used to render public object URLs
        timeout: Connect and read timeout in seconds
        max_attempts: Attempts per call for transient failures
        backoff_ms: Exponential backoff multiplier in milliseconds
    """
    endpoint: Optional[str] = None
    bucket: str = ''
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = 'us-east-1'
    verify_ssl: bool = True
    url_expiry: int = 3600
    public_url_base: str = ''
    timeout: float = 30.0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_ms: int = DEFAULT_BACKOFF_MS

    @classmethod
    def from_env(cls) -> 'S3Config':
        """
        Build configuration from environment variables.

        ``S3_CREDENTIALS`` may carry an ``arn|access|secret`` triplet; it is
        only used when the individual key variables are unset.
        """
        access_key = os.getenv('S3_ACCESS_KEY')
        secret_key = os.getenv('S3_SECRET_KEY')
        credentials = os.getenv('S3_CREDENTIALS')
        if credentials and not (access_key and secret_key):
            parts = credentials.split('|')
            if len(parts) == 3:
                access_key, secret_key = parts[1], parts[2]

        return cls(
            endpoint=os.getenv('S3_ENDPOINT') or None,
            bucket=bucket_from_arn(os.getenv('S3_BUCKET', '')),
            access_key=access_key,
            secret_key=secret_key,
            region=os.getenv('S3_REGION', 'us-east-1'),
            verify_ssl=str2bool(os.getenv('S3_VERIFY_SSL')),
            url_expiry=int(os.getenv('S3_URL_EXPIRY', '3600')),
            public_url_base=os.getenv('PUBLIC_URL_BASE', ''),
            timeout=float(os.getenv('S3_TIMEOUT', '30')),
        )

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors = []
        if not self.bucket:
            errors.append("S3_BUCKET is not set")
        if not self.access_key:
            errors.append("S3_ACCESS_KEY is not set")
        if not self.secret_key:
            errors.append("S3_SECRET_KEY is not set")
        if self.url_expiry <= 0:
            errors.append("S3_URL_EXPIRY must be positive")
        return errors

    def public_url(self, key: Optional[str]) -> Optional[str]:
        """Join a key onto the public base URL."""
        if not key:
            return None
        clean_key = key.lstrip('/')
        if not self.public_url_base:
            return clean_key
        return f"{self.public_url_base.rstrip('/')}/{clean_key}"
