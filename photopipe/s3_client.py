"""
S3Client - Object store operations for raw uploads and derived renditions.
"""

import logging
from typing import Dict, Iterable, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import SourceNotFound, StoreWriteFailure
from .retry_policy import transient_retry
from .s3_config import S3Config


class S3Client:
    """
    Wrapper for S3 operations used by the pipeline.

    Every call is idempotent at the key level: put overwrites, deleting an
    absent key is a no-op. Transient failures are retried with exponential
    backoff; botocore's own retry layer is limited to one attempt so the two
    do not stack.
    """

    DELETE_BATCH_SIZE = 1000
    NOT_FOUND_CODES = {'NoSuchKey', '404', 'NotFound'}

    def __init__(self, config: S3Config, logger: Optional[logging.Logger] = None):
        """
        Initialize S3 client.

        Args:
            config: S3 configuration
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._retry = transient_retry(
            max_attempts=config.max_attempts,
            backoff_ms=config.backoff_ms,
        )

        self._client = boto3.client(
            's3',
            endpoint_url=config.endpoint,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
            config=Config(
                signature_version='s3v4',
                connect_timeout=config.timeout,
                read_timeout=config.timeout,
                retries={'total_max_attempts': 1},
            ),
            verify=config.verify_ssl
        )

    @property
    def client(self):
        """Return the underlying boto3 client."""
        return self._client

    def get(self, key: str) -> bytes:
        """
        Download an object.

        Raises:
            SourceNotFound: The key does not exist
        """
        try:
            return self._retry(self._get)(key)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in self.NOT_FOUND_CODES:
                raise SourceNotFound(key) from e
            raise

    def _get(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.config.bucket, Key=key)
        return response['Body'].read()

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str = 'application/octet-stream',
        metadata: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Upload an object, overwriting any existing one.

        Raises:
            StoreWriteFailure: The write still failed after retries
        """
        try:
            self._retry(self._client.put_object)(
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreWriteFailure(key, e) from e
        self.logger.debug(f"Uploaded {key} ({len(data)} bytes)")

    def delete_many(self, keys: Iterable[str]) -> None:
        """
        Delete objects in batches, quietly.

        Missing keys are not errors. Per-key failures reported by the store
        are logged and otherwise ignored.
        """
        unique_keys = list(dict.fromkeys(k for k in keys if k))
        for start in range(0, len(unique_keys), self.DELETE_BATCH_SIZE):
            chunk = unique_keys[start:start + self.DELETE_BATCH_SIZE]
            response = self._retry(self._client.delete_objects)(
                Bucket=self.config.bucket,
                Delete={
                    'Objects': [{'Key': key} for key in chunk],
                    'Quiet': True,
                },
            )
            for error in response.get('Errors', []):
                self.logger.warning(
                    f"Could not delete {error.get('Key')}: "
                    f"{error.get('Code')} {error.get('Message', '')}"
                )

    def list_with_prefix(self, prefix: str = '') -> List[dict]:
        """
        List all objects under a prefix.

        Returns:
            List of dicts with 'key' and 'size'
        """
        return self._retry(self._list)(prefix)

    def _list(self, prefix: str) -> List[dict]:
        # A failed page restarts the listing from the first page.
        paginator = self._client.get_paginator('list_objects_v2')
        page_iterator = paginator.paginate(
            Bucket=self.config.bucket,
            Prefix=prefix,
        )

        objects = []
        for page in page_iterator:
            for obj in page.get('Contents', []):
                objects.append({
                    'key': obj['Key'].lstrip('/'),
                    'size': obj.get('Size', 0),
                })
        return objects

    def presign_upload(self, key: str, content_type: str, ttl: Optional[int] = None) -> str:
        """Generate a presigned PUT URL for a direct client upload."""
        return self._client.generate_presigned_url(
            'put_object',
            Params={
                'Bucket': self.config.bucket,
                'Key': key,
                'ContentType': content_type,
            },
            ExpiresIn=ttl or self.config.url_expiry,
        )
