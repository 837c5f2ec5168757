"""Object storage for staged import chunks.

The API writes each accepted chunk as a JSON document
(``{"headers", "rows", "row_numbers"}``) and the worker reads it back, so
row data never travels through Redis.
"""

from __future__ import annotations

import json
import logging
from io import BytesIO
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from padu_api.core.config import settings

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class S3Client:
    """Thin boto3 wrapper bound to the configured bucket (S3 or MinIO)."""

    def __init__(self):
        self.bucket = settings.s3_bucket
        self.client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
        )

    def upload_file(
        self, file_content: bytes, key: str, content_type: Optional[str] = None
    ) -> str:
        """Store ``file_content`` under ``key`` and return the key."""
        extra_args = {"ContentType": content_type} if content_type else {}
        try:
            self.client.upload_fileobj(
                BytesIO(file_content), self.bucket, key, ExtraArgs=extra_args
            )
        except (ClientError, NoCredentialsError) as e:
            logger.error(f"Upload of s3://{self.bucket}/{key} failed: {e}")
            raise
        logger.debug(f"Staged {len(file_content)} bytes at s3://{self.bucket}/{key}")
        return key

    def download_file(self, key: str) -> bytes:
        try:
            return self.client.get_object(Bucket=self.bucket, Key=key)["Body"].read()
        except ClientError as e:
            logger.error(f"Download of s3://{self.bucket}/{key} failed: {e}")
            raise

    def delete_file(self, key: str) -> None:
        """Remove a staged object. A failure leaves the object behind and is only logged."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            logger.warning(f"Could not delete s3://{self.bucket}/{key}: {e}")

    def upload_json(self, payload: dict[str, Any], key: str) -> str:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return self.upload_file(body, key, content_type=JSON_CONTENT_TYPE)

    def download_json(self, key: str) -> dict[str, Any]:
        return json.loads(self.download_file(key).decode("utf-8"))
