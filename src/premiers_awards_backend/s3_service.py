"""
S3 service module for publishing export archives.

Exports too large to stream from memory are written to disk by the archive
builder. When an S3 bucket is configured those archives are uploaded and the
client receives a presigned URL instead of the file itself.

The S3 bucket name is configured via the S3_BUCKET_NAME environment variable.
When running locally without a bucket, S3 operations are skipped and archives
are served directly.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "exports"
DEFAULT_EXPIRATION = 3600


class ArchivePublisher:
    """
    Uploads export archives to one bucket and signs download links.

    Args:
        bucket: Bucket name; empty disables publishing
        client: Preconfigured S3 client (created lazily when omitted)
    """

    def __init__(self, bucket: str, client=None) -> None:
        self.bucket = bucket
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.bucket)

    def _get_client(self):
        # Credential errors surface on the first upload, not here.
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def upload_archive(self, archive_path: Path, key: Optional[str] = None) -> Optional[str]:
        """
        Upload an archive and return its object key.

        Returns:
            The S3 key, or None when publishing is disabled or the upload failed
        """
        if not self.enabled:
            logger.warning("S3_BUCKET_NAME not configured, skipping upload")
            return None

        s3_key = key or f"{EXPORT_PREFIX}/{archive_path.name}"
        try:
            logger.info(f"Uploading {archive_path} to s3://{self.bucket}/{s3_key}")
            self._get_client().upload_file(str(archive_path), self.bucket, s3_key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed: {e}")
            return None
        logger.info(f"Upload successful: s3://{self.bucket}/{s3_key}")
        return s3_key

    def generate_presigned_url(self, s3_key: str, expiration: int = DEFAULT_EXPIRATION) -> Optional[str]:
        """
        Generate a time-limited download URL for ``s3_key``.

        Note:
            Anyone holding the URL can download the archive until it expires.
        """
        if not self.enabled:
            return None
        try:
            url = self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": s3_key},
                ExpiresIn=expiration,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL: {e}")
            return None
        logger.info(f"Generated presigned URL for {s3_key} (expires in {expiration}s)")
        return url

    def publish(self, archive_path: Path, expiration: int = DEFAULT_EXPIRATION) -> Optional[str]:
        """Upload ``archive_path`` and return a presigned URL, or None if either step fails."""
        s3_key = self.upload_archive(archive_path)
        if s3_key is None:
            return None
        return self.generate_presigned_url(s3_key, expiration)
