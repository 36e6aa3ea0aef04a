"""S3 storage service for report files."""
import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 3.0
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_MAX_ATTEMPTS = 2


def client_config(
    endpoint_url: Optional[str] = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Config:
    """botocore config bounding every call to ``max_attempts * (connect + read)`` seconds."""
    kwargs = {
        "connect_timeout": connect_timeout,
        "read_timeout": read_timeout,
        "retries": {"max_attempts": max_attempts, "mode": "standard"},
    }
    if endpoint_url:
        # LocalStack and other custom endpoints need path-style addressing
        kwargs["s3"] = {"addressing_style": "path"}
    return Config(**kwargs)


def worst_case_call_seconds(
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> float:
    return max_attempts * (connect_timeout + read_timeout)


class S3StorageService:
    """Uploads report blobs to S3 and mints presigned download links."""

    def __init__(
        self,
        region: str,
        bucket: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client=None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """
        Initialize S3 client.

        Args:
            region: AWS region
            bucket: S3 bucket name
            access_key: AWS access key (optional; uses IAM role on EC2)
            secret_key: AWS secret key (optional; uses IAM role on EC2)
            endpoint_url: Custom endpoint, e.g. LocalStack (forces path-style addressing)
            client: Prebuilt boto3 S3 client (tests)
            connect_timeout: Seconds to wait for a connection, per attempt
            read_timeout: Seconds to wait on a socket read, per attempt
            max_attempts: Total attempts per call, first try included
        """
        if not bucket:
            raise ValueError("S3 bucket name is required")
        self.bucket = bucket
        self.region = region

        if client is not None:
            self.client = client
        else:
            self.client = boto3.client(
                "s3",
                region_name=region or None,
                aws_access_key_id=access_key or None,
                aws_secret_access_key=secret_key or None,
                endpoint_url=endpoint_url or None,
                config=client_config(endpoint_url, connect_timeout, read_timeout, max_attempts),
            )
        logger.info(f"S3 storage initialized for bucket '{bucket}' in region '{region}'")

    def upload_file(self, file_data: bytes, s3_key: str, content_type: str = "application/octet-stream") -> str:
        """
        Upload file to S3.

        Args:
            file_data: File contents as bytes
            s3_key: S3 object key (e.g., "users/<user>/reports/<report>.csv.gz")
            content_type: MIME type

        Returns:
            The S3 key
        """
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=s3_key,
                Body=file_data,
                ContentType=content_type,
                ServerSideEncryption="AES256",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed for {s3_key}: {e}")
            raise StorageError(f"failed to upload report to S3: {e}") from e
        logger.info(f"Uploaded to S3: s3://{self.bucket}/{s3_key}")
        return s3_key

    def generate_presigned_url(self, s3_key: str, expiration: int = 600) -> str:
        """
        Generate a presigned URL for temporary access (e.g., for downloads).

        Args:
            s3_key: S3 object key
            expiration: URL validity in seconds (default 10 minutes)

        Returns:
            Presigned URL
        """
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": s3_key},
                ExpiresIn=expiration,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL for {s3_key}: {e}")
            raise StorageError(f"failed to presign {s3_key}: {e}") from e

    def list_buckets(self) -> list:
        try:
            resp = self.client.list_buckets()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"failed to list buckets: {e}") from e
        return [b["Name"] for b in resp.get("Buckets", [])]
