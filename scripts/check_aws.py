"""
List S3 buckets and SQS queues visible with the configured credentials.

Handy against LocalStack to confirm S3_ENDPOINT_URL / SQS_ENDPOINT_URL and the
bucket/queue names before starting the worker.
Usage: python scripts/check_aws.py
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.errors import StorageError  # noqa: E402
from app.core.settings import settings  # noqa: E402
from app.services.s3_storage import S3StorageService  # noqa: E402
from app.services.sqs_queue import SqsQueueClient  # noqa: E402


def main() -> int:
    storage = S3StorageService(
        region=settings.AWS_REGION,
        bucket=settings.S3_BUCKET or "unset",
        access_key=settings.AWS_ACCESS_KEY_ID,
        secret_key=settings.AWS_SECRET_ACCESS_KEY,
        endpoint_url=settings.S3_ENDPOINT_URL,
    )
    message_queue = SqsQueueClient(
        queue_name=settings.SQS_QUEUE or "unset",
        region=settings.AWS_REGION,
        access_key=settings.AWS_ACCESS_KEY_ID,
        secret_key=settings.AWS_SECRET_ACCESS_KEY,
        endpoint_url=settings.SQS_ENDPOINT_URL,
    )
    rc = 0
    try:
        buckets = storage.list_buckets()
        print("buckets:", ", ".join(buckets) or "(none)")
        if settings.S3_BUCKET and settings.S3_BUCKET not in buckets:
            print(f"missing bucket: {settings.S3_BUCKET}")
            rc = 1
    except StorageError as e:
        print(f"S3 check failed: {e}")
        rc = 1
    try:
        queues = message_queue.list_queues()
        print("queues:", ", ".join(queues) or "(none)")
        if settings.SQS_QUEUE:
            print("report queue:", message_queue.resolve_url())
    except StorageError as e:
        print(f"SQS check failed: {e}")
        rc = 1
    return rc


if __name__ == "__main__":
    raise SystemExit(main())
