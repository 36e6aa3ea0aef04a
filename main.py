"""Report worker process: consume the report queue until SIGINT/SIGTERM."""
import logging
import signal
import threading

import sentry_sdk
from dotenv import load_dotenv

from app.core.logging_utils import configure_logging
from app.core.settings import settings
from app.jobs.report_worker import ReportQueueWorker
from app.services.compendium_client import CompendiumClient
from app.services.report_builder import ReportBuilder
from app.services.report_store import ReportStore
from app.services.s3_storage import S3StorageService
from app.services.sqs_queue import SqsQueueClient
from db import SessionLocal

load_dotenv()

# Configure logging (console + rotating file; JSON by default)
configure_logging(settings)
logger = logging.getLogger("app")

# Initialize Sentry if DSN provided
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE or 0.0),
        send_default_pii=False,
    )


def build_worker() -> ReportQueueWorker:
    store = ReportStore(SessionLocal)
    storage = S3StorageService(
        region=settings.AWS_REGION,
        bucket=settings.S3_BUCKET,
        access_key=settings.AWS_ACCESS_KEY_ID,
        secret_key=settings.AWS_SECRET_ACCESS_KEY,
        endpoint_url=settings.S3_ENDPOINT_URL,
        connect_timeout=settings.S3_CONNECT_TIMEOUT_SECONDS,
        read_timeout=settings.BUILDER_TIMEOUT_SECONDS,
        max_attempts=settings.S3_MAX_ATTEMPTS,
    )
    message_queue = SqsQueueClient(
        queue_name=settings.SQS_QUEUE,
        region=settings.AWS_REGION,
        access_key=settings.AWS_ACCESS_KEY_ID,
        secret_key=settings.AWS_SECRET_ACCESS_KEY,
        endpoint_url=settings.SQS_ENDPOINT_URL,
    )
    fetcher = CompendiumClient(
        base_url=settings.COMPENDIUM_BASE_URL,
        timeout=settings.FETCH_TIMEOUT_SECONDS,
    )
    builder = ReportBuilder(
        store,
        fetcher,
        storage,
        claim_timeout_seconds=settings.CLAIM_TIMEOUT_SECONDS,
        logger=logging.getLogger("app.builder"),
    )
    return ReportQueueWorker(
        message_queue,
        builder,
        max_concurrency=settings.WORKER_MAX_CONCURRENCY,
        batch_size=settings.QUEUE_BATCH_SIZE,
        wait_seconds=settings.QUEUE_WAIT_SECONDS,
        builder_timeout=settings.BUILDER_TIMEOUT_SECONDS,
        logger=logging.getLogger("app.worker"),
    )


def main() -> int:
    stop = threading.Event()

    def _request_stop(signum, frame):
        logger.info("worker.signal", extra={"signal": signal.Signals(signum).name})
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    worker = build_worker()
    try:
        worker.run(stop)
    finally:
        worker.builder.fetcher.close()
    logger.info("worker.stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
