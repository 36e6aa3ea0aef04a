import argparse
import sys
import uuid
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.errors import ReportError  # noqa: E402
from app.core.settings import settings  # noqa: E402
from app.models.report import ReportType  # noqa: E402
from app.services.report_schema import ReportOut  # noqa: E402
from app.services.report_service import ReportService  # noqa: E402
from app.services.report_store import ReportStore  # noqa: E402
from app.services.s3_storage import S3StorageService  # noqa: E402
from app.services.sqs_queue import SqsQueueClient  # noqa: E402
from db import SessionLocal  # noqa: E402


def build_service() -> ReportService:
    storage = S3StorageService(
        region=settings.AWS_REGION,
        bucket=settings.S3_BUCKET,
        access_key=settings.AWS_ACCESS_KEY_ID,
        secret_key=settings.AWS_SECRET_ACCESS_KEY,
        endpoint_url=settings.S3_ENDPOINT_URL,
    )
    message_queue = SqsQueueClient(
        queue_name=settings.SQS_QUEUE,
        region=settings.AWS_REGION,
        access_key=settings.AWS_ACCESS_KEY_ID,
        secret_key=settings.AWS_SECRET_ACCESS_KEY,
        endpoint_url=settings.SQS_ENDPOINT_URL,
    )
    return ReportService(
        ReportStore(SessionLocal),
        message_queue,
        storage,
        download_ttl_seconds=settings.DOWNLOAD_URL_TTL_SECONDS,
    )


def main() -> int:
    ap = argparse.ArgumentParser(description="Request a report or check on one.")
    ap.add_argument("--user", required=True, type=uuid.UUID, help="Owner user id")
    sub = ap.add_subparsers(dest="cmd", required=True)
    create = sub.add_parser("create", help="Create a report and enqueue its build")
    create.add_argument("report_type", choices=[t.value for t in ReportType])
    show = sub.add_parser("show", help="Show a report, refreshing its download link")
    show.add_argument("report_id", type=uuid.UUID)
    args = ap.parse_args()

    service = build_service()
    try:
        if args.cmd == "create":
            report = service.create_report(args.user, args.report_type)
        else:
            report = service.get_report(args.user, args.report_id)
    except ReportError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(ReportOut.from_report(report).model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
