import os
import uuid

import pytest

# Use the in-memory SQLite engine from db.py; must be set before `db` is imported.
os.environ.setdefault("TEST_SQLITE", "1")
os.environ.setdefault("S3_BUCKET", "reports-test")
os.environ.setdefault("SQS_QUEUE", "reports-test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from app.models.report import Base  # noqa: E402
from app.services.report_store import ReportStore  # noqa: E402
from app.services.s3_storage import S3StorageService  # noqa: E402
from app.services.sqs_queue import SqsQueueClient  # noqa: E402
from db import SessionLocal, engine  # noqa: E402
from tests.fakes import FakeS3Client, FakeSqsClient, make_entry  # noqa: E402


@pytest.fixture
def db_tables():
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db_tables):
    return ReportStore(SessionLocal)


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def storage(s3_client):
    return S3StorageService(region="us-east-1", bucket="reports-test", client=s3_client)


@pytest.fixture
def sqs_client():
    return FakeSqsClient()


@pytest.fixture
def message_queue(sqs_client):
    return SqsQueueClient(queue_name="reports-test", region="us-east-1", client=sqs_client)


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def monsters():
    return [
        make_entry(1, "Bokoblin", common_locations=["Hyrule Field", "Great Plateau"]),
        make_entry(2, "Moblin", drops=["moblin horn", "moblin fang"], dlc=True),
    ]
