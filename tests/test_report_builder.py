import csv
import logging
import gzip
import io
import uuid
from datetime import timedelta

import pytest

from app.core.errors import BuildTimeoutError, FetchError, ReportNotFoundError, StorageError
from app.models.report import ReportType, utcnow
from app.services.report_builder import ReportBuilder, report_output_key
from app.services.report_csv import COLUMNS
from app.services.report_status import ReportStatus, report_status
from tests.fakes import FakeFetcher


def _rows(blob: bytes):
    text = gzip.decompress(blob).decode("utf-8")
    return list(csv.reader(io.StringIO(text)))


@pytest.fixture
def builder_for(store, storage):
    def _make(fetcher, **kw):
        return ReportBuilder(store, fetcher, storage, **kw)

    return _make


def test_monsters_report_end_to_end(store, storage, s3_client, user_id, monsters, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)
    fetcher = FakeFetcher(monsters)

    built = builder_for(fetcher).build_report(user_id, report.ReportID)

    key = f"users/{user_id}/reports/{report.ReportID}.csv.gz"
    assert built.OutputFilePath == key
    assert built.CompletedAt is not None
    assert built.FailedAt is None
    assert report_status(built) == ReportStatus.COMPLETED
    assert fetcher.calls == [ReportType.MONSTERS]

    stored = s3_client.objects[("reports-test", key)]
    assert stored["ContentType"] == "application/gzip"
    rows = _rows(stored["Body"])
    assert rows[0] == list(COLUMNS)
    assert len(rows) == 3
    assert rows[1] == [
        "Bokoblin",
        "1",
        "monsters",
        "A Bokoblin.",
        "https://img.test/1.png",
        "Hyrule Field, Great Plateau",
        "bokoblin horn",
        "false",
    ]
    assert rows[2][5:] == ["Hyrule Field", "moblin horn, moblin fang", "true"]


def test_output_key_has_no_leading_slash(user_id):
    rid = uuid.uuid4()
    assert report_output_key(user_id, rid) == f"users/{user_id}/reports/{rid}.csv.gz"


def test_missing_report_fails_without_side_effects(store, s3_client, user_id, monsters, builder_for):
    fetcher = FakeFetcher(monsters)
    with pytest.raises(ReportNotFoundError):
        builder_for(fetcher).build_report(user_id, uuid.uuid4())
    assert fetcher.calls == []
    assert s3_client.objects == {}


def test_report_of_another_user_is_not_found(store, user_id, monsters, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)
    with pytest.raises(ReportNotFoundError):
        builder_for(FakeFetcher(monsters)).build_report(uuid.uuid4(), report.ReportID)
    assert store.get_report(report.ReportID, user_id).StartedAt is None


@pytest.mark.parametrize("finished", [None, "CompletedAt", "FailedAt"])
def test_started_report_is_returned_unchanged(store, s3_client, user_id, monsters, builder_for, finished):
    report = store.create_report(user_id, ReportType.MONSTERS)
    now = utcnow()
    values = {"StartedAt": now}
    if finished:
        values[finished] = now
    before = store.update_report(report.ReportID, user_id, values)
    fetcher = FakeFetcher(monsters)

    after = builder_for(fetcher, claim_timeout_seconds=30).build_report(user_id, report.ReportID)

    assert fetcher.calls == []
    assert s3_client.objects == {}
    assert after.StartedAt == before.StartedAt
    assert after.CompletedAt == before.CompletedAt
    assert after.FailedAt == before.FailedAt


def test_stale_processing_report_is_rebuilt(store, s3_client, user_id, monsters, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)
    stuck_since = utcnow() - timedelta(minutes=10)
    store.update_report(report.ReportID, user_id, {"StartedAt": stuck_since})
    fetcher = FakeFetcher(monsters)

    built = builder_for(fetcher, claim_timeout_seconds=30).build_report(user_id, report.ReportID)

    assert fetcher.calls == [ReportType.MONSTERS]
    assert built.StartedAt > stuck_since
    assert report_status(built) == ReportStatus.COMPLETED


def test_stale_report_is_left_alone_without_claim_timeout(store, user_id, monsters, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)
    store.update_report(report.ReportID, user_id, {"StartedAt": utcnow() - timedelta(days=1)})
    fetcher = FakeFetcher(monsters)

    builder_for(fetcher).build_report(user_id, report.ReportID)

    assert fetcher.calls == []


def test_empty_fetch_marks_report_failed(store, s3_client, user_id, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)

    with pytest.raises(FetchError):
        builder_for(FakeFetcher([])).build_report(user_id, report.ReportID)

    failed = store.get_report(report.ReportID, user_id)
    assert failed.FailedAt is not None
    assert failed.CompletedAt is None
    assert failed.ErrorMessage
    assert report_status(failed) == ReportStatus.FAILED
    assert s3_client.objects == {}


def test_fetch_error_message_is_recorded(store, user_id, builder_for):
    report = store.create_report(user_id, ReportType.WEAPONS)
    err = FetchError("failed to fetch equipment: upstream returned 503")

    with pytest.raises(FetchError) as excinfo:
        builder_for(FakeFetcher(error=err)).build_report(user_id, report.ReportID)

    assert excinfo.value is err
    failed = store.get_report(report.ReportID, user_id)
    assert failed.ErrorMessage == "failed to fetch equipment: upstream returned 503"


def test_upload_failure_marks_report_failed(store, s3_client, user_id, monsters, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)
    s3_client.fail_put = True

    with pytest.raises(StorageError):
        builder_for(FakeFetcher(monsters)).build_report(user_id, report.ReportID)

    failed = store.get_report(report.ReportID, user_id)
    assert report_status(failed) == ReportStatus.FAILED
    assert failed.OutputFilePath is None
    assert "upload" in failed.ErrorMessage


def test_unexpected_error_is_finalized_and_reraised(store, user_id, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)

    with pytest.raises(RuntimeError):
        builder_for(FakeFetcher(error=RuntimeError("kaboom"))).build_report(user_id, report.ReportID)

    assert store.get_report(report.ReportID, user_id).ErrorMessage == "kaboom"


def test_expired_deadline_fails_the_build(store, user_id, monsters, builder_for, monkeypatch):
    report = store.create_report(user_id, ReportType.MONSTERS)
    fetcher = FakeFetcher(monsters)
    # First reading sets the deadline; every later one is past it
    readings = []

    def fake_monotonic():
        readings.append(None)
        return 100.0 if len(readings) == 1 else 200.0

    monkeypatch.setattr("app.services.report_builder.time.monotonic", fake_monotonic)

    with pytest.raises(BuildTimeoutError):
        builder_for(fetcher).build_report(user_id, report.ReportID, timeout=10)

    assert fetcher.calls == []
    assert "timed out" in store.get_report(report.ReportID, user_id).ErrorMessage


def test_rebuild_after_failure_clears_previous_error(store, user_id, monsters, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)
    store.update_report(
        report.ReportID,
        user_id,
        {"StartedAt": utcnow() - timedelta(hours=1), "ErrorMessage": "stale"},
    )

    built = builder_for(FakeFetcher(monsters), claim_timeout_seconds=30).build_report(
        user_id, report.ReportID
    )
    assert built.ErrorMessage is None
    assert built.CompletedAt is not None


class TakeoverFetcher:
    """Lets a newer attempt reclaim and finish the report mid-fetch."""

    def __init__(self, store, newer_builder, user_id, report_id, entries=None, error=None):
        self.store = store
        self.newer_builder = newer_builder
        self.user_id = user_id
        self.report_id = report_id
        self.entries = entries
        self.error = error

    def fetch(self, report_type):
        # Age the claim past the timeout so the newer attempt can take over
        self.store.update_report(
            self.report_id, self.user_id, {"StartedAt": utcnow() - timedelta(minutes=5)}
        )
        self.newer_builder.build_report(self.user_id, self.report_id)
        if self.error is not None:
            raise self.error
        return list(self.entries)


def test_superseded_attempt_failure_is_not_recorded(store, user_id, monsters, builder_for, caplog):
    report = store.create_report(user_id, ReportType.MONSTERS)
    newer = builder_for(FakeFetcher(monsters), claim_timeout_seconds=30)
    fetcher = TakeoverFetcher(
        store, newer, user_id, report.ReportID, error=StorageError("upload failed")
    )

    with caplog.at_level(logging.WARNING):
        with pytest.raises(StorageError):
            builder_for(fetcher, claim_timeout_seconds=30).build_report(user_id, report.ReportID)

    final = store.get_report(report.ReportID, user_id)
    assert final.CompletedAt is not None
    assert final.FailedAt is None
    assert final.ErrorMessage is None
    assert report_status(final) == ReportStatus.COMPLETED
    assert "report.claim_superseded" in [r.getMessage() for r in caplog.records]


def test_superseded_attempt_success_keeps_newer_outcome(store, user_id, monsters, builder_for):
    report = store.create_report(user_id, ReportType.MONSTERS)
    newer = builder_for(FakeFetcher(monsters), claim_timeout_seconds=30)
    fetcher = TakeoverFetcher(store, newer, user_id, report.ReportID, entries=monsters)

    result = builder_for(fetcher, claim_timeout_seconds=30).build_report(user_id, report.ReportID)

    final = store.get_report(report.ReportID, user_id)
    assert result.CompletedAt == final.CompletedAt
    assert result.StartedAt == final.StartedAt
    assert final.FailedAt is None
    assert report_status(final) == ReportStatus.COMPLETED
