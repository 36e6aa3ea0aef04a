"""Claim, build and finalize a single report.

State machine for one attempt:

    requested --claim--> processing --upload ok--> completed
                                    \\--any error--> failed

A report whose ``StartedAt`` is already set is left alone, so a redelivered
queue message is a no-op. The one exception is a report stuck in processing
for longer than the claim timeout: its previous attempt is presumed dead and
the report is claimed again. An attempt records its outcome only while its
own claim time is still the row's ``StartedAt``, so a superseded attempt
writes nothing.
"""

import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.core.errors import BuildTimeoutError, ReportError
from app.models.report import Report, ReportType, utcnow
from app.services.report_csv import build_csv_gz_bytes

CSV_GZ_CONTENT_TYPE = "application/gzip"


def report_output_key(user_id: uuid.UUID, report_id: uuid.UUID) -> str:
    return f"users/{user_id}/reports/{report_id}.csv.gz"


class ReportBuilder:
    def __init__(
        self,
        store,
        fetcher,
        storage,
        claim_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.storage = storage
        self.claim_timeout_seconds = claim_timeout_seconds
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def _stale_before(self, now: datetime) -> Optional[datetime]:
        if not self.claim_timeout_seconds:
            return None
        return now - timedelta(seconds=self.claim_timeout_seconds)

    def _is_abandoned(self, report: Report, now: datetime) -> bool:
        stale_before = self._stale_before(now)
        return (
            stale_before is not None
            and report.StartedAt is not None
            and report.CompletedAt is None
            and report.FailedAt is None
            and report.StartedAt < stale_before
        )

    def build_report(
        self, user_id: uuid.UUID, report_id: uuid.UUID, timeout: Optional[float] = None
    ) -> Report:
        """Build the report and return its final state.

        Raises ``ReportNotFoundError`` without touching anything when the
        report does not exist for this user. Any ``BuildError`` raised after
        the claim has already been recorded on the report.
        """
        deadline = time.monotonic() + timeout if timeout else None
        log_ctx = {"report_id": str(report_id), "user_id": str(user_id)}

        report = self.store.get_report(report_id, user_id)
        now = self._clock()
        if report.StartedAt is not None:
            if not self._is_abandoned(report, now):
                self._logger.info("report.already_claimed", extra=log_ctx)
                return report
            self._logger.warning(
                "report.reclaiming_stale",
                extra={**log_ctx, "started_at": report.StartedAt.isoformat()},
            )

        claimed = self.store.claim_report(report_id, user_id, now, self._stale_before(now))
        if claimed is None:
            return self.store.get_report(report_id, user_id)
        self._logger.info("report.claimed", extra={**log_ctx, "report_type": claimed.ReportType})

        try:
            return self._build_claimed(claimed, deadline)
        except Exception as exc:
            self._finalize_failed(claimed, exc)
            raise

    def _build_claimed(self, report: Report, deadline: Optional[float]) -> Report:
        self._check_deadline(deadline, "fetch")
        entries = self.fetcher.fetch(ReportType(report.ReportType))

        content = build_csv_gz_bytes(entries)

        self._check_deadline(deadline, "upload")
        key = report_output_key(report.UserID, report.ReportID)
        self.storage.upload_file(content, key, content_type=CSV_GZ_CONTENT_TYPE)

        log_ctx = {"report_id": str(report.ReportID), "user_id": str(report.UserID)}
        completed = self.store.finalize_report(
            report.ReportID,
            report.UserID,
            report.StartedAt,
            {"OutputFilePath": key, "CompletedAt": self._clock()},
        )
        if completed is None:
            # A newer attempt owns the row; report its state instead
            self._logger.warning("report.outcome_discarded", extra={**log_ctx, "outcome": "completed"})
            return self.store.get_report(report.ReportID, report.UserID)
        self._logger.info(
            "report.completed",
            extra={
                **log_ctx,
                "rows": len(entries),
                "size_bytes": len(content),
                "output_file_path": key,
            },
        )
        return completed

    def _check_deadline(self, deadline: Optional[float], stage: str) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            raise BuildTimeoutError(f"report build timed out before {stage}")

    def _finalize_failed(self, report: Report, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        log_ctx = {"report_id": str(report.ReportID), "user_id": str(report.UserID)}
        try:
            failed = self.store.finalize_report(
                report.ReportID,
                report.UserID,
                report.StartedAt,
                {"FailedAt": self._clock(), "ErrorMessage": message[:2000]},
            )
        except ReportError:
            self._logger.exception("report.finalize_failed_error", extra=log_ctx)
            return
        if failed is None:
            self._logger.warning(
                "report.outcome_discarded", extra={**log_ctx, "outcome": "failed", "error": message}
            )
            return
        self._logger.error("report.failed", extra={**log_ctx, "error": message})
