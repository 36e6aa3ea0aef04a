import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from app.models.report import Report, ReportType, utcnow
from app.services.download_links import DEFAULT_TTL_SECONDS, refresh_download_link
from app.services.report_schema import ReportMessage


class ReportService:
    """Request-side operations: create a report and read it back."""

    def __init__(
        self,
        store,
        queue,
        storage,
        download_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.queue = queue
        self.storage = storage
        self.download_ttl_seconds = download_ttl_seconds
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def create_report(self, user_id: uuid.UUID, report_type: str) -> Report:
        """Insert a requested report and enqueue its build.

        If enqueueing fails the row is kept in ``requested`` and the
        ``StorageError`` propagates to the caller.
        """
        rtype = ReportType(report_type)
        report = self.store.create_report(user_id, rtype)
        message = ReportMessage(report_id=report.ReportID, user_id=report.UserID)
        message_id = self.queue.send(message.to_body())
        self._logger.info(
            "report.requested",
            extra={
                "report_id": str(report.ReportID),
                "user_id": str(user_id),
                "report_type": rtype.value,
                "message_id": message_id,
            },
        )
        return report

    def get_report(self, user_id: uuid.UUID, report_id: uuid.UUID) -> Report:
        report = self.store.get_report(report_id, user_id)
        return refresh_download_link(
            report,
            self.store,
            self.storage,
            ttl_seconds=self.download_ttl_seconds,
            now=self._clock(),
        )
