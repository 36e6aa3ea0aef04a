"""SQLAlchemy-backed report store.

Each call opens its own short-lived session so worker threads never share one.
Returned ``Report`` objects are detached snapshots (``expire_on_commit=False``).
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import ReportNotFoundError, StorageError
from app.models.report import Report, ReportType

logger = logging.getLogger(__name__)

# Columns a caller may change after creation
UPDATABLE_FIELDS = frozenset(
    (
        "OutputFilePath",
        "DownloadUrl",
        "DownloadUrlExpiresAt",
        "ErrorMessage",
        "StartedAt",
        "CompletedAt",
        "FailedAt",
    )
)

# A claim always starts the attempt from a clean terminal-state slate
CLAIM_CLEARED_FIELDS = (
    "CompletedAt",
    "FailedAt",
    "ErrorMessage",
    "DownloadUrl",
    "DownloadUrlExpiresAt",
    "OutputFilePath",
)


class ReportStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def create_report(self, user_id: uuid.UUID, report_type: ReportType) -> Report:
        report = Report(UserID=user_id, ReportType=ReportType(report_type).value)
        try:
            with self._session() as db:
                db.add(report)
                db.commit()
                db.refresh(report)
        except SQLAlchemyError as e:
            raise StorageError(f"failed to create report: {e}") from e
        return report

    def get_report(self, report_id: uuid.UUID, user_id: uuid.UUID) -> Report:
        try:
            with self._session() as db:
                report = db.execute(
                    select(Report).where(Report.ReportID == report_id, Report.UserID == user_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"failed to get report {report_id}: {e}") from e
        if report is None:
            raise ReportNotFoundError(report_id, user_id)
        return report

    def update_report(
        self, report_id: uuid.UUID, user_id: uuid.UUID, values: Dict[str, Any]
    ) -> Report:
        """Change only the supplied fields; a ``None`` value clears the column."""
        unknown = set(values) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update report fields: {sorted(unknown)}")
        if not values:
            return self.get_report(report_id, user_id)
        try:
            with self._session() as db:
                result = db.execute(
                    update(Report)
                    .where(Report.ReportID == report_id, Report.UserID == user_id)
                    .values(**values)
                )
                if result.rowcount == 0:
                    db.rollback()
                    raise ReportNotFoundError(report_id, user_id)
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"failed to update report {report_id}: {e}") from e
        return self.get_report(report_id, user_id)

    def finalize_report(
        self,
        report_id: uuid.UUID,
        user_id: uuid.UUID,
        started_at: datetime,
        values: Dict[str, Any],
    ) -> Optional[Report]:
        """Record an attempt's outcome if that attempt still owns the row.

        The update only matches while ``StartedAt`` equals the attempt's own
        claim time and no outcome is recorded yet. Returns ``None`` when a
        newer claim has superseded the attempt; nothing is written then.
        """
        unknown = set(values) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update report fields: {sorted(unknown)}")
        try:
            with self._session() as db:
                result = db.execute(
                    update(Report)
                    .where(
                        Report.ReportID == report_id,
                        Report.UserID == user_id,
                        Report.StartedAt == started_at,
                        Report.CompletedAt.is_(None),
                        Report.FailedAt.is_(None),
                    )
                    .values(**values)
                )
                if result.rowcount != 1:
                    db.rollback()
                    logger.warning(
                        "report.claim_superseded",
                        extra={
                            "report_id": str(report_id),
                            "user_id": str(user_id),
                            "started_at": started_at.isoformat(),
                        },
                    )
                    return None
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"failed to finalize report {report_id}: {e}") from e
        return self.get_report(report_id, user_id)

    def claim_report(
        self,
        report_id: uuid.UUID,
        user_id: uuid.UUID,
        now: datetime,
        stale_before: Optional[datetime] = None,
    ) -> Optional[Report]:
        """Mark the report started if nobody holds it.

        The update only matches a row that is unclaimed, or (when
        ``stale_before`` is given) one still processing since before that
        instant. Returns the claimed report, or ``None`` when the row was
        claimed by someone else first.
        """
        claimable = Report.StartedAt.is_(None)
        if stale_before is not None:
            claimable = or_(
                claimable,
                and_(
                    Report.StartedAt < stale_before,
                    Report.CompletedAt.is_(None),
                    Report.FailedAt.is_(None),
                ),
            )
        values: Dict[str, Any] = {field: None for field in CLAIM_CLEARED_FIELDS}
        values["StartedAt"] = now
        try:
            with self._session() as db:
                result = db.execute(
                    update(Report)
                    .where(Report.ReportID == report_id, Report.UserID == user_id, claimable)
                    .values(**values)
                )
                if result.rowcount != 1:
                    db.rollback()
                    logger.info(
                        "report.claim_lost",
                        extra={"report_id": str(report_id), "user_id": str(user_id)},
                    )
                    return None
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"failed to claim report {report_id}: {e}") from e
        return self.get_report(report_id, user_id)
