import logging
from datetime import datetime, timedelta
from typing import Optional

from app.models.report import Report, utcnow
from app.services.report_status import ReportStatus, report_status

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600


def has_live_download_link(report: Report, now: datetime) -> bool:
    return (
        report.DownloadUrl is not None
        and report.DownloadUrlExpiresAt is not None
        and report.DownloadUrlExpiresAt > now
    )


def refresh_download_link(
    report: Report,
    store,
    storage,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    now: Optional[datetime] = None,
) -> Report:
    """Return the report with a usable download link, minting one if needed.

    Only completed reports get links. A cached link is reused until it
    expires; there is no background refresh.
    """
    if report_status(report) != ReportStatus.COMPLETED:
        return report
    now = now or utcnow()
    if has_live_download_link(report, now):
        return report

    # Presigned validity equals the recorded expiry
    url = storage.generate_presigned_url(report.OutputFilePath, expiration=ttl_seconds)
    expires_at = now + timedelta(seconds=ttl_seconds)
    logger.debug(
        "report.download_link_minted",
        extra={"report_id": str(report.ReportID), "expires_at": expires_at.isoformat()},
    )
    return store.update_report(
        report.ReportID,
        report.UserID,
        {"DownloadUrl": url, "DownloadUrlExpiresAt": expires_at},
    )
