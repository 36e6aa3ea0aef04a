import enum


class ReportStatus(str, enum.Enum):
    REQUESTED = "requested"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


def report_status(report) -> ReportStatus:
    """Project a report's lifecycle timestamps onto a status.

    Completion wins over failure when both are (inconsistently) set.
    """
    started = report.StartedAt is not None
    completed = report.CompletedAt is not None
    failed = report.FailedAt is not None

    if not started:
        return ReportStatus.REQUESTED
    if not completed and not failed:
        return ReportStatus.PROCESSING
    if completed:
        return ReportStatus.COMPLETED
    if failed:
        return ReportStatus.FAILED
    return ReportStatus.UNKNOWN
