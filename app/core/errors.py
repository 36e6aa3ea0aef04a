"""Error taxonomy for the report lifecycle.

Errors raised before a report is claimed never touch its stored state.
Every ``BuildError`` raised after the claim has already been recorded on the
report as ``FailedAt``/``ErrorMessage`` by the time the caller sees it.
"""


class ReportError(Exception):
    """Base class for report lifecycle errors."""


class ReportNotFoundError(ReportError):
    def __init__(self, report_id, user_id=None):
        self.report_id = report_id
        self.user_id = user_id
        super().__init__(f"report {report_id} not found")


class BuildError(ReportError):
    """A report build attempt failed."""


class FetchError(BuildError):
    """The upstream data source failed or returned nothing."""


class StorageError(BuildError):
    """Compression, blob upload, queue or report store failure."""


class BuildTimeoutError(BuildError):
    """The build ran past its deadline."""


class MalformedMessageError(ReportError):
    """A queue payload could not be decoded."""
