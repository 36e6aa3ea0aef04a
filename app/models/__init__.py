# Package init for app.models
from .report import Base as Base  # explicit re-export
from .report import Report as Report
from .report import ReportType as ReportType
