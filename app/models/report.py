import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    # Store naive UTC for DB columns that are naive
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ReportType(str, enum.Enum):
    MONSTERS = "monsters"
    WEAPONS = "weapons"
    ARMOR = "armor"


class Report(Base):
    __tablename__ = "Reports"
    __table_args__ = (Index("ix_Reports_UserID", "UserID"),)

    ReportID = Column(Uuid, primary_key=True, default=uuid.uuid4)
    UserID = Column(Uuid, nullable=False)
    ReportType = Column(String(32), nullable=False)  # monsters|weapons|armor
    OutputFilePath = Column(String(500), nullable=True)  # blob key in the reports bucket
    DownloadUrl = Column(Text, nullable=True)
    DownloadUrlExpiresAt = Column(DateTime, nullable=True)
    ErrorMessage = Column(Text, nullable=True)
    # All timestamps are naive UTC
    CreatedAt = Column(DateTime, nullable=False, default=utcnow)
    StartedAt = Column(DateTime, nullable=True)
    CompletedAt = Column(DateTime, nullable=True)
    FailedAt = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Report {self.ReportID} type={self.ReportType} user={self.UserID}>"
