from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.errors import MalformedMessageError
from app.services.report_status import ReportStatus, report_status


class ReportMessage(BaseModel):
    """Queue payload announcing a report to build."""

    model_config = ConfigDict(extra="ignore")

    report_id: uuid.UUID
    user_id: uuid.UUID

    def to_body(self) -> str:
        return self.model_dump_json()


def parse_report_message(body: Optional[str]) -> ReportMessage:
    if body is None or not body.strip():
        raise MalformedMessageError("empty message body")
    try:
        return ReportMessage.model_validate_json(body)
    except ValidationError as e:
        raise MalformedMessageError(f"invalid message body: {e.error_count()} error(s)") from e


class CompendiumEntry(BaseModel):
    """One record from the compendium API."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    category: str
    description: str = ""
    image: str = ""
    common_locations: List[str] = Field(default_factory=list)
    drops: List[str] = Field(default_factory=list)
    dlc: bool = False
    properties: dict = Field(default_factory=dict)

    @field_validator("common_locations", "drops", "properties", mode="before")
    @classmethod
    def _null_as_empty(cls, v, info):
        if v is None:
            return {} if info.field_name == "properties" else []
        return v

    @field_validator("description", "image", mode="before")
    @classmethod
    def _null_as_blank(cls, v):
        return "" if v is None else v


class ReportOut(BaseModel):
    """User-facing representation of a report."""

    id: uuid.UUID
    report_type: str
    status: ReportStatus
    output_file_path: Optional[str] = None
    download_url: Optional[str] = None
    download_url_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def from_report(cls, report) -> "ReportOut":
        status = report_status(report)
        return cls(
            id=report.ReportID,
            report_type=report.ReportType,
            status=status,
            output_file_path=report.OutputFilePath,
            download_url=report.DownloadUrl,
            download_url_expires_at=report.DownloadUrlExpiresAt,
            created_at=report.CreatedAt,
            started_at=report.StartedAt,
            completed_at=report.CompletedAt,
            failed_at=report.FailedAt,
            # Only a failed report surfaces its error to the user
            error_message=report.ErrorMessage if status == ReportStatus.FAILED else None,
        )
