from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class JobStatus(str, Enum):
    pending = "pending"
    success = "success"
    failed = "failed"

    @classmethod
    def parse(cls, value: Any) -> "JobStatus":
        """Map a raw status value to a JobStatus, treating anything unknown as pending"""
        try:
            return cls(value)
        except ValueError:
            return cls.pending


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin: str
    destination: str


class ScrapeRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    route: Route
    outbound: datetime
    airline: str
    retries: int = Field(ge=0)
    proxy: Optional[str] = None

    @field_serializer("outbound")
    def _serialize_outbound(self, outbound: datetime) -> str:
        # e.g. 2025-03-14T04:00:00.000Z
        utc = outbound.astimezone(timezone.utc)
        return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Submission(BaseModel):
    task_id: Optional[str] = None
    raw_response: Any = None


class StatusResponse(BaseModel):
    status: JobStatus
    raw_response: Any
    elapsed_time: float
    attempt: int = 0
    task_id: Optional[str] = None
    data: Any = None
    error: Optional[str] = None


class PollingConfig(BaseModel):
    interval: float = Field(default=1.0, ge=0)
    max_attempts: int = Field(default=60, ge=1)
    request_timeout: float = 30.0
