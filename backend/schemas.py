from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.errors import ValidationError

T = TypeVar("T")


class Status(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# status -> statuses it may move to
TRANSITIONS = {
    Status.PENDING: {Status.PROCESSING},
    Status.PROCESSING: {Status.COMPLETED, Status.FAILED},
    Status.COMPLETED: set(),
    Status.FAILED: set(),
}


def can_transition(current: Status, target: Status) -> bool:
    return target in TRANSITIONS[Status(current)]


# field -> (max length, label used in messages)
FIELD_LIMITS = {
    "resume_content": (50000, "Resume content"),
    "job_description": (10000, "Job description"),
    "tailored_summary": (2000, "Tailored summary"),
    "cover_letter": (5000, "Cover letter"),
    "original_file_name": (255, "File name"),
}


def check_length(field: str, value: Optional[str]) -> None:
    limit, label = FIELD_LIMITS[field]
    if value is not None and len(value) > limit:
        raise ValidationError(
            error=f"{field} has {len(value)} characters",
            message=f"{label} cannot exceed {limit:,} characters",
        )


def clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Each class corresponds to a request body or response payload
class JobApplicationCreate(CamelModel):
    resume_content: Optional[str] = None
    job_description: Optional[str] = None
    original_file_name: Optional[str] = None


class GenerateRequest(CamelModel):
    resume_content: Optional[str] = None
    job_description: Optional[str] = None


class JobApplicationOut(CamelModel):
    id: str
    resume_content: str
    job_description: str
    tailored_summary: Optional[str] = None
    cover_letter: Optional[str] = None
    original_file_name: Optional[str] = None
    status: Status
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusOut(CamelModel):
    status: Status
    tailored_summary: Optional[str] = None
    cover_letter: Optional[str] = None
    updated_at: Optional[datetime] = None


class GeneratedContent(CamelModel):
    tailored_summary: str
    cover_letter: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None
    pagination: Optional[Pagination] = None


class JobApplicationPage(BaseModel):
    items: List[JobApplicationOut] = Field(default_factory=list)
    pagination: Pagination
