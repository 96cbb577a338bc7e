"""
Domain records for gigs, applications and the parties around them.
"""

from datetime import date, datetime, time
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Role(StrEnum):
    WORKER = "worker"
    EMPLOYER = "employer"
    SYSTEM = "system"


class ApplicationStatus(StrEnum):
    PENDING_EMPLOYER_REVIEW = "pending_employer_review"
    EMPLOYER_REJECTED = "employer_rejected"
    PENDING_WORKER_CONFIRMATION = "pending_worker_confirmation"
    WORKER_CONFIRMED = "worker_confirmed"
    WORKER_DECLINED = "worker_declined"
    WORKER_CANCELLED = "worker_cancelled"
    SYSTEM_CANCELLED = "system_cancelled"


ACTIVE_STATUSES = frozenset(
    {
        ApplicationStatus.PENDING_EMPLOYER_REVIEW,
        ApplicationStatus.PENDING_WORKER_CONFIRMATION,
        ApplicationStatus.WORKER_CONFIRMED,
    }
)


class ReviewDecision(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"


class ConfirmDecision(StrEnum):
    ACCEPT = "accept"
    DECLINE = "decline"


class Worker(BaseModel):
    id: str
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Employer(BaseModel):
    id: str
    name: str


class Gig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    employer_id: str
    title: str
    date_start: date
    date_end: date
    time_start: time
    time_end: time
    is_active: bool = True
    published_at: datetime | None = None
    unlisted_at: datetime | None = None  # hidden from listings from this moment

    @model_validator(mode="after")
    def _check_window(self) -> "Gig":
        if self.date_end < self.date_start:
            raise ValueError("date_end must not be before date_start")
        if self.time_end <= self.time_start:
            raise ValueError("time_end must be after time_start")
        return self


class Application(BaseModel):
    # rows are replaced, never edited in place, so a rolled back
    # transaction can't leak a half-applied change
    model_config = ConfigDict(frozen=True)

    id: str
    worker_id: str
    gig_id: str
    status: ApplicationStatus = ApplicationStatus.PENDING_EMPLOYER_REVIEW
    created_at: datetime
    updated_at: datetime


class Notification(BaseModel):
    id: str
    receiver_id: str
    receiver_role: Role
    title: str
    message: str
    type: str
    resource_id: str | None = None
    created_at: datetime
    is_read: bool = False


class ConflictingGig(BaseModel):
    """
    Another commitment of the worker whose schedule overlaps the gig
    being evaluated.
    """

    application_id: str
    gig_id: str
    employer_id: str
    title: str
    date_start: date
    date_end: date
    time_start: time
    time_end: time
    date_range: str
    time_range: str


class ConfirmOutcome(BaseModel):
    application: Application
    conflicts: list[ConflictingGig] = Field(default_factory=list)
    cascaded: list[Application] = Field(default_factory=list)
