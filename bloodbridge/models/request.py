from enum import Enum
from typing import List, Literal, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RequestStatus(str, Enum):
    OPEN = "open"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class EventKind(str, Enum):
    CREATION = "creation"
    REOPENED = "reopened"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"

    @property
    def is_broadcast(self) -> bool:
        return self in (EventKind.CREATION, EventKind.REOPENED)


class RequestSnapshot(BaseModel):
    """Read-only view of a request as it was at one side of a write."""
    id: str
    blood_group: Optional[str] = None
    urgency: str = "normal"
    location: Optional[str] = None
    hospital: Optional[str] = None
    requester_id: Optional[str] = None
    patient_name: Optional[str] = None
    status: str = RequestStatus.OPEN.value
    required_date: Optional[datetime] = None
    responders: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def acceptor_id(self) -> Optional[str]:
        return self.responders[-1] if self.responders else None


class RequestCreate(BaseModel):
    blood_group: str
    urgency: Literal["normal", "urgent"] = "normal"
    location: Optional[str] = None
    hospital: Optional[str] = None
    requester_id: str
    patient_name: Optional[str] = None
    required_date: Optional[datetime] = None
    status: str = RequestStatus.OPEN.value

    @field_validator("required_date")
    def to_naive_utc(cls, v):
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class RequestStatusUpdate(BaseModel):
    status: str
    # Donor accepting the request; appended to responders
    responder_id: Optional[str] = None


class RequestResponse(RequestSnapshot):
    pass
