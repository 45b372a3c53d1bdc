# file: models/notification.py

from enum import Enum
from typing import Dict, List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    BLOOD_REQUEST = "blood_request"
    REQUEST_ACCEPTED = "request_accepted"
    DONATION_COMPLETED = "donation_completed"
    REQUEST_CANCELLED = "request_cancelled"
    TEST = "test"


class ComposedMessage(BaseModel):
    """Channel-agnostic message. `data` values are strings so FCM accepts them."""
    title: str
    body: str
    type: NotificationType
    reference_id: str
    data: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def is_broadcast(self) -> bool:
        return self.type == NotificationType.BLOOD_REQUEST


class NotificationResponse(BaseModel):
    id: str
    user_id: str = Field(serialization_alias="userId")
    title: str
    message: str
    type: str
    reference_id: Optional[str] = Field(default=None, serialization_alias="referenceId")
    is_read: bool = Field(serialization_alias="isRead")
    created_at: datetime = Field(serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True)


class SendTestNotification(BaseModel):
    user_id: str


# --- Delivery results ---

class BatchResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    errors: List[str] = Field(default_factory=list)


class ChannelResult(BaseModel):
    attempted: bool = False
    success_count: int = 0
    failure_count: int = 0
    errors: List[str] = Field(default_factory=list)


class DeliveryError(Exception):
    def __init__(self, report: "DeliveryReport"):
        super().__init__(
            f"In-app delivery failed for {report.in_app.failure_count} recipient(s) "
            f"of {report.reference_id}"
        )
        self.report = report


class DeliveryReport(BaseModel):
    reference_id: str
    type: NotificationType
    recipients: int = 0
    topic: ChannelResult = Field(default_factory=ChannelResult)
    tokens: ChannelResult = Field(default_factory=ChannelResult)
    in_app: ChannelResult = Field(default_factory=ChannelResult)

    @property
    def in_app_ok(self) -> bool:
        return self.in_app.failure_count == 0

    def raise_for_in_app(self):
        """Push channels are best-effort; only missing in-app records are an error."""
        if not self.in_app_ok:
            raise DeliveryError(self)
