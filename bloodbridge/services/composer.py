"""
Builds the notification copy for a request event.

Pure functions only: nothing here reads or writes the store.
"""
from typing import Optional

from bloodbridge.models.notification import ComposedMessage, NotificationType
from bloodbridge.models.request import EventKind, RequestSnapshot

ACTION_COPY = {
    EventKind.ACCEPTED: (
        NotificationType.REQUEST_ACCEPTED,
        "✅ Request Accepted!",
        "Your blood request for {patient} ({blood_group}) has been accepted by a donor.",
    ),
    EventKind.COMPLETED: (
        NotificationType.DONATION_COMPLETED,
        "💖 Donation Completed!",
        "The blood donation for {patient} ({blood_group}) has been completed. Thank you for saving a life!",
    ),
    EventKind.CANCELLED: (
        NotificationType.REQUEST_CANCELLED,
        "🚫 Request Closed",
        "The blood request for {patient} ({blood_group}) has been closed.",
    ),
    EventKind.CLOSED: (
        NotificationType.REQUEST_CANCELLED,
        "🚫 Request Closed",
        "The blood request for {patient} ({blood_group}) has been closed.",
    ),
}


def compose(request: RequestSnapshot, kind: Optional[EventKind]) -> Optional[ComposedMessage]:
    """Returns None when the event is not notifiable."""
    if kind is None:
        return None
    if kind.is_broadcast:
        return _compose_new_request(request)
    if kind in ACTION_COPY:
        return _compose_action(request, kind)
    return None


def _compose_new_request(request: RequestSnapshot) -> ComposedMessage:
    blood_group = request.blood_group or "Unknown"
    urgency = request.urgency or "normal"
    location = request.location or "an unspecified location"
    patient = request.patient_name or "a patient"
    hospital = request.hospital or location
    urgency_text = "URGENT: " if urgency == "urgent" else ""

    return ComposedMessage(
        title=f"{urgency_text}New Blood Request: {blood_group}",
        body=f"{patient} in {hospital} needs {blood_group} blood. Can you help?",
        type=NotificationType.BLOOD_REQUEST,
        reference_id=request.id,
        data={
            "type": NotificationType.BLOOD_REQUEST.value,
            "referenceId": request.id,
            "bloodGroup": blood_group,
            "location": location,
            "urgency": urgency,
        },
    )


def _compose_action(request: RequestSnapshot, kind: EventKind) -> ComposedMessage:
    notification_type, title, body = ACTION_COPY[kind]
    blood_group = request.blood_group or "Unknown"
    return ComposedMessage(
        title=title,
        body=body.format(patient=request.patient_name or "a patient", blood_group=blood_group),
        type=notification_type,
        reference_id=request.id,
        data={
            "type": notification_type.value,
            "referenceId": request.id,
            "status": request.status,
            "bloodGroup": blood_group,
        },
    )


def compose_test() -> ComposedMessage:
    return ComposedMessage(
        title="🧪 Test Notification",
        body="This is a test notification from BloodBridge!",
        type=NotificationType.TEST,
        reference_id="test123",
        data={"type": NotificationType.TEST.value, "referenceId": "test123"},
    )
