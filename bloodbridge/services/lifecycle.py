"""
Request lifecycle controller.

Reacts to request writes from the store. `classify` decides, from the
(before, after) pair alone, which notification event the write causes and
whether the broadcast notifications for the request have gone stale.

    open      -> accepted | cancelled | closed
    accepted  -> completed | cancelled

closed, completed and cancelled are terminal for notification purposes.
"""
import asyncio
import logging
from typing import Optional

from pydantic import BaseModel

from bloodbridge.models.notification import DeliveryReport, NotificationType
from bloodbridge.models.request import EventKind, RequestSnapshot, RequestStatus
from bloodbridge.services.composer import compose
from bloodbridge.services.resolver import resolve_recipients

logger = logging.getLogger(__name__)

ACTION_KINDS = {
    RequestStatus.ACCEPTED.value: EventKind.ACCEPTED,
    RequestStatus.COMPLETED.value: EventKind.COMPLETED,
    RequestStatus.CANCELLED.value: EventKind.CANCELLED,
    RequestStatus.CLOSED.value: EventKind.CLOSED,
}

OPEN = RequestStatus.OPEN.value


class Transition(BaseModel):
    kind: Optional[EventKind] = None
    # Delete the request's blood_request notifications before delivering
    purge: bool = False
    # Widen the purge to every notification referencing the request
    purge_all: bool = False


def classify(before: Optional[RequestSnapshot], after: RequestSnapshot) -> Transition:
    if before is None:
        if after.status == OPEN:
            return Transition(kind=EventKind.CREATION)
        # Anything already pointing at a brand-new id is stale
        return Transition(purge=True, purge_all=True)

    if before.status == after.status:
        return Transition()

    if after.status == OPEN:
        return Transition(kind=EventKind.REOPENED)

    # Unknown statuses get no message, but leaving open still purges
    return Transition(kind=ACTION_KINDS.get(after.status), purge=before.status == OPEN)


class RequestLifecycleController:
    def __init__(self, store, dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def handle_write(
            self,
            before: Optional[RequestSnapshot],
            after: RequestSnapshot,
    ) -> Optional[DeliveryReport]:
        """Store listener entry point. Returns None when nothing was delivered."""
        transition = classify(before, after)
        if transition.kind is None and not transition.purge:
            return None

        logger.info(
            f"Request {after.id}: {before.status if before else '<new>'} -> {after.status} "
            f"(event={transition.kind.value if transition.kind else None}, purge={transition.purge})"
        )

        if transition.purge:
            notification_type = None if transition.purge_all else NotificationType.BLOOD_REQUEST.value
            await self.purge_notifications(after.id, notification_type)

        if transition.kind is None:
            return None

        try:
            message = compose(after, transition.kind)
            if message is None:
                return None
            recipients = await resolve_recipients(self.store, after, transition.kind)
        except Exception as e:
            logger.error(f"Could not prepare {transition.kind.value} notification for {after.id}: {e}", exc_info=True)
            return None

        if not recipients:
            logger.info(f"No recipients for {transition.kind.value} on request {after.id}.")
            return None

        report = await self.dispatcher.deliver(message, recipients)
        if not report.in_app_ok:
            logger.error(
                f"{report.in_app.failure_count} in-app notification(s) missing for request {after.id}: "
                f"{report.in_app.errors}"
            )
        return report

    async def purge_notifications(
            self,
            request_id: str,
            notification_type: Optional[str] = NotificationType.BLOOD_REQUEST.value,
    ) -> int:
        """
        Deletes the request's notifications of `notification_type` (all types when None).

        One bulk delete first; if that fails, falls back to deleting record by
        record, where a failed delete is logged and the rest still run.
        Returns how many were removed.
        """
        try:
            deleted = await self.store.delete_notifications(request_id, notification_type)
        except Exception as e:
            logger.warning(f"Bulk delete failed for request {request_id}, retrying one by one: {e}")
        else:
            logger.info(f"Deleted {deleted} stale notifications for request {request_id}")
            return deleted

        try:
            notification_ids = await self.store.find_notification_ids(request_id, notification_type)
        except Exception as e:
            logger.error(f"Error finding stale notifications for request {request_id}: {e}")
            return 0

        if not notification_ids:
            return 0

        outcomes = await asyncio.gather(
            *(self.store.delete_notification(notification_id) for notification_id in notification_ids),
            return_exceptions=True,
        )
        deleted = 0
        for notification_id, outcome in zip(notification_ids, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Error deleting notification {notification_id}: {outcome}")
            elif outcome:
                deleted += 1

        logger.info(f"Deleted {deleted} stale notifications for request {request_id}")
        return deleted
