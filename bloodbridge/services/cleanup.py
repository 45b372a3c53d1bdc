import logging
from datetime import datetime
from typing import Dict, Optional

from bloodbridge.database.models import utcnow
from bloodbridge.models.notification import NotificationType
from bloodbridge.models.request import RequestStatus

logger = logging.getLogger(__name__)


async def close_expired_requests(store, now: Optional[datetime] = None) -> int:
    """
    Closes open requests whose required date has passed.

    The store publishes an update event for every closed request, so the
    lifecycle controller removes their broadcast notifications and tells the
    requester and responder.
    """
    now = now or utcnow()
    logger.info(f"[{now}] Running expired request check...")
    changes = await store.close_expired_requests(now)
    if not changes:
        logger.info("No expired blood requests found to close.")
        return 0

    logger.info(f"Closed {len(changes)} expired blood requests.")
    return len(changes)


async def sweep_orphan_notifications(store) -> int:
    """Deletes blood_request notifications whose request is gone or no longer open."""
    refs = await store.list_notification_refs(NotificationType.BLOOD_REQUEST.value)
    statuses: Dict[str, Optional[str]] = {}
    deleted = 0

    for notification_id, reference_id in refs:
        if not reference_id:
            continue
        if reference_id not in statuses:
            request = await store.get_request(reference_id)
            statuses[reference_id] = request.status if request else None
        if statuses[reference_id] == RequestStatus.OPEN.value:
            continue

        try:
            if await store.delete_notification(notification_id):
                deleted += 1
        except Exception as e:
            logger.error(f"Error deleting orphan notification {notification_id}: {e}")

    logger.info(f"Cleanup: Deleted {deleted} notifications for closed/deleted requests.")
    return deleted
