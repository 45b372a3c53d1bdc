# file: controllers/notification.py

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from bloodbridge.models.notification import DeliveryError, DeliveryReport, NotificationResponse, SendTestNotification
from bloodbridge.services.composer import compose_test
from bloodbridge.services.engine import NotificationEngine, get_engine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/users/{user_id}/notifications", response_model=List[NotificationResponse])
async def get_user_notifications(
        user_id: str,
        engine: NotificationEngine = Depends(get_engine),
):
    """
    Retrieves all notifications for a user,
    ordered by most recent first.
    """
    return await engine.store.list_user_notifications(user_id)


@router.put("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_as_read(
        notification_id: str,
        engine: NotificationEngine = Depends(get_engine),
):
    """
    Marks a specific notification as read.
    """
    db_notification = await engine.store.mark_notification_read(notification_id)
    if not db_notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return db_notification


@router.post("/notifications/test", response_model=DeliveryReport)
async def send_test_notification(
        payload: SendTestNotification,
        engine: NotificationEngine = Depends(get_engine),
):
    """
    Sends the test notification to one user's device and notification list.
    """
    user = await engine.store.get_user(payload.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not user.fcm_token:
        logger.warning(f"No FCM token found for user {payload.user_id}; only the in-app record will be created")

    report = await engine.dispatcher.deliver(compose_test(), [payload.user_id])
    try:
        report.raise_for_in_app()
    except DeliveryError as e:
        logger.error(f"Error sending test notification: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return report
