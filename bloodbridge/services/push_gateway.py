import asyncio
import logging
from typing import List, Optional

import firebase_admin
from firebase_admin import credentials, messaging

from bloodbridge.config import ANDROID_CHANNEL_ID, FIREBASE_CREDENTIALS
from bloodbridge.models.notification import BatchResult, ComposedMessage

logger = logging.getLogger(__name__)

# FCM rejects multicast batches larger than this
MAX_TOKENS_PER_BATCH = 500


def init_firebase(credentials_path: Optional[str] = FIREBASE_CREDENTIALS):
    # Singleton pattern: Check if the app is already initialized
    if firebase_admin._apps:
        return
    try:
        if credentials_path:
            firebase_admin.initialize_app(credentials.Certificate(credentials_path))
            logger.info(f"Firebase Admin SDK initialized from {credentials_path}.")
        else:
            firebase_admin.initialize_app()
            logger.info("Firebase Admin SDK initialized with default credentials.")
    except Exception as e:
        # Push channels fail per send until this is fixed; in-app records keep working
        logger.error(f"FATAL: Error initializing Firebase Admin SDK: {e}")


def topic_for_blood_group(blood_group: str) -> str:
    formatted = blood_group.replace("+", "pos").replace("-", "neg")
    return f"blood_{formatted.lower()}"


def chunked(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class FirebasePushGateway:
    """
    Best-effort push delivery through Firebase Cloud Messaging.

    The Admin SDK is blocking, so every call runs in a worker thread.
    """

    def __init__(self, channel_id: str = ANDROID_CHANNEL_ID):
        self.channel_id = channel_id

    def _payload(self, message: ComposedMessage):
        data = {
            **message.data,
            "click_action": "FLUTTER_NOTIFICATION_CLICK",
            "channelId": self.channel_id,
        }
        notification = messaging.Notification(title=message.title, body=message.body)
        android = messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(channel_id=self.channel_id),
        )
        return notification, data, android

    async def send_to_topic(self, topic: str, message: ComposedMessage) -> str:
        notification, data, android = self._payload(message)
        fcm_message = messaging.Message(topic=topic, notification=notification, data=data, android=android)
        message_id = await asyncio.to_thread(messaging.send, fcm_message)
        logger.info(f"Notification sent to topic '{topic}': {message_id}")
        return message_id

    async def send_to_tokens(self, tokens: List[str], message: ComposedMessage) -> BatchResult:
        result = BatchResult()
        notification, data, android = self._payload(message)

        for batch in chunked(tokens, MAX_TOKENS_PER_BATCH):
            fcm_messages = [
                messaging.Message(token=token, notification=notification, data=data, android=android)
                for token in batch
            ]
            try:
                batch_response = await asyncio.to_thread(messaging.send_each, fcm_messages)
            except Exception as e:
                logger.error(f"FCM batch of {len(batch)} tokens failed: {e}")
                result.failure_count += len(batch)
                result.errors.append(str(e))
                continue
            result.success_count += batch_response.success_count
            result.failure_count += batch_response.failure_count
            for token, response in zip(batch, batch_response.responses):
                if not response.success:
                    result.errors.append(f"{token[:12]}...: {response.exception}")

        return result
