"""
Multi-channel notification delivery.

Three independent channels run concurrently for each message:
topic push (broadcasts), per-token push (targeted messages) and the
persisted in-app record. Push failures are logged and swallowed; the
in-app record is the authoritative path and its failures are reported.
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from bloodbridge.config import NEW_REQUESTS_TOPIC
from bloodbridge.models.notification import ChannelResult, ComposedMessage, DeliveryReport
from bloodbridge.services.push_gateway import topic_for_blood_group

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, store, gateway, new_requests_topic: str = NEW_REQUESTS_TOPIC):
        self.store = store
        self.gateway = gateway
        self.new_requests_topic = new_requests_topic

    async def deliver(self, message: ComposedMessage, recipients: Iterable[str]) -> DeliveryReport:
        recipients = sorted(set(recipients))
        report = DeliveryReport(reference_id=message.reference_id, type=message.type, recipients=len(recipients))
        if not recipients:
            return report

        channels = {"in_app": self._deliver_in_app(message, recipients)}
        if message.is_broadcast:
            channels["topic"] = self._deliver_topics(message)
        else:
            channels["tokens"] = self._deliver_tokens(message, recipients)

        results = await asyncio.gather(*channels.values(), return_exceptions=True)
        for name, result in zip(channels.keys(), results):
            if isinstance(result, BaseException):
                logger.error(f"Channel '{name}' crashed for {message.reference_id}: {result}", exc_info=result)
                result = ChannelResult(attempted=True, failure_count=1, errors=[str(result)])
            setattr(report, name, result)

        logger.info(
            f"Delivered {message.type.value} for {message.reference_id}: "
            f"in-app {report.in_app.success_count}/{len(recipients)}, "
            f"topic ok={report.topic.success_count} failed={report.topic.failure_count}, "
            f"tokens ok={report.tokens.success_count} failed={report.tokens.failure_count}"
        )
        return report

    # --- CHANNELS ---

    async def _deliver_topics(self, message: ComposedMessage) -> ChannelResult:
        topics = [self.new_requests_topic]
        blood_group = message.data.get("bloodGroup")
        if blood_group and blood_group != "Unknown":
            topics.append(topic_for_blood_group(blood_group))

        result = ChannelResult(attempted=True)
        outcomes = await asyncio.gather(
            *(self.gateway.send_to_topic(topic, message) for topic in topics),
            return_exceptions=True,
        )
        for topic, outcome in zip(topics, outcomes):
            if isinstance(outcome, Exception):
                # Also raised when nobody has subscribed to the topic yet
                logger.warning(f"Error sending to topic '{topic}': {outcome}")
                result.failure_count += 1
                result.errors.append(f"{topic}: {outcome}")
            else:
                result.success_count += 1
        return result

    async def _lookup_token(self, user_id: str) -> Optional[str]:
        try:
            user = await self.store.get_user(user_id)
        except Exception as e:
            logger.error(f"Error fetching FCM token for user {user_id}: {e}")
            return None
        return user.fcm_token if user else None

    async def _deliver_tokens(self, message: ComposedMessage, recipients: List[str]) -> ChannelResult:
        tokens = await asyncio.gather(*(self._lookup_token(user_id) for user_id in recipients))
        tokens = [token for token in tokens if token]
        if not tokens:
            return ChannelResult()

        result = ChannelResult(attempted=True)
        try:
            batch = await self.gateway.send_to_tokens(tokens, message)
        except Exception as e:
            logger.error(f"Token push failed for {message.reference_id}: {e}")
            result.failure_count = len(tokens)
            result.errors.append(str(e))
            return result

        result.success_count = batch.success_count
        result.failure_count = batch.failure_count
        result.errors.extend(batch.errors)
        return result

    async def _insert_one(self, user_id: str, message: ComposedMessage) -> Optional[str]:
        try:
            await self.store.insert_notification(user_id, message)
        except Exception as e:
            logger.error(f"Error creating in-app notification for user {user_id}: {e}")
            return f"{user_id}: {e}"
        return None

    async def _deliver_in_app(self, message: ComposedMessage, recipients: List[str]) -> ChannelResult:
        result = ChannelResult(attempted=True)
        errors = await asyncio.gather(*(self._insert_one(user_id, message) for user_id in recipients))
        for error in errors:
            if error:
                result.failure_count += 1
                result.errors.append(error)
            else:
                result.success_count += 1
        return result
