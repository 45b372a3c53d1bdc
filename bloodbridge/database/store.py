"""
SQLAlchemy-backed entity store for requests, users and notifications.

Every operation opens its own short-lived session, so callers can run store
operations concurrently. Request creates and updates are published to
subscribed listeners as (before, after) snapshot pairs once committed.
"""
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bloodbridge.database.models import BloodRequest, Notification, User, utcnow
from bloodbridge.models.notification import ComposedMessage
from bloodbridge.models.request import RequestSnapshot, RequestStatus

logger = logging.getLogger(__name__)

RequestListener = Callable[[Optional[RequestSnapshot], RequestSnapshot], Awaitable[object]]


class EntityStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._listeners: List[RequestListener] = []

    # --- CHANGE EVENTS ---

    def subscribe(self, listener: RequestListener):
        self._listeners.append(listener)

    async def _emit(self, before: Optional[RequestSnapshot], after: RequestSnapshot):
        for listener in self._listeners:
            try:
                await listener(before, after)
            except Exception as e:
                # A failing listener never fails the write that fired it
                logger.error(f"Request listener failed for request {after.id}: {e}", exc_info=True)

    # --- REQUESTS ---

    async def get_request(self, request_id: str) -> Optional[RequestSnapshot]:
        async with self._session_factory() as session:
            row = await session.get(BloodRequest, request_id)
            return RequestSnapshot.model_validate(row) if row else None

    async def create_request(self, **fields) -> RequestSnapshot:
        async with self._session_factory() as session:
            row = BloodRequest(**fields)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            after = RequestSnapshot.model_validate(row)

        await self._emit(None, after)
        return after

    async def update_request(
            self,
            request_id: str,
            status: Optional[str] = None,
            append_responder: Optional[str] = None,
    ) -> Optional[RequestSnapshot]:
        async with self._session_factory() as session:
            row = await session.get(BloodRequest, request_id)
            if row is None:
                return None
            before = RequestSnapshot.model_validate(row)

            if status is not None:
                row.status = status
            if append_responder and append_responder not in (row.responders or []):
                # Reassign so the JSON column is flagged dirty
                row.responders = [*(row.responders or []), append_responder]
            row.updated_at = utcnow()

            await session.commit()
            await session.refresh(row)
            after = RequestSnapshot.model_validate(row)

        await self._emit(before, after)
        return after

    async def close_expired_requests(self, now: datetime) -> List[Tuple[RequestSnapshot, RequestSnapshot]]:
        """Moves every open request whose required date has passed to `closed` in one commit."""
        async with self._session_factory() as session:
            stmt = select(BloodRequest).where(
                BloodRequest.status == RequestStatus.OPEN.value,
                BloodRequest.required_date != None,
                BloodRequest.required_date < now,
            )
            rows = (await session.execute(stmt)).scalars().all()
            if not rows:
                return []

            befores = [RequestSnapshot.model_validate(row) for row in rows]
            for row in rows:
                row.status = RequestStatus.CLOSED.value
                row.updated_at = now
            await session.commit()
            afters = [RequestSnapshot.model_validate(row) for row in rows]

        changes = list(zip(befores, afters))
        for before, after in changes:
            await self._emit(before, after)
        return changes

    # --- USERS ---

    async def list_user_ids(self) -> List[str]:
        async with self._session_factory() as session:
            result = await session.execute(select(User.id))
            return list(result.scalars().all())

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

    # --- NOTIFICATIONS ---

    async def insert_notification(self, user_id: str, message: ComposedMessage) -> str:
        async with self._session_factory() as session:
            row = Notification(
                user_id=user_id,
                title=message.title,
                message=message.body,
                type=message.type.value,
                reference_id=message.reference_id,
                is_read=False,
            )
            session.add(row)
            await session.commit()
            return row.id

    async def find_notification_ids(self, reference_id: str, notification_type: Optional[str] = None) -> List[str]:
        """Ids of the notifications pointing at `reference_id`, of any type when none is given."""
        async with self._session_factory() as session:
            stmt = select(Notification.id).where(Notification.reference_id == reference_id)
            if notification_type is not None:
                stmt = stmt.where(Notification.type == notification_type)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete_notifications(self, reference_id: str, notification_type: Optional[str] = None) -> int:
        """Bulk delete in one commit. Returns how many rows went."""
        async with self._session_factory() as session:
            stmt = delete(Notification).where(Notification.reference_id == reference_id)
            if notification_type is not None:
                stmt = stmt.where(Notification.type == notification_type)
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

    async def list_notification_refs(self, notification_type: str) -> List[Tuple[str, Optional[str]]]:
        """(id, reference_id) for every notification of the given type."""
        async with self._session_factory() as session:
            stmt = select(Notification.id, Notification.reference_id).where(
                Notification.type == notification_type
            )
            result = await session.execute(stmt)
            return [(row.id, row.reference_id) for row in result.all()]

    async def delete_notification(self, notification_id: str) -> bool:
        """Returns False when the record was already gone."""
        async with self._session_factory() as session:
            result = await session.execute(delete(Notification).where(Notification.id == notification_id))
            await session.commit()
            return result.rowcount > 0

    async def list_user_notifications(self, user_id: str) -> List[Notification]:
        async with self._session_factory() as session:
            stmt = (
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def mark_notification_read(self, notification_id: str) -> Optional[Notification]:
        async with self._session_factory() as session:
            row = await session.get(Notification, notification_id)
            if row is None:
                return None
            row.is_read = True
            await session.commit()
            await session.refresh(row)
            return row

