from typing import Iterable, Optional, Set

from bloodbridge.models.request import EventKind, RequestSnapshot


def resolve(request: RequestSnapshot, kind: EventKind, registered_user_ids: Iterable[str] = ()) -> Set[str]:
    """
    Who should hear about this event.

    Broadcasts go to every registered user except the requester; there is no
    donation-eligibility filter. Status changes go to the requester and the
    latest responder.
    """
    if kind.is_broadcast:
        return {user_id for user_id in registered_user_ids if user_id and user_id != request.requester_id}

    return {user_id for user_id in (request.requester_id, request.acceptor_id) if user_id}


async def resolve_recipients(store, request: RequestSnapshot, kind: Optional[EventKind]) -> Set[str]:
    if kind is None:
        return set()
    # Only broadcasts need the full user list
    user_ids = await store.list_user_ids() if kind.is_broadcast else ()
    return resolve(request, kind, user_ids)
