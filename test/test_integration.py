from datetime import timedelta

import pytest
from sqlalchemy import select

from bloodbridge.database.models import Notification, utcnow
from bloodbridge.models.notification import ComposedMessage, NotificationType
from bloodbridge.services.cleanup import close_expired_requests, sweep_orphan_notifications


async def all_notifications(session_factory, notification_type=None):
    async with session_factory() as session:
        stmt = select(Notification)
        if notification_type:
            stmt = stmt.where(Notification.type == notification_type)
        return list((await session.execute(stmt)).scalars().all())


async def create_open_request(engine, **overrides):
    fields = dict(
        blood_group="O+",
        urgency="urgent",
        location="Dhaka",
        hospital="City Hospital",
        requester_id="u1",
        patient_name="Rahim",
        status="open",
    )
    fields.update(overrides)
    return await engine.store.create_request(**fields)


# --- REQUEST CREATION ---

@pytest.mark.asyncio
async def test_itc_001_open_request_notifies_every_other_user(engine, session_factory, users, mock_gateway):
    request = await create_open_request(engine)

    notifications = await all_notifications(session_factory)
    assert len(notifications) == 3
    assert {n.user_id for n in notifications} == {"u2", "u3", "u4"}
    for n in notifications:
        assert n.type == "blood_request"
        assert n.reference_id == request.id
        assert n.title == "URGENT: New Blood Request: O+"
        assert n.message == "Rahim in City Hospital needs O+ blood. Can you help?"
        assert n.is_read is False
        assert n.created_at is not None

    topics = sorted(call.args[0] for call in mock_gateway.send_to_topic.await_args_list)
    assert topics == ["blood_opos", "new_requests"]
    mock_gateway.send_to_tokens.assert_not_awaited()


@pytest.mark.asyncio
async def test_itc_002_request_created_closed_clears_stale_records(engine, session_factory, users, mock_gateway):
    for notification_type in (NotificationType.BLOOD_REQUEST, NotificationType.REQUEST_ACCEPTED):
        stale = ComposedMessage(title="stale", body="stale", type=notification_type, reference_id="req-x")
        await engine.store.insert_notification("u2", stale)
    await engine.store.insert_notification(
        "u3", ComposedMessage(title="other", body="other", type=NotificationType.TEST, reference_id="req-y")
    )

    await create_open_request(engine, id="req-x", status="closed")

    remaining = await all_notifications(session_factory)
    assert [n.reference_id for n in remaining] == ["req-y"]
    mock_gateway.send_to_topic.assert_not_awaited()
    mock_gateway.send_to_tokens.assert_not_awaited()


@pytest.mark.asyncio
async def test_itc_003_push_outage_still_creates_in_app_records(engine, session_factory, users, mock_gateway):
    mock_gateway.send_to_topic.side_effect = RuntimeError("Requested entity was not found.")

    await create_open_request(engine)

    assert len(await all_notifications(session_factory, "blood_request")) == 3


@pytest.mark.asyncio
async def test_itc_004_lonely_requester_gets_no_records(engine, session_factory, mock_gateway):
    await create_open_request(engine, requester_id="nobody-else")

    assert await all_notifications(session_factory) == []
    mock_gateway.send_to_topic.assert_not_awaited()


# --- STATUS TRANSITIONS ---

@pytest.mark.asyncio
async def test_itc_005_accepting_replaces_broadcast_with_action_notifications(
        engine, session_factory, users, mock_gateway):
    request = await create_open_request(engine)
    assert len(await all_notifications(session_factory, "blood_request")) == 3

    # responders become ["u1", "u2"]; the first append keeps the status and notifies nobody
    await engine.store.update_request(request.id, append_responder="u1")
    updated = await engine.store.update_request(request.id, status="accepted", append_responder="u2")

    assert updated.responders == ["u1", "u2"]
    assert await all_notifications(session_factory, "blood_request") == []
    accepted = await all_notifications(session_factory, "request_accepted")
    assert sorted(n.user_id for n in accepted) == ["u1", "u2"]
    assert all(n.reference_id == request.id for n in accepted)
    assert accepted[0].title == "✅ Request Accepted!"

    # Both users have device tokens
    mock_gateway.send_to_tokens.assert_awaited_once()
    assert sorted(mock_gateway.send_to_tokens.await_args.args[0]) == ["token-u1", "token-u2"]


@pytest.mark.asyncio
async def test_itc_006_completion_notifies_requester_and_donor_only(engine, session_factory, users):
    request = await create_open_request(engine)
    await engine.store.update_request(request.id, status="accepted", append_responder="u3")
    await engine.store.update_request(request.id, status="completed")

    completed = await all_notifications(session_factory, "donation_completed")
    assert sorted(n.user_id for n in completed) == ["u1", "u3"]
    # Still exactly one acceptance record per user
    accepted = await all_notifications(session_factory, "request_accepted")
    assert sorted(n.user_id for n in accepted) == ["u1", "u3"]


@pytest.mark.asyncio
async def test_itc_007_cancel_removes_broadcasts_and_tells_requester(engine, session_factory, users):
    request = await create_open_request(engine)

    await engine.store.update_request(request.id, status="cancelled")

    assert await all_notifications(session_factory, "blood_request") == []
    cancelled = await all_notifications(session_factory, "request_cancelled")
    assert [n.user_id for n in cancelled] == ["u1"]
    assert cancelled[0].message == "The blood request for Rahim (O+) has been closed."


@pytest.mark.asyncio
async def test_itc_008_reopening_broadcasts_again(engine, session_factory, users, mock_gateway):
    request = await create_open_request(engine)
    await engine.store.update_request(request.id, status="closed")
    assert await all_notifications(session_factory, "blood_request") == []

    await engine.store.update_request(request.id, status="open")

    reopened = await all_notifications(session_factory, "blood_request")
    assert sorted(n.user_id for n in reopened) == ["u2", "u3", "u4"]


@pytest.mark.asyncio
async def test_itc_009_unknown_status_purges_without_notifying(engine, session_factory, users):
    request = await create_open_request(engine)

    await engine.store.update_request(request.id, status="on_hold")

    assert await all_notifications(session_factory) == []


@pytest.mark.asyncio
async def test_itc_010_cancelling_accepted_request_keeps_history(engine, session_factory, users, mock_gateway):
    request = await create_open_request(engine)
    await engine.store.update_request(request.id, status="accepted", append_responder="u3")
    mock_gateway.send_to_tokens.reset_mock()

    await engine.store.update_request(request.id, status="cancelled")

    cancelled = await all_notifications(session_factory, "request_cancelled")
    assert sorted(n.user_id for n in cancelled) == ["u1", "u3"]
    assert cancelled[0].title == "🚫 Request Closed"
    # Nothing was open, so the acceptance records stay
    accepted = await all_notifications(session_factory, "request_accepted")
    assert sorted(n.user_id for n in accepted) == ["u1", "u3"]
    # u3 has no device token
    mock_gateway.send_to_tokens.assert_awaited_once()
    assert mock_gateway.send_to_tokens.await_args.args[0] == ["token-u1"]


@pytest.mark.asyncio
async def test_itc_011_update_of_missing_request_returns_none(engine):
    assert await engine.store.update_request("does-not-exist", status="accepted") is None


# --- SCHEDULED JOBS ---

@pytest.mark.asyncio
async def test_itc_012_expiry_job_closes_past_due_requests(engine, session_factory, users):
    now = utcnow()
    expired = await create_open_request(engine, required_date=now - timedelta(days=1))
    upcoming = await create_open_request(engine, required_date=now + timedelta(days=3), blood_group="A-")
    assert len(await all_notifications(session_factory, "blood_request")) == 6

    closed = await close_expired_requests(engine.store, now=now)

    assert closed == 1
    assert (await engine.store.get_request(expired.id)).status == "closed"
    assert (await engine.store.get_request(upcoming.id)).status == "open"
    remaining = await all_notifications(session_factory, "blood_request")
    assert {n.reference_id for n in remaining} == {upcoming.id}
    cancelled = await all_notifications(session_factory, "request_cancelled")
    assert [(n.user_id, n.reference_id) for n in cancelled] == [("u1", expired.id)]

    # Nothing left to close on the next tick
    assert await close_expired_requests(engine.store, now=now) == 0


@pytest.mark.asyncio
async def test_itc_013_orphan_sweep_removes_notifications_for_deleted_requests(engine, session_factory, users):
    request = await create_open_request(engine)
    orphan = ComposedMessage(
        title="New Blood Request: B+",
        body="a patient in Dhaka needs B+ blood. Can you help?",
        type=NotificationType.BLOOD_REQUEST,
        reference_id="hard-deleted-request",
    )
    await engine.store.insert_notification("u2", orphan)

    deleted = await sweep_orphan_notifications(engine.store)

    assert deleted == 1
    remaining = await all_notifications(session_factory, "blood_request")
    assert len(remaining) == 3
    assert {n.reference_id for n in remaining} == {request.id}


@pytest.mark.asyncio
async def test_itc_014_orphan_sweep_is_idempotent(engine, session_factory, users):
    await create_open_request(engine)
    before = sorted(n.id for n in await all_notifications(session_factory))

    assert await sweep_orphan_notifications(engine.store) == 0
    assert await sweep_orphan_notifications(engine.store) == 0
    assert sorted(n.id for n in await all_notifications(session_factory)) == before


@pytest.mark.asyncio
async def test_itc_015_orphan_sweep_catches_missed_purge(engine, session_factory, users):
    request = await create_open_request(engine)
    # Simulate a transition whose purge never ran
    engine.store._listeners.clear()
    await engine.store.update_request(request.id, status="accepted", append_responder="u2")
    assert len(await all_notifications(session_factory, "blood_request")) == 3

    assert await sweep_orphan_notifications(engine.store) == 3
    assert await all_notifications(session_factory, "blood_request") == []


@pytest.mark.asyncio
async def test_itc_016_delete_is_idempotent(engine, session_factory, users):
    await create_open_request(engine)
    notification_id = (await all_notifications(session_factory))[0].id

    assert await engine.store.delete_notification(notification_id) is True
    assert await engine.store.delete_notification(notification_id) is False


@pytest.mark.asyncio
async def test_itc_017_failing_listener_does_not_fail_the_write(engine, session_factory, users):
    async def broken_listener(before, after):
        raise RuntimeError("listener exploded")

    engine.store.subscribe(broken_listener)

    request = await create_open_request(engine)

    assert request.status == "open"
    assert len(await all_notifications(session_factory, "blood_request")) == 3
