"""
Tests del dispatcher de notificaciones y del filtro por preferencias.
"""
import asyncio

import pytest
from sqlalchemy import select

from crm_sync.application.services.notification_dispatcher import (
    NotificationDispatcher,
    NotificationRequest,
)
from crm_sync.application.services.notification_service import NotificationService, wants_notification
from crm_sync.infrastructure.database.models import NotificationModel


def request_for(*user_ids, type="LISTING_PRICE"):
    return NotificationRequest(
        user_ids=list(user_ids),
        type=type,
        title="Price decreased on a listing you bid on",
        body="Listing P-1: $5 -> $4 per unit.",
        data={"listing_id": "L-1"},
    )


async def stored_notifications(session_factory):
    async with session_factory() as db:
        return list((await db.execute(select(NotificationModel))).scalars().all())


def test_preferences_override_defaults():
    assert wants_notification(None, "LISTING_NEW") is True
    assert wants_notification({"LISTING_NEW": False}, "LISTING_NEW") is False
    assert wants_notification({"LISTING_NEW": False}, "LISTING_PRICE") is True


@pytest.mark.asyncio
async def test_notify_many_dedupes_and_skips_unknown_users(db_session, seed, session_factory):
    buyer = await seed.actor()

    created = await NotificationService(db_session).notify_many(
        [buyer.id, buyer.id, "ghost-id"], "LISTING_PRICE", "t", "b", {"k": 1}
    )

    assert created == 1
    rows = await stored_notifications(session_factory)
    assert [row.user_id for row in rows] == [buyer.id]
    assert rows[0].data == {"k": 1}


@pytest.mark.asyncio
async def test_drain_delivers_queued_requests(session_factory, seed):
    buyer = await seed.actor()
    muted = await seed.actor(notification_prefs={"LISTING_PRICE": False})
    dispatcher = NotificationDispatcher(session_factory, maxsize=10)

    dispatcher.enqueue(request_for(buyer.id, muted.id))
    await dispatcher.drain()

    assert dispatcher.pending() == 0
    assert dispatcher.delivered == 1
    assert [row.user_id for row in await stored_notifications(session_factory)] == [buyer.id]


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_blocking(session_factory):
    dispatcher = NotificationDispatcher(session_factory, maxsize=1)

    assert dispatcher.enqueue(request_for("a")) is True
    assert dispatcher.enqueue(request_for("b")) is False
    assert dispatcher.dropped == 1


@pytest.mark.asyncio
async def test_empty_recipient_list_is_not_queued(session_factory):
    dispatcher = NotificationDispatcher(session_factory, maxsize=1)

    assert dispatcher.enqueue(request_for()) is False
    assert dispatcher.pending() == 0


@pytest.mark.asyncio
async def test_delivery_failures_are_counted_not_raised():
    def broken_factory():
        raise RuntimeError("sin base")

    dispatcher = NotificationDispatcher(broken_factory, maxsize=10)
    dispatcher.enqueue(request_for("a"))

    await dispatcher.drain()

    assert dispatcher.failed == 1
    assert dispatcher.delivered == 0


@pytest.mark.asyncio
async def test_background_worker_flushes_on_stop(session_factory, seed):
    buyer = await seed.actor()
    dispatcher = NotificationDispatcher(session_factory, maxsize=10)
    dispatcher.start()
    dispatcher.start()

    dispatcher.enqueue(request_for(buyer.id))
    await dispatcher.stop(drain=True)

    assert dispatcher.running is False
    assert len(await stored_notifications(session_factory)) == 1


@pytest.mark.asyncio
async def test_worker_survives_failed_delivery(session_factory, seed):
    buyer = await seed.actor()
    dispatcher = NotificationDispatcher(session_factory, maxsize=10)
    dispatcher.start()

    dispatcher.enqueue(request_for(buyer.id, type="LISTING_NEW"))
    dispatcher.enqueue(NotificationRequest(user_ids=[buyer.id], type="LISTING_NEW", title=None, body="x"))
    dispatcher.enqueue(request_for(buyer.id))
    await asyncio.wait_for(dispatcher.stop(drain=True), timeout=5)

    assert dispatcher.failed == 1
    assert len(await stored_notifications(session_factory)) == 2
