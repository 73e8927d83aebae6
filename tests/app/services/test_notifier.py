"""Tests for the fire-and-forget status-change notifier."""

import asyncio

import pytest

from app.core.exceptions import EmailDeliveryError
from app.models import OrderStatus
from app.services import background_tasks
from app.services.notifier import (
    REASON_NOT_SUBSCRIBED,
    REASON_STATUS_UNCHANGED,
    OrderSnapshot,
    process_order_status_update,
    spawn_background,
    trigger_order_status_update,
    wait_for_pending,
)

pytestmark = pytest.mark.anyio


def _snapshot(subscribed: bool = True) -> OrderSnapshot:
    return OrderSnapshot(
        id="o1",
        order_number="P3D-20250314-AB12",
        customer_name="Ioana",
        customer_email="ioana@example.com",
        subscribe_to_updates=subscribed,
    )


async def test_unchanged_status_sends_nothing(email_service):
    result = await process_order_status_update(
        _snapshot(), OrderStatus.PAID, OrderStatus.PAID, email_service
    )
    assert result.sent is False
    assert result.reason == REASON_STATUS_UNCHANGED
    assert email_service.sent == []


async def test_unsubscribed_customer_gets_nothing(email_service):
    result = await process_order_status_update(
        _snapshot(subscribed=False), OrderStatus.PAID, OrderStatus.PRINTING, email_service
    )
    assert result == (False, REASON_NOT_SUBSCRIBED)
    assert email_service.sent == []


async def test_sends_with_both_statuses(email_service):
    result = await process_order_status_update(_snapshot(), "PAID", "PRINTING", email_service)
    assert result.sent is True
    assert email_service.sent == [
        ("status_update", {"order_number": "P3D-20250314-AB12", "old": "PAID", "new": "PRINTING"})
    ]


async def test_send_failure_propagates(email_service):
    email_service.fail = True
    with pytest.raises(EmailDeliveryError):
        await process_order_status_update(_snapshot(), "PAID", "PRINTING", email_service)


async def test_trigger_does_not_wait_for_delivery(email_service):
    gate = asyncio.Event()
    original = email_service.send_status_update

    async def _slow(order, old, new):
        await gate.wait()
        await original(order, old, new)

    email_service.send_status_update = _slow

    task = trigger_order_status_update(
        _snapshot(), OrderStatus.PRINTING, OrderStatus.SHIPPED, email_service, backend="asyncio"
    )
    assert task is not None
    assert not task.done()
    assert email_service.sent == []

    gate.set()
    await wait_for_pending(timeout=5)
    assert email_service.kinds() == ["status_update"]


async def test_trigger_swallows_failures(email_service):
    email_service.fail = True
    task = trigger_order_status_update(
        _snapshot(), OrderStatus.PRINTING, OrderStatus.SHIPPED, email_service, backend="asyncio"
    )
    await wait_for_pending(timeout=5)
    assert task.done()
    assert task.exception() is None


async def test_trigger_takes_a_snapshot(make_order, email_service):
    order = await make_order()
    task = trigger_order_status_update(order, "RECEIVED", "MODELING", email_service, backend="asyncio")
    await wait_for_pending(timeout=5)
    assert task.done()
    assert email_service.sent[0][1]["order_number"] == order.order_number


async def test_celery_backend_enqueues(monkeypatch, email_service):
    calls = []
    monkeypatch.setattr(
        background_tasks.notify_order_status_change,
        "delay",
        lambda *args: calls.append(args),
    )
    result = trigger_order_status_update(
        _snapshot(), OrderStatus.PAID, OrderStatus.PRINTING, email_service, backend="celery"
    )
    assert result is None
    assert calls == [(_snapshot().to_dict(), "PAID", "PRINTING")]
    assert email_service.sent == []


async def test_celery_enqueue_failure_is_logged_not_raised(monkeypatch):
    def _broken(*_args):
        raise ConnectionError("broker down")

    monkeypatch.setattr(background_tasks.notify_order_status_change, "delay", _broken)
    assert trigger_order_status_update(_snapshot(), "PAID", "PRINTING", backend="celery") is None


async def test_spawn_background_logs_and_returns_none():
    async def _boom():
        raise RuntimeError("boom")

    task = spawn_background(_boom(), label="test")
    await wait_for_pending(timeout=5)
    assert task.result() is None
