"""
ExpiryWorker sweeps
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from sorykpass.models import Order, OrderStatus
from sorykpass.services import BuyerInfo, CheckoutRequest, ExpiryWorker, PaymentOrchestrator


@pytest.mark.asyncio
async def test_run_once_expires_old_orders_and_purges_locks(
    session_factory, reservations, gateway, clock, catalog
):
    now = [datetime(2024, 5, 1, 12, 0, 0)]
    orchestrator = PaymentOrchestrator(
        session_factory, reservations, gateway, clock=lambda: now[0]
    )
    checkout = await orchestrator.create_checkout(CheckoutRequest(
        session_id="s1",
        seat_ids=(catalog.a1,),
        buyer=BuyerInfo(email="late@example.com"),
    ))
    # Another session's hold that has already run out
    await reservations.reserve_seats("s2", [catalog.b1])
    clock.advance(reservations.ttl_seconds + 1)
    now[0] += timedelta(minutes=45)

    worker = ExpiryWorker(orchestrator, interval_seconds=1)
    assert await worker.run_once() == 1

    async with session_factory() as db:
        order = await db.get(Order, checkout.value.order_id)
    assert order.status == OrderStatus.CANCELLED
    assert await reservations.get_reserved_seats([catalog.a1, catalog.b1]) == {}


@pytest.mark.asyncio
async def test_run_once_leaves_fresh_orders(orchestrator, catalog):
    await orchestrator.create_checkout(CheckoutRequest(
        session_id="s1",
        seat_ids=(catalog.a1,),
        buyer=BuyerInfo(email="fresh@example.com"),
    ))

    assert await ExpiryWorker(orchestrator, interval_seconds=1).run_once() == 0


@pytest.mark.asyncio
async def test_start_and_stop(orchestrator):
    worker = ExpiryWorker(orchestrator, interval_seconds=60)

    await worker.start()
    assert worker.running
    await asyncio.sleep(0)

    await worker.stop()
    assert not worker.running
    assert worker.task.done()
