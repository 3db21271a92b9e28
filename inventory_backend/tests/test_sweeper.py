"""
Tests for the reservation expiry sweeper.
"""
import asyncio

import pytest

from inventory_backend.app.core.constants import ReservationStatus
from inventory_backend.app.services.sweeper import ExpirySweeper


@pytest.mark.asyncio
async def test_sweep_expires_stale_reservations(sweeper, reservation_service, make_item, fetch_item, fetch_reservation, clock, check_ledger):
    """Reserve 5 of 5, let 31 minutes pass, sweep: stock is back and the reservation is EXPIRED."""
    await make_item("A", on_hand=5, reorder_point=1)
    result = await reservation_service.create("order-1", [("A", 5)])
    assert (await fetch_item("A")).quantity_available == 0

    clock.advance(minutes=31)
    report = await sweeper.sweep_once()

    assert report.candidates == 1
    assert report.expired == [result.reservation_id]
    assert report.failed == []

    item = await fetch_item("A")
    assert item.quantity_reserved == 0
    assert item.quantity_available == 5
    check_ledger(item)
    reservation = await fetch_reservation(result.reservation_id)
    assert reservation.status == ReservationStatus.EXPIRED.value
    assert reservation.released_at == clock.now


@pytest.mark.asyncio
async def test_sweep_leaves_live_and_finished_reservations(sweeper, reservation_service, make_item, fetch_item, fetch_reservation, clock):
    await make_item("A", on_hand=20)
    stale = await reservation_service.create("order-1", [("A", 2)])
    confirmed = await reservation_service.create("order-2", [("A", 3)])
    await reservation_service.confirm(confirmed.reservation_id)
    clock.advance(minutes=20)
    fresh = await reservation_service.create("order-3", [("A", 4)])

    clock.advance(minutes=11)
    report = await sweeper.sweep_once()

    assert report.expired == [stale.reservation_id]
    assert (await fetch_reservation(fresh.reservation_id)).status == ReservationStatus.ACTIVE.value
    assert (await fetch_reservation(confirmed.reservation_id)).status == ReservationStatus.CONFIRMED.value
    item = await fetch_item("A")
    assert (item.quantity_on_hand, item.quantity_reserved) == (17, 4)


@pytest.mark.asyncio
async def test_sweep_with_nothing_to_do(sweeper, reservation_service, make_item):
    await make_item("A", on_hand=5)
    await reservation_service.create("order-1", [("A", 1)])

    report = await sweeper.sweep_once()

    assert report.candidates == 0
    assert report.expired == []


@pytest.mark.asyncio
async def test_overlapping_sweeps_release_once(sweeper, reservation_service, make_item, fetch_item, fetch_reservation, clock):
    await make_item("A", on_hand=10)
    other = await reservation_service.create("order-0", [("A", 3)])
    clock.advance(minutes=10)
    result = await reservation_service.create("order-1", [("A", 4)])
    await reservation_service.confirm(other.reservation_id)
    clock.advance(minutes=31)

    first, second = await asyncio.gather(sweeper.sweep_once(), sweeper.sweep_once())

    assert first.expired + second.expired == [result.reservation_id]
    item = await fetch_item("A")
    assert (item.quantity_on_hand, item.quantity_reserved) == (7, 0)
    assert (await fetch_reservation(result.reservation_id)).status == ReservationStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_release_racing_sweep_has_one_winner(sweeper, reservation_service, make_item, fetch_item, clock):
    await make_item("A", on_hand=10)
    result = await reservation_service.create("order-1", [("A", 4)])
    clock.advance(minutes=31)

    outcomes = await asyncio.gather(
        reservation_service.release(result.reservation_id),
        sweeper.sweep_once(),
        return_exceptions=True,
    )

    report = outcomes[1]
    released_by_caller = not isinstance(outcomes[0], Exception)
    assert released_by_caller != bool(report.expired)
    item = await fetch_item("A")
    assert item.quantity_reserved == 0
    assert item.quantity_available == 10


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_sweep(sweeper, reservation_service, make_item, fetch_item, clock, monkeypatch):
    await make_item("A", on_hand=10)
    await make_item("B", on_hand=10)
    bad = await reservation_service.create("order-1", [("A", 1)])
    good = await reservation_service.create("order-2", [("B", 1)])
    clock.advance(minutes=31)

    real_expire = reservation_service.expire

    async def flaky_expire(reservation_id, now=None):
        if reservation_id == bad.reservation_id:
            raise RuntimeError("database hiccup")
        return await real_expire(reservation_id, now=now)

    monkeypatch.setattr(reservation_service, "expire", flaky_expire)
    report = await sweeper.sweep_once()

    assert report.failed == [bad.reservation_id]
    assert report.expired == [good.reservation_id]
    assert (await fetch_item("A")).quantity_reserved == 1
    assert (await fetch_item("B")).quantity_reserved == 0

    # next tick picks the leftover up again
    monkeypatch.undo()
    report = await sweeper.sweep_once()
    assert report.expired == [bad.reservation_id]


@pytest.mark.asyncio
async def test_batch_size_limits_one_sweep(reservation_service, inventory_service, make_item, clock):
    await make_item("A", on_hand=10)
    for i in range(3):
        await reservation_service.create(f"order-{i}", [("A", 1)])
    clock.advance(minutes=31)
    sweeper = ExpirySweeper(reservation_service, inventory_service, batch_size=2)

    assert len((await sweeper.sweep_once()).expired) == 2
    assert len((await sweeper.sweep_once()).expired) == 1


@pytest.mark.asyncio
async def test_sweep_refreshes_low_stock_gauge(sweeper, make_item, observer):
    await make_item("A", on_hand=3, reorder_point=5)
    await make_item("B", on_hand=50, reorder_point=5)
    observer.events.clear()

    report = await sweeper.sweep_once()

    assert report.low_stock == 1
    assert ("low_stock", 1) in observer.events


@pytest.mark.asyncio
async def test_expired_event_is_reported(sweeper, reservation_service, make_item, observer, clock):
    await make_item("A", on_hand=10, reorder_point=0)
    await reservation_service.create("order-1", [("A", 1)])
    clock.advance(minutes=31)
    observer.events.clear()

    await sweeper.sweep_once()

    assert "expired" in observer.names()
    assert "released" not in observer.names()


@pytest.mark.asyncio
async def test_background_loop_start_stop(sweeper, reservation_service, make_item, fetch_reservation, clock):
    await make_item("A", on_hand=10)
    result = await reservation_service.create("order-1", [("A", 1)])
    clock.advance(minutes=31)

    assert not sweeper.running
    sweeper.start()
    assert sweeper.running
    sweeper.start()  # second start is a no-op

    for _ in range(100):
        reservation = await fetch_reservation(result.reservation_id)
        if reservation.status == ReservationStatus.EXPIRED.value:
            break
        await asyncio.sleep(0.02)
    assert reservation.status == ReservationStatus.EXPIRED.value

    await sweeper.stop()
    assert not sweeper.running
    await sweeper.stop()
