"""
Test fixtures for the inventory backend tests.

Provides:
- A file-backed SQLite database per test (each session gets its own
  connection, so concurrent tasks really interleave)
- Services wired to that database with a controllable clock
- Async test client with the services injected into the FastAPI app
- Stock item factory
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")
# The app's own engine is never used by tests; every dependency is overridden
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

import pytest
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable, Awaitable, List, Optional, Tuple

from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from inventory_backend.app.core.base import Base
from inventory_backend.app.core.metrics import InventoryObserver
from inventory_backend.app.main import app
from inventory_backend.app.api.deps import (
    get_session,
    get_inventory_service,
    get_reservation_service,
    get_sweeper,
)
from inventory_backend.app.models.inventory import StockItem, derive_status
from inventory_backend.app.models.reservation import StockReservation
from inventory_backend.app.services.inventory import InventoryService
from inventory_backend.app.services.locks import KeyedLockCoordinator
from inventory_backend.app.services.reservations import ReservationService
from inventory_backend.app.services.sweeper import ExpirySweeper

TEST_NOW = datetime(2026, 3, 1, 12, 0, 0)


class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, now: datetime = TEST_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingObserver(InventoryObserver):
    """Collects observer callbacks for assertions."""

    def __init__(self):
        self.events: List[Tuple] = []

    def reservation_created(self, item_count: int) -> None:
        self.events.append(("created", item_count))

    def reservation_confirmed(self) -> None:
        self.events.append(("confirmed",))

    def reservation_released(self) -> None:
        self.events.append(("released",))

    def reservation_expired(self) -> None:
        self.events.append(("expired",))

    def stock_status_changed(self, sku: str, old_status: Optional[str], new_status: str) -> None:
        self.events.append(("status", sku, old_status, new_status))

    def low_stock_count(self, count: int) -> None:
        self.events.append(("low_stock", count))

    def names(self) -> List[str]:
        return [event[0] for event in self.events]


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def sku_locks() -> KeyedLockCoordinator:
    return KeyedLockCoordinator("sku", timeout=5.0)


@pytest.fixture
def reservation_locks() -> KeyedLockCoordinator:
    return KeyedLockCoordinator("reservation", timeout=5.0)


@pytest.fixture
def inventory_service(session_factory, sku_locks, observer) -> InventoryService:
    return InventoryService(session_factory, sku_locks, observer)


@pytest.fixture
def reservation_service(session_factory, sku_locks, reservation_locks, observer, clock) -> ReservationService:
    return ReservationService(
        session_factory,
        sku_locks,
        reservation_locks,
        observer,
        ttl=timedelta(minutes=30),
        clock=clock,
    )


@pytest.fixture
def sweeper(reservation_service, inventory_service) -> ExpirySweeper:
    return ExpirySweeper(reservation_service, inventory_service, interval=0.05)


@pytest.fixture
async def client(
    session_factory,
    inventory_service: InventoryService,
    reservation_service: ReservationService,
    sweeper: ExpirySweeper,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.
    Overrides the database session and the shared services.
    """
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_inventory_service] = lambda: inventory_service
    app.dependency_overrides[get_reservation_service] = lambda: reservation_service
    app.dependency_overrides[get_sweeper] = lambda: sweeper

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

@pytest.fixture
def make_item(inventory_service: InventoryService) -> Callable[..., Awaitable[StockItem]]:
    """Onboard a SKU through the service so derived fields are consistent."""
    async def _make(sku: str = "SKU1", on_hand: int = 10, reorder_point: int = 5, **kwargs) -> StockItem:
        return await inventory_service.add_inventory(
            sku=sku,
            quantity_on_hand=on_hand,
            reorder_point=reorder_point,
            **kwargs,
        )
    return _make


@pytest.fixture
def fetch_item(session_factory) -> Callable[[str], Awaitable[StockItem]]:
    """Read a ledger row from a fresh session."""
    async def _fetch(sku: str) -> StockItem:
        async with session_factory() as session:
            result = await session.execute(select(StockItem).where(StockItem.sku == sku))
            return result.scalar_one()
    return _fetch


@pytest.fixture
def fetch_reservation(session_factory) -> Callable[[str], Awaitable[StockReservation]]:
    async def _fetch(reservation_id: str) -> StockReservation:
        async with session_factory() as session:
            result = await session.execute(
                select(StockReservation).where(StockReservation.reservation_id == reservation_id)
            )
            return result.scalar_one()
    return _fetch


def assert_ledger_consistent(item: StockItem) -> None:
    assert item.quantity_on_hand >= 0
    assert item.quantity_reserved >= 0
    assert item.quantity_available == item.quantity_on_hand - item.quantity_reserved
    assert item.status == derive_status(item.quantity_available, item.reorder_point).value


@pytest.fixture
def check_ledger() -> Callable[[StockItem], None]:
    """Assert the available/status invariants on a ledger row."""
    return assert_ledger_consistent
