# inventory_backend/app/services/inventory.py
"""
Inventory service - stock lookups, statistics and administrative ledger changes.

Reads go straight to the database and may trail in-flight reservations.
Writes take the SKU lock exactly like reservations do.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_backend.app.core.constants import (
    StockStatus,
    ReservationStatus,
    DEFAULT_REORDER_POINT,
    DEFAULT_REORDER_QUANTITY,
)
from inventory_backend.app.core.logging import get_logger
from inventory_backend.app.core.metrics import InventoryObserver
from inventory_backend.app.models.inventory import StockItem
from inventory_backend.app.models.reservation import StockReservation
from inventory_backend.app.services.ledger import (
    LedgerError,
    LedgerInvariantError,
    StockItemNotFoundError,
    StockLedger,
)
from inventory_backend.app.services.locks import KeyedLockCoordinator

logger = get_logger(__name__)


class StockItemExistsError(LedgerError):
    def __init__(self, sku: str):
        super().__init__(f"SKU already exists: {sku}", 409)


@dataclass(frozen=True)
class StockCheck:
    sku: str
    available: int
    in_stock: bool


@dataclass(frozen=True)
class InventoryStats:
    in_stock: int
    low_stock: int
    out_of_stock: int
    total_quantity: int
    total_reserved: int
    active_reservations: int


class InventoryService:
    """Service class for stock item queries and admin operations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sku_locks: KeyedLockCoordinator,
        observer: Optional[InventoryObserver] = None,
    ):
        self.session_factory = session_factory
        self.sku_locks = sku_locks
        self.observer = observer or InventoryObserver()

    # --- reads ---

    async def find_by_sku(self, sku: str) -> Optional[StockItem]:
        async with self.session_factory() as session:
            result = await session.execute(select(StockItem).where(StockItem.sku == sku))
            return result.scalar_one_or_none()

    async def get_by_sku(self, sku: str) -> StockItem:
        item = await self.find_by_sku(sku)
        if item is None:
            raise StockItemNotFoundError(sku)
        return item

    async def check_stock(self, skus: Sequence[str]) -> List[StockCheck]:
        """Availability per requested SKU, in request order. Unknown SKUs report 0."""
        logger.info("Checking stock", sku_count=len(skus))
        if not skus:
            return []
        async with self.session_factory() as session:
            result = await session.execute(select(StockItem).where(StockItem.sku.in_(set(skus))))
            by_sku = {item.sku: item for item in result.scalars().all()}

        checks = []
        for sku in skus:
            item = by_sku.get(sku)
            available = item.quantity_available if item else 0
            checks.append(StockCheck(sku=sku, available=available, in_stock=available > 0))
        return checks

    async def get_low_stock_items(self) -> List[StockItem]:
        """Items whose available quantity is at or below their reorder point."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(StockItem)
                .where(StockItem.quantity_available <= StockItem.reorder_point)
                .order_by(StockItem.quantity_available, StockItem.sku)
            )
            return list(result.scalars().all())

    async def count_by_status(self, status: StockStatus) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(StockItem.id)).where(StockItem.status == status.value)
            )
            return result.scalar_one()

    async def get_stats(self) -> InventoryStats:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(StockItem.status, func.count(StockItem.id)).group_by(StockItem.status)
            )
            by_status = {status: count for status, count in rows.all()}
            totals = await session.execute(
                select(
                    func.coalesce(func.sum(StockItem.quantity_on_hand), 0),
                    func.coalesce(func.sum(StockItem.quantity_reserved), 0),
                )
            )
            total_quantity, total_reserved = totals.one()
            active = await session.execute(
                select(func.count(StockReservation.id)).where(
                    StockReservation.status == ReservationStatus.ACTIVE.value
                )
            )
            active_reservations = active.scalar_one()

        return InventoryStats(
            in_stock=by_status.get(StockStatus.IN_STOCK.value, 0),
            low_stock=by_status.get(StockStatus.LOW_STOCK.value, 0),
            out_of_stock=by_status.get(StockStatus.OUT_OF_STOCK.value, 0),
            total_quantity=int(total_quantity),
            total_reserved=int(total_reserved),
            active_reservations=active_reservations,
        )

    async def refresh_low_stock_gauge(self) -> int:
        count = await self.count_by_status(StockStatus.LOW_STOCK)
        self.observer.low_stock_count(count)
        return count

    # --- writes ---

    async def add_inventory(
        self,
        sku: str,
        quantity_on_hand: int = 0,
        reorder_point: int = DEFAULT_REORDER_POINT,
        reorder_quantity: int = DEFAULT_REORDER_QUANTITY,
        product_id: Optional[int] = None,
        warehouse_id: Optional[str] = None,
        warehouse_location: Optional[str] = None,
    ) -> StockItem:
        """Onboard a new SKU with nothing reserved."""
        logger.info("Adding inventory", sku=sku, quantity_on_hand=quantity_on_hand)
        if quantity_on_hand < 0:
            raise LedgerInvariantError(f"On-hand quantity for {sku} cannot be negative")
        if reorder_point < 0:
            raise LedgerInvariantError(f"Reorder point for {sku} cannot be negative")

        async with self.sku_locks.acquire(sku):
            async with self.session_factory() as session:
                ledger = StockLedger(session, self.observer)
                if await ledger.find(sku) is not None:
                    raise StockItemExistsError(sku)
                item = StockItem(
                    sku=sku,
                    product_id=product_id,
                    quantity_on_hand=quantity_on_hand,
                    quantity_reserved=0,
                    reorder_point=reorder_point,
                    reorder_quantity=reorder_quantity,
                    warehouse_id=warehouse_id,
                    warehouse_location=warehouse_location,
                )
                item.recalculate()
                session.add(item)
                try:
                    await session.commit()
                except IntegrityError:
                    # another process onboarded the same SKU first
                    await session.rollback()
                    raise StockItemExistsError(sku)
        return item

    async def update_stock(self, sku: str, quantity: int) -> StockItem:
        """Set the on-hand count; refused when below the reserved quantity."""
        logger.info("Updating stock", sku=sku, quantity=quantity)
        async with self.sku_locks.acquire(sku):
            async with self.session_factory() as session:
                item = await StockLedger(session, self.observer).set_on_hand(sku, quantity)
                await session.commit()
        return item

    async def restock(self, sku: str, quantity: int) -> StockItem:
        logger.info("Restocking", sku=sku, quantity=quantity)
        async with self.sku_locks.acquire(sku):
            async with self.session_factory() as session:
                item = await StockLedger(session, self.observer).restock(sku, quantity)
                await session.commit()
        return item
