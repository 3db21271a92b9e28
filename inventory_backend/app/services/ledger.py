# inventory_backend/app/services/ledger.py
"""
Stock ledger - per-SKU on-hand/reserved bookkeeping.

Every mutating method expects the caller to hold the SKU's lock from
KeyedLockCoordinator and to commit the session before releasing it.
Rows are read with SELECT ... FOR UPDATE as well, so the database row lock
backs up the in-process lock where the backend supports it.
"""
from typing import Optional, Dict, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_backend.app.core.clock import utcnow
from inventory_backend.app.core.exceptions import ServiceError
from inventory_backend.app.core.logging import get_logger
from inventory_backend.app.core.metrics import InventoryObserver
from inventory_backend.app.models.inventory import StockItem

logger = get_logger(__name__)


class LedgerError(ServiceError):
    """Base exception for ledger errors."""


class StockItemNotFoundError(LedgerError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"SKU not found: {sku}", 404)


class InvalidQuantityError(LedgerError):
    def __init__(self, quantity: int):
        super().__init__(f"Quantity must be positive, got {quantity}", 400)


class LedgerInvariantError(LedgerError):
    """A mutation would break on_hand >= reserved >= 0."""

    def __init__(self, message: str):
        super().__init__(message, 422)


def _require_positive(quantity: int) -> None:
    if quantity <= 0:
        raise InvalidQuantityError(quantity)


class StockLedger:
    """Quantity arithmetic for stock rows loaded in one session."""

    def __init__(self, session: AsyncSession, observer: Optional[InventoryObserver] = None):
        self.session = session
        self.observer = observer or InventoryObserver()

    async def find(self, sku: str) -> Optional[StockItem]:
        result = await self.session.execute(
            select(StockItem)
            .where(StockItem.sku == sku)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, sku: str) -> StockItem:
        item = await self.find(sku)
        if item is None:
            raise StockItemNotFoundError(sku)
        return item

    async def get_many(self, skus: Iterable[str]) -> Dict[str, StockItem]:
        """Load rows for all SKUs (sorted, matching lock order). Unknown SKU raises."""
        return {sku: await self.get(sku) for sku in sorted(set(skus))}

    def _touch(self, item: StockItem) -> None:
        previous = item.recalculate()
        item.updated_at = utcnow()
        if previous is not None:
            logger.info("Stock status changed", sku=item.sku, old_status=previous, new_status=item.status)
            self.observer.stock_status_changed(item.sku, previous, item.status)

    async def reserve(self, sku: str, quantity: int) -> bool:
        """
        Hold `quantity` units. Returns False, leaving the row untouched,
        when fewer than `quantity` units are available.
        """
        _require_positive(quantity)
        item = await self.get(sku)
        if quantity > item.quantity_available:
            return False
        item.quantity_reserved += quantity
        self._touch(item)
        return True

    async def release(self, sku: str, quantity: int) -> int:
        """
        Give back up to `quantity` reserved units; reserved never drops below zero.
        Returns the number of units actually released.
        """
        _require_positive(quantity)
        item = await self.get(sku)
        released = min(item.quantity_reserved, quantity)
        if released < quantity:
            logger.warning(
                "Release exceeds reserved quantity, clamping",
                sku=sku,
                requested=quantity,
                reserved=item.quantity_reserved,
            )
        item.quantity_reserved -= released
        self._touch(item)
        return released

    async def confirm(self, sku: str, quantity: int) -> None:
        """Turn a hold into a sale: on-hand and reserved both drop by `quantity`."""
        _require_positive(quantity)
        item = await self.get(sku)
        if quantity > item.quantity_reserved or quantity > item.quantity_on_hand:
            raise LedgerInvariantError(
                f"Cannot confirm {quantity} of {sku}: "
                f"reserved {item.quantity_reserved}, on hand {item.quantity_on_hand}"
            )
        item.quantity_on_hand -= quantity
        item.quantity_reserved -= quantity
        self._touch(item)

    async def restock(self, sku: str, quantity: int) -> StockItem:
        _require_positive(quantity)
        item = await self.get(sku)
        item.quantity_on_hand += quantity
        item.last_restocked_at = utcnow()
        self._touch(item)
        return item

    async def set_on_hand(self, sku: str, quantity: int) -> StockItem:
        """
        Administrative absolute set of the on-hand count.
        Rejected when it would fall below what is already reserved.
        """
        item = await self.get(sku)
        if quantity < 0:
            raise LedgerInvariantError(f"On-hand quantity for {sku} cannot be negative")
        if quantity < item.quantity_reserved:
            raise LedgerInvariantError(
                f"Cannot set on-hand for {sku} to {quantity}: {item.quantity_reserved} units are reserved"
            )
        item.quantity_on_hand = quantity
        self._touch(item)
        return item
