from sqlalchemy import String, Integer, BigInteger, DateTime, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional

from inventory_backend.app.core.base import Base
from inventory_backend.app.core.clock import utcnow
from inventory_backend.app.core.constants import (
    StockStatus,
    DEFAULT_REORDER_POINT,
    DEFAULT_REORDER_QUANTITY,
    SKU_MAX_LENGTH,
)


def derive_status(available: int, reorder_point: int) -> StockStatus:
    """Threshold function: OUT_OF_STOCK at or below zero, LOW_STOCK up to the reorder point."""
    if available <= 0:
        return StockStatus.OUT_OF_STOCK
    if available <= reorder_point:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


class StockItem(Base):
    """Ledger row for one SKU. Never deleted; depletion shows up in `status`."""

    __tablename__ = 'inventory'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(SKU_MAX_LENGTH), unique=True, nullable=False)
    product_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    quantity_on_hand: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_reserved: Mapped[int] = mapped_column(Integer, default=0, server_default='0', nullable=False)
    # Denormalized for queries; always on_hand - reserved (see recalculate)
    quantity_available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_point: Mapped[int] = mapped_column(Integer, default=DEFAULT_REORDER_POINT, nullable=False)
    reorder_quantity: Mapped[int] = mapped_column(Integer, default=DEFAULT_REORDER_QUANTITY, nullable=False)
    warehouse_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    warehouse_location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=StockStatus.OUT_OF_STOCK.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_restocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint('quantity_on_hand >= 0', name='ck_inventory_on_hand_non_negative'),
        CheckConstraint('quantity_reserved >= 0', name='ck_inventory_reserved_non_negative'),
        CheckConstraint('quantity_reserved <= quantity_on_hand', name='ck_inventory_reserved_le_on_hand'),
        CheckConstraint('reorder_point >= 0', name='ck_inventory_reorder_point_non_negative'),
        Index('ix_inventory_status', 'status'),
        Index('ix_inventory_warehouse_id', 'warehouse_id'),
    )

    def recalculate(self) -> Optional[str]:
        """
        Recompute available quantity and status from on-hand and reserved.
        Returns the previous status if it changed, otherwise None.
        """
        previous = self.status
        self.quantity_available = self.quantity_on_hand - self.quantity_reserved
        self.status = derive_status(self.quantity_available, self.reorder_point).value
        return previous if previous != self.status else None

    @property
    def needs_reorder(self) -> bool:
        return self.quantity_available <= self.reorder_point
