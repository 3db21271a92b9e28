from sqlalchemy import String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional, List

from inventory_backend.app.core.base import Base
from inventory_backend.app.core.clock import utcnow
from inventory_backend.app.core.constants import ReservationStatus, SKU_MAX_LENGTH


class StockReservation(Base):
    """
    Time-bounded hold on stock for one order.

    ACTIVE -> CONFIRMED | RELEASED | EXPIRED, and nothing after that.
    Line items are written once at creation.
    """

    __tablename__ = 'stock_reservations'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    reservation_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ReservationStatus.ACTIVE.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    items: Mapped[List["ReservationItem"]] = relationship(
        back_populates="reservation",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReservationItem.position",
    )

    __table_args__ = (
        Index('ix_stock_reservations_order_id', 'order_id'),
        Index('ix_stock_reservations_status', 'status'),
        # Expiry sweep: status = ACTIVE AND expires_at < now
        Index('ix_stock_reservations_status_expires', 'status', 'expires_at'),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE.value

    def is_expired(self, now: datetime) -> bool:
        return self.is_active and now > self.expires_at


class ReservationItem(Base):
    __tablename__ = 'reservation_items'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    reservation_pk: Mapped[int] = mapped_column(
        ForeignKey('stock_reservations.id', ondelete='CASCADE'), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sku: Mapped[str] = mapped_column(String(SKU_MAX_LENGTH), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    reservation: Mapped[StockReservation] = relationship(back_populates="items")

    __table_args__ = (
        Index('ix_reservation_items_reservation_pk', 'reservation_pk'),
    )
