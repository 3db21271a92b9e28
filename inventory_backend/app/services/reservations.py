# inventory_backend/app/services/reservations.py
"""
Stock reservation service - time-bounded holds on stock for orders.

Lock order everywhere: reservation id first, then SKUs in sorted order.
Each operation commits before its locks are released, so the next holder
always reads the committed row.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_backend.app.core.clock import utcnow
from inventory_backend.app.core.constants import ReservationStatus, DEFAULT_RESERVATION_TTL_MINUTES
from inventory_backend.app.core.exceptions import ServiceError
from inventory_backend.app.core.logging import get_logger
from inventory_backend.app.core.metrics import InventoryObserver
from inventory_backend.app.models.reservation import StockReservation, ReservationItem
from inventory_backend.app.services.ledger import StockLedger, LedgerInvariantError, InvalidQuantityError
from inventory_backend.app.services.locks import KeyedLockCoordinator

logger = get_logger(__name__)


class ReservationServiceError(ServiceError):
    """Base exception for reservation service errors."""


class ReservationNotFoundError(ReservationServiceError):
    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation not found: {reservation_id}", 404)


class InvalidReservationStateError(ReservationServiceError):
    def __init__(self, reservation_id: str, current_status: str, action: str):
        self.reservation_id = reservation_id
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} reservation {reservation_id}: status is {current_status}, expected ACTIVE",
            409,
        )


class ReservationNotExpiredError(ReservationServiceError):
    def __init__(self, reservation_id: str, expires_at: datetime):
        super().__init__(f"Reservation {reservation_id} does not expire until {expires_at.isoformat()}", 409)


class EmptyReservationError(ReservationServiceError):
    def __init__(self):
        super().__init__("Reservation must contain at least one item", 400)


@dataclass(frozen=True)
class ReservationLine:
    sku: str
    quantity: int


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of a reservation request. Insufficient stock is a result, not an exception."""

    reservation_id: Optional[str]
    success: bool
    message: str
    sku: Optional[str] = None
    available: Optional[int] = None
    requested: Optional[int] = None

    @classmethod
    def insufficient(cls, sku: str, available: int, requested: int) -> "ReservationResult":
        return cls(
            reservation_id=None,
            success=False,
            message=f"Insufficient stock for SKU: {sku} (available: {available}, requested: {requested})",
            sku=sku,
            available=available,
            requested=requested,
        )


def merge_lines(items: Iterable[Tuple[str, int]]) -> Dict[str, int]:
    """Sum quantities per SKU, keeping first-seen order. Quantities must be positive."""
    demand: Dict[str, int] = {}
    for sku, quantity in items:
        if quantity <= 0:
            raise InvalidQuantityError(quantity)
        demand[sku] = demand.get(sku, 0) + quantity
    if not demand:
        raise EmptyReservationError()
    return demand


class ReservationService:
    """Creates reservations and drives them out of ACTIVE."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sku_locks: KeyedLockCoordinator,
        reservation_locks: KeyedLockCoordinator,
        observer: Optional[InventoryObserver] = None,
        ttl: timedelta = timedelta(minutes=DEFAULT_RESERVATION_TTL_MINUTES),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.sku_locks = sku_locks
        self.reservation_locks = reservation_locks
        self.observer = observer or InventoryObserver()
        self.ttl = ttl
        self.clock = clock

    # -------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------
    async def create(self, order_id: str, items: Iterable[Tuple[str, int]]) -> ReservationResult:
        """
        Reserve every item for `order_id`, or nothing at all.

        All SKU locks are held from the availability check through the
        commit of the new reservation.

        Raises:
            StockItemNotFoundError: an item's SKU is unknown
            InvalidQuantityError / EmptyReservationError: malformed request
            LockBusyError: a SKU lock was not acquired in time
        """
        demand = merge_lines(items)
        logger.info("Creating reservation", order_id=order_id, skus=list(demand))

        async with self.sku_locks.acquire_many(demand):
            async with self.session_factory() as session:
                ledger = StockLedger(session, self.observer)
                rows = await ledger.get_many(demand)

                for sku, quantity in demand.items():
                    available = rows[sku].quantity_available
                    if available < quantity:
                        logger.info(
                            "Reservation rejected, insufficient stock",
                            order_id=order_id,
                            sku=sku,
                            available=available,
                            requested=quantity,
                        )
                        return ReservationResult.insufficient(sku, available, quantity)

                for sku, quantity in demand.items():
                    if not await ledger.reserve(sku, quantity):
                        raise LedgerInvariantError(f"Availability of {sku} changed while locked")

                now = self.clock()
                reservation = StockReservation(
                    reservation_id=str(uuid.uuid4()),
                    order_id=order_id,
                    status=ReservationStatus.ACTIVE.value,
                    created_at=now,
                    expires_at=now + self.ttl,
                    items=[
                        ReservationItem(position=position, sku=sku, quantity=quantity)
                        for position, (sku, quantity) in enumerate(demand.items())
                    ],
                )
                session.add(reservation)
                await session.commit()

        self.observer.reservation_created(len(demand))
        logger.info(
            "Reservation created",
            reservation_id=reservation.reservation_id,
            order_id=order_id,
            expires_at=reservation.expires_at.isoformat(),
        )
        return ReservationResult(
            reservation_id=reservation.reservation_id,
            success=True,
            message="Stock reserved successfully",
        )

    # -------------------------------------------------------------------
    # Transitions out of ACTIVE
    # -------------------------------------------------------------------
    async def confirm(self, reservation_id: str) -> StockReservation:
        """Deduct the reserved stock for good. Only ACTIVE reservations can be confirmed."""
        reservation = await self._finish(reservation_id, ReservationStatus.CONFIRMED)
        self.observer.reservation_confirmed()
        return reservation

    async def release(self, reservation_id: str) -> StockReservation:
        """Return the held stock. Only ACTIVE reservations can be released."""
        reservation = await self._finish(reservation_id, ReservationStatus.RELEASED)
        self.observer.reservation_released()
        return reservation

    async def expire(self, reservation_id: str, now: Optional[datetime] = None) -> StockReservation:
        """
        Release path used by the expiry sweeper. The reservation ends as
        EXPIRED rather than RELEASED, within the same critical section.
        """
        reservation = await self._finish(reservation_id, ReservationStatus.EXPIRED, now=now)
        self.observer.reservation_expired()
        return reservation

    async def _finish(
        self,
        reservation_id: str,
        target: ReservationStatus,
        now: Optional[datetime] = None,
    ) -> StockReservation:
        action = {
            ReservationStatus.CONFIRMED: "confirm",
            ReservationStatus.RELEASED: "release",
            ReservationStatus.EXPIRED: "expire",
        }[target]
        logger.info("Finishing reservation", reservation_id=reservation_id, action=action)

        async with self.reservation_locks.acquire(reservation_id):
            async with self.session_factory() as session:
                reservation = await self._find(session, reservation_id, for_update=True)
                if reservation is None:
                    raise ReservationNotFoundError(reservation_id)
                if not reservation.is_active:
                    logger.warning(
                        "Reservation is not active",
                        reservation_id=reservation_id,
                        status=reservation.status,
                        action=action,
                    )
                    raise InvalidReservationStateError(reservation_id, reservation.status, action)

                now = now or self.clock()
                if target is ReservationStatus.EXPIRED and not reservation.is_expired(now):
                    raise ReservationNotExpiredError(reservation_id, reservation.expires_at)

                async with self.sku_locks.acquire_many(item.sku for item in reservation.items):
                    ledger = StockLedger(session, self.observer)
                    for item in reservation.items:
                        if target is ReservationStatus.CONFIRMED:
                            await ledger.confirm(item.sku, item.quantity)
                        else:
                            await ledger.release(item.sku, item.quantity)

                    reservation.status = target.value
                    if target is ReservationStatus.CONFIRMED:
                        reservation.confirmed_at = now
                    else:
                        reservation.released_at = now
                    await session.commit()

        logger.info(
            "Reservation finished",
            reservation_id=reservation_id,
            order_id=reservation.order_id,
            status=reservation.status,
        )
        return reservation

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @staticmethod
    async def _find(session: AsyncSession, reservation_id: str, for_update: bool = False) -> Optional[StockReservation]:
        stmt = select(StockReservation).where(StockReservation.reservation_id == reservation_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, reservation_id: str) -> StockReservation:
        async with self.session_factory() as session:
            reservation = await self._find(session, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    async def find_by_order(self, order_id: str) -> List[StockReservation]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StockReservation)
                .where(StockReservation.order_id == order_id)
                .order_by(StockReservation.created_at)
            )
            return list(result.scalars().all())

    async def find_expired(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[StockReservation]:
        """ACTIVE reservations whose expires_at is before `now`, oldest first."""
        now = now or self.clock()
        stmt = (
            select(StockReservation)
            .where(
                StockReservation.status == ReservationStatus.ACTIVE.value,
                StockReservation.expires_at < now,
            )
            .order_by(StockReservation.expires_at)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_by_status(self, status: ReservationStatus) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(StockReservation.id)).where(StockReservation.status == status.value)
            )
            return result.scalar_one()
