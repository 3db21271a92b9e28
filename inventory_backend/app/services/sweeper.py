# inventory_backend/app/services/sweeper.py
"""
Expiry sweeper - background loop that releases stale ACTIVE reservations.

Owned by the application lifespan: start() on startup, stop() on shutdown.
Each tick asks the reservation service for ACTIVE reservations past their
expiry and sends every one through ReservationService.expire(), the same
locked release path callers use. A failure on one reservation is logged and
the sweep moves on.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from inventory_backend.app.core.exceptions import ServiceError
from inventory_backend.app.core.logging import get_logger
from inventory_backend.app.services.inventory import InventoryService
from inventory_backend.app.services.reservations import ReservationService

logger = get_logger(__name__)


@dataclass
class SweepReport:
    candidates: int = 0
    expired: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    low_stock: Optional[int] = None


class ExpirySweeper:
    def __init__(
        self,
        reservations: ReservationService,
        inventory: Optional[InventoryService] = None,
        interval: float = 60.0,
        batch_size: Optional[int] = None,
    ):
        self.reservations = reservations
        self.inventory = inventory
        self.interval = interval
        self.batch_size = batch_size
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info("Expiry sweeper starting", interval_seconds=self.interval)
        self._task = asyncio.create_task(self._run(), name="reservation-expiry-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                # keep ticking; next run retries whatever is still ACTIVE
                logger.error("Expiry sweep failed", error=str(e), exc_info=True)

    async def sweep_once(self, now: Optional[datetime] = None) -> SweepReport:
        """Expire every ACTIVE reservation whose expires_at is before `now`."""
        now = now or self.reservations.clock()
        candidates = await self.reservations.find_expired(now, limit=self.batch_size)
        report = SweepReport(candidates=len(candidates))

        for reservation in candidates:
            reservation_id = reservation.reservation_id
            try:
                await self.reservations.expire(reservation_id, now=now)
            except ServiceError as e:
                report.failed.append(reservation_id)
                logger.warning(
                    "Failed to expire reservation",
                    reservation_id=reservation_id,
                    error=e.message,
                )
            except Exception as e:
                report.failed.append(reservation_id)
                logger.error(
                    "Unexpected error expiring reservation",
                    reservation_id=reservation_id,
                    error=str(e),
                    exc_info=True,
                )
            else:
                report.expired.append(reservation_id)
                logger.info(
                    "Released expired reservation",
                    reservation_id=reservation_id,
                    order_id=reservation.order_id,
                    expired_at=reservation.expires_at.isoformat(),
                )

        if self.inventory is not None:
            report.low_stock = await self.inventory.refresh_low_stock_gauge()

        if report.candidates:
            logger.info(
                "Expiry sweep complete",
                candidates=report.candidates,
                expired=len(report.expired),
                failed=len(report.failed),
            )
        return report
