# inventory_backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and the ledger/reservation logic testable without HTTP.
"""

from inventory_backend.app.services.locks import (
    KeyedLockCoordinator,
    LockBusyError,
)
from inventory_backend.app.services.ledger import (
    StockLedger,
    LedgerError,
    StockItemNotFoundError,
    InvalidQuantityError,
    LedgerInvariantError,
)
from inventory_backend.app.services.inventory import (
    InventoryService,
    InventoryStats,
    StockCheck,
    StockItemExistsError,
)
from inventory_backend.app.services.reservations import (
    ReservationService,
    ReservationServiceError,
    ReservationNotFoundError,
    InvalidReservationStateError,
    ReservationNotExpiredError,
    EmptyReservationError,
    ReservationResult,
)
from inventory_backend.app.services.sweeper import ExpirySweeper, SweepReport

__all__ = [
    # Locks
    "KeyedLockCoordinator",
    "LockBusyError",
    # Ledger
    "StockLedger",
    "LedgerError",
    "StockItemNotFoundError",
    "InvalidQuantityError",
    "LedgerInvariantError",
    # Inventory service
    "InventoryService",
    "InventoryStats",
    "StockCheck",
    "StockItemExistsError",
    # Reservation service
    "ReservationService",
    "ReservationServiceError",
    "ReservationNotFoundError",
    "InvalidReservationStateError",
    "ReservationNotExpiredError",
    "EmptyReservationError",
    "ReservationResult",
    # Sweeper
    "ExpirySweeper",
    "SweepReport",
]
