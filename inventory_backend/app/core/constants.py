"""
Shared constants for the inventory backend.
"""
import enum


# ---------------------------------------------------------------------------
# Stock item statuses (derived from available quantity and reorder point)
# ---------------------------------------------------------------------------
class StockStatus(str, enum.Enum):
    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


# ---------------------------------------------------------------------------
# Reservation statuses
# ---------------------------------------------------------------------------
class ReservationStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CONFIRMED = "CONFIRMED"
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"


TERMINAL_RESERVATION_STATUSES = (
    ReservationStatus.CONFIRMED,
    ReservationStatus.RELEASED,
    ReservationStatus.EXPIRED,
)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_RESERVATION_TTL_MINUTES = 30
DEFAULT_REORDER_POINT = 10
DEFAULT_REORDER_QUANTITY = 50
SKU_MAX_LENGTH = 50
