from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime

from inventory_backend.app.core.constants import SKU_MAX_LENGTH


def _clean_sku(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("SKU must not be blank")
    return v


# --- Stock items ---
class InventoryCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=SKU_MAX_LENGTH)
    product_id: Optional[int] = None
    quantity_on_hand: int = Field(default=0, ge=0)
    reorder_point: int = Field(default=10, ge=0)
    reorder_quantity: int = Field(default=50, ge=0)
    warehouse_id: Optional[str] = Field(default=None, max_length=50)
    warehouse_location: Optional[str] = Field(default=None, max_length=100)

    @field_validator("sku")
    @classmethod
    def strip_sku(cls, v: str) -> str:
        return _clean_sku(v)


class InventoryResponse(BaseModel):
    model_config = {"from_attributes": True}

    sku: str
    product_id: Optional[int] = None
    quantity_on_hand: int
    quantity_reserved: int
    quantity_available: int
    reorder_point: int
    reorder_quantity: int
    warehouse_id: Optional[str] = None
    warehouse_location: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_restocked_at: Optional[datetime] = None


class StockUpdateRequest(BaseModel):
    quantity: int = Field(ge=0)


class RestockRequest(BaseModel):
    quantity: int = Field(gt=0)


class StockCheckResponse(BaseModel):
    model_config = {"from_attributes": True}

    sku: str
    available: int
    in_stock: bool


class InventoryStatsResponse(BaseModel):
    model_config = {"from_attributes": True}

    in_stock: int
    low_stock: int
    out_of_stock: int
    total_quantity: int
    total_reserved: int
    active_reservations: int


# --- Reservations ---
class ReserveItem(BaseModel):
    sku: str = Field(min_length=1, max_length=SKU_MAX_LENGTH)
    quantity: int = Field(gt=0)

    @field_validator("sku")
    @classmethod
    def strip_sku(cls, v: str) -> str:
        return _clean_sku(v)


class ReserveRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=100)
    items: List[ReserveItem] = Field(min_length=1)


class ReservationIdRequest(BaseModel):
    reservation_id: str = Field(min_length=1)


class ReservationResponse(BaseModel):
    model_config = {"from_attributes": True}

    reservation_id: Optional[str] = None
    success: bool
    message: str
    sku: Optional[str] = None
    available: Optional[int] = None
    requested: Optional[int] = None


class ReservationItemResponse(BaseModel):
    model_config = {"from_attributes": True}

    sku: str
    quantity: int


class ReservationDetailResponse(BaseModel):
    model_config = {"from_attributes": True}

    reservation_id: str
    order_id: str
    status: str
    items: List[ReservationItemResponse]
    created_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime] = None
    released_at: Optional[datetime] = None


class SweepReportResponse(BaseModel):
    model_config = {"from_attributes": True}

    candidates: int
    expired: List[str]
    failed: List[str]
    low_stock: Optional[int] = None
