from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from typing import List

from inventory_backend.app.api.deps import get_inventory_service, get_reservation_service, get_sweeper
from inventory_backend.app.core.exceptions import ServiceError
from inventory_backend.app.core.logging import get_logger
from inventory_backend.app.schemas import (
    InventoryCreate,
    InventoryResponse,
    InventoryStatsResponse,
    ReservationDetailResponse,
    ReservationIdRequest,
    ReservationResponse,
    ReserveRequest,
    RestockRequest,
    StockCheckResponse,
    StockUpdateRequest,
    SweepReportResponse,
)
from inventory_backend.app.services.inventory import InventoryService
from inventory_backend.app.services.reservations import ReservationService
from inventory_backend.app.services.sweeper import ExpirySweeper

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Queries (fixed paths before /{sku}) ---
@router.get("/check", response_model=List[StockCheckResponse])
async def check_stock(
    skus: List[str] = Query(..., min_length=1),
    service: InventoryService = Depends(get_inventory_service),
):
    return await service.check_stock(skus)


@router.get("/low-stock", response_model=List[InventoryResponse])
async def get_low_stock_items(service: InventoryService = Depends(get_inventory_service)):
    return await service.get_low_stock_items()


@router.get("/stats", response_model=InventoryStatsResponse)
async def get_stats(service: InventoryService = Depends(get_inventory_service)):
    return await service.get_stats()


# --- Reservations ---
@router.post("/reserve", response_model=ReservationResponse)
async def reserve_stock(
    data: ReserveRequest,
    service: ReservationService = Depends(get_reservation_service),
):
    """Hold stock for every item of an order, or for none of them."""
    logger.info("Reserve request", order_id=data.order_id, item_count=len(data.items))
    try:
        result = await service.create(data.order_id, [(i.sku, i.quantity) for i in data.items])
    except ServiceError as e:
        logger.warning("Reservation failed", order_id=data.order_id, error=e.message, error_code=e.status_code)
        _handle_service_error(e)
    if not result.success:
        return JSONResponse(
            status_code=400,
            content=ReservationResponse.model_validate(result).model_dump(),
        )
    return result


@router.post("/release")
async def release_stock(
    data: ReservationIdRequest,
    service: ReservationService = Depends(get_reservation_service),
):
    try:
        await service.release(data.reservation_id)
    except ServiceError as e:
        _handle_service_error(e)
    return {"status": "ok"}


@router.post("/confirm")
async def confirm_reservation(
    data: ReservationIdRequest,
    service: ReservationService = Depends(get_reservation_service),
):
    try:
        await service.confirm(data.reservation_id)
    except ServiceError as e:
        _handle_service_error(e)
    return {"status": "ok"}


@router.get("/reservations/{reservation_id}", response_model=ReservationDetailResponse)
async def get_reservation(
    reservation_id: str,
    service: ReservationService = Depends(get_reservation_service),
):
    try:
        return await service.get(reservation_id)
    except ServiceError as e:
        _handle_service_error(e)


@router.get("/orders/{order_id}/reservations", response_model=List[ReservationDetailResponse])
async def get_order_reservations(
    order_id: str,
    service: ReservationService = Depends(get_reservation_service),
):
    return await service.find_by_order(order_id)


@router.post("/maintenance/expire-reservations", response_model=SweepReportResponse)
async def expire_reservations(sweeper: ExpirySweeper = Depends(get_sweeper)):
    """Run one expiry sweep now, e.g. from a cron job when the in-process sweeper is disabled."""
    return await sweeper.sweep_once()


# --- Stock items ---
@router.post("", response_model=InventoryResponse, status_code=201)
async def add_inventory(
    data: InventoryCreate,
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        return await service.add_inventory(**data.model_dump())
    except ServiceError as e:
        _handle_service_error(e)


@router.get("/{sku}", response_model=InventoryResponse)
async def get_inventory_by_sku(
    sku: str,
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        return await service.get_by_sku(sku)
    except ServiceError as e:
        _handle_service_error(e)


@router.put("/{sku}/stock", response_model=InventoryResponse)
async def update_stock(
    sku: str,
    data: StockUpdateRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        return await service.update_stock(sku, data.quantity)
    except ServiceError as e:
        _handle_service_error(e)


@router.post("/{sku}/restock", response_model=InventoryResponse)
async def restock(
    sku: str,
    data: RestockRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        return await service.restock(sku, data.quantity)
    except ServiceError as e:
        _handle_service_error(e)
