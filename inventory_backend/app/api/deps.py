from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_backend.app.core.database import async_session
from inventory_backend.app.services.inventory import InventoryService
from inventory_backend.app.services.reservations import ReservationService
from inventory_backend.app.services.sweeper import ExpirySweeper


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


# Services are built once in main.py and shared by every request,
# so that all handlers contend on the same lock coordinators.
def get_inventory_service(request: Request) -> InventoryService:
    return request.app.state.inventory_service


def get_reservation_service(request: Request) -> ReservationService:
    return request.app.state.reservation_service


def get_sweeper(request: Request) -> ExpirySweeper:
    return request.app.state.sweeper
