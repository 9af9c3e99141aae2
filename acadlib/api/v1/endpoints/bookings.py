# acadlib/api/v1/endpoints/bookings.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status
from loguru import logger

from acadlib.api.deps import get_inventory_engine, get_ledger
from acadlib.core.inventory import InventoryEngine
from acadlib.core.ledger import BookingLedger
from acadlib.core.rate_limiter import limiter
from acadlib.core.security import get_current_user, require_elevated
from acadlib.core.utils import to_object_id
from acadlib.models.booking import Booking, BookingList
from acadlib.models.enum import BookingStatus
from acadlib.models.user import CurrentUser

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=Booking.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_booking(
    request: Request,
    booking_in: Booking.Create = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    engine: InventoryEngine = Depends(get_inventory_engine),
):
    """Borrows one copy of a physical material for the caller."""
    material_id = str(to_object_id(booking_in.material_id, "material ID"))
    logger.info(f"User '{current_user.email}' borrowing material {material_id}.")
    booking = await engine.borrow(material_id, current_user.id)
    populated = await engine.ledger.populate([booking], with_users=False)
    return populated[0]


@router.get("/my", response_model=BookingList)
async def get_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: CurrentUser = Depends(get_current_user),
    ledger: BookingLedger = Depends(get_ledger),
):
    bookings = await ledger.list_by_borrower(current_user.id, status=status_filter)
    bookings = await ledger.populate(bookings, with_users=False)
    return BookingList(count=len(bookings), data=bookings)


@router.get("", response_model=BookingList, dependencies=[Depends(require_elevated)])
async def get_all_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None, alias="userId"),
    material_id: Optional[str] = Query(None, alias="materialId"),
    ledger: BookingLedger = Depends(get_ledger),
):
    if user_id:
        to_object_id(user_id, "user ID")
    if material_id:
        to_object_id(material_id, "material ID")
    bookings = await ledger.list_all(status=status_filter, borrower_id=user_id, material_id=material_id)
    bookings = await ledger.populate(bookings)
    return BookingList(count=len(bookings), data=bookings)


@router.patch("/{booking_id}/return", response_model=Booking.Response)
@limiter.limit("60/minute")
async def return_booking(
    request: Request,
    booking_id: str = Path(..., description="ID of the booking to mark as returned"),
    current_user: CurrentUser = Depends(require_elevated),
    engine: InventoryEngine = Depends(get_inventory_engine),
):
    loan_id = str(to_object_id(booking_id, "booking ID"))
    logger.info(f"User '{current_user.email}' processing return of booking {loan_id}.")
    booking = await engine.return_loan(loan_id)
    populated = await engine.ledger.populate([booking])
    return populated[0]
