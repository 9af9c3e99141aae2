# acadlib/models/booking.py
from typing import Optional, List
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import IndexModel, ASCENDING, DESCENDING

from .enum import BookingStatus, NON_TERMINAL_BOOKING_STATUSES
from .material import MaterialSummary
from .schema import CamelModel, utcnow
from .user import UserSummary


# Name of the index that enforces one open loan per (user, material).
ACTIVE_LOAN_INDEX = "booking_user_material_active_unique_index"


class Booking(Document):
    """One borrower holding one copy of a material."""
    user_id: PydanticObjectId
    material_id: PydanticObjectId
    status: BookingStatus = Field(default=BookingStatus.ACTIVE)
    borrowed_at: datetime = Field(default_factory=utcnow)
    due_date: datetime
    returned_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "bookings"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("material_id", ASCENDING)],
                name=ACTIVE_LOAN_INDEX,
                unique=True,
                partialFilterExpression={
                    "status": {"$in": [s.value for s in NON_TERMINAL_BOOKING_STATUSES]}
                },
            ),
            IndexModel([("user_id", ASCENDING)], name="booking_user_index"),
            IndexModel([("material_id", ASCENDING)], name="booking_material_index"),
            IndexModel([("status", ASCENDING)], name="booking_status_index"),
            IndexModel([("created_at", DESCENDING)], name="booking_created_at_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(CamelModel):
        material_id: str = Field(..., description="ObjectId of the physical material to borrow")

    class Response(CamelModel):
        id: str = Field(..., alias="_id")
        user_id: str
        material_id: str
        status: BookingStatus
        borrowed_at: datetime
        due_date: datetime
        returned_at: Optional[datetime] = None
        created_at: Optional[datetime] = None
        updated_at: Optional[datetime] = None
        # Filled by BookingLedger.populate
        user: Optional[UserSummary] = None
        material: Optional[MaterialSummary] = None


class BookingList(CamelModel):
    success: bool = True
    count: int
    data: List[Booking.Response]
