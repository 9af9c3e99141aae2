# acadlib/core/ledger.py
from datetime import datetime
from typing import List, Optional, Sequence

from loguru import logger

from acadlib.db.repositories import BookingRepository, MaterialRepository, UserRepository
from acadlib.models.booking import Booking
from acadlib.models.enum import BookingStatus
from acadlib.models.material import MaterialSummary
from acadlib.models.user import UserSummary


class BookingLedger:
    """Source of truth for open and historical loans.

    The one-open-loan-per-(borrower, material) rule is enforced by the
    storage index; ``find_active_loan`` is only the early, friendly check.
    """

    def __init__(
        self,
        bookings: BookingRepository,
        materials: Optional[MaterialRepository] = None,
        users: Optional[UserRepository] = None,
    ):
        self.bookings = bookings
        self.materials = materials
        self.users = users

    async def get(self, loan_id: str, session=None) -> Optional[Booking.Response]:
        return await self.bookings.get(loan_id, session=session)

    async def find_active_loan(self, borrower_id: str, material_id: str, session=None) -> Optional[Booking.Response]:
        return await self.bookings.find_active(borrower_id, material_id, session=session)

    async def open_loan(
        self, borrower_id: str, material_id: str, borrowed_at: datetime, due_date: datetime, session=None
    ) -> Booking.Response:
        booking = await self.bookings.create(borrower_id, material_id, borrowed_at, due_date, session=session)
        logger.debug(f"Created booking record {booking.id} for borrower {borrower_id}.")
        return booking

    async def close_loan(self, loan_id: str, returned_at: datetime, session=None) -> Optional[Booking.Response]:
        return await self.bookings.mark_returned(loan_id, returned_at, session=session)

    async def reopen_loan(self, loan_id: str, status: str, session=None) -> Optional[Booking.Response]:
        return await self.bookings.restore_status(loan_id, status, session=session)

    async def list_by_borrower(self, borrower_id: str, status: Optional[BookingStatus] = None) -> List[Booking.Response]:
        return await self.bookings.list(status=_status_value(status), user_id=borrower_id)

    async def list_all(
        self,
        status: Optional[BookingStatus] = None,
        borrower_id: Optional[str] = None,
        material_id: Optional[str] = None,
    ) -> List[Booking.Response]:
        return await self.bookings.list(status=_status_value(status), user_id=borrower_id, material_id=material_id)

    async def populate(
        self, bookings: Sequence[Booking.Response], with_users: bool = True, with_materials: bool = True
    ) -> List[Booking.Response]:
        """Attaches user and material summaries with one lookup per collection."""
        bookings = list(bookings)
        if not bookings:
            return bookings

        materials = {}
        if with_materials and self.materials is not None:
            found = await self.materials.get_many([b.material_id for b in bookings])
            materials = {
                m.id: MaterialSummary(id=m.id, title=m.title, material_type=m.material_type) for m in found
            }
        users = {}
        if with_users and self.users is not None:
            found = await self.users.get_many([b.user_id for b in bookings])
            users = {u.id: UserSummary(id=u.id, name=u.name, email=u.email) for u in found}

        return [
            b.model_copy(update={"material": materials.get(b.material_id), "user": users.get(b.user_id)})
            for b in bookings
        ]


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, BookingStatus) else str(status)
