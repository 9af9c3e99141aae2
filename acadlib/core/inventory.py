# acadlib/core/inventory.py
"""Moves one unit of availability between "on the shelf" and "checked out".

Both operations check everything they can before touching the store, then
commit their writes either inside one MongoDB transaction or, when the
deployment has no transaction support, as a guarded sequence that undoes the
first write if the second one fails. A failed undo is the only state in which
``available_copies`` and the ledger disagree; it is logged at CRITICAL with
the identifiers needed to repair it and surfaced as IntegrityViolationError.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from acadlib.core.errors import (
    AlreadyReturnedError,
    BorrowFailedError,
    DuplicateActiveLoanError,
    IntegrityViolationError,
    InvalidRequestError,
    LibraryError,
    NoCopiesAvailableError,
    NotBorrowableError,
    NotFoundError,
    ReturnFailedError,
)
from acadlib.core.ledger import BookingLedger
from acadlib.db.repositories import MaterialRepository, TransactionManager
from acadlib.models.booking import Booking
from acadlib.models.enum import BookingStatus, NON_TERMINAL_BOOKING_STATUSES
from acadlib.models.material import Material
from acadlib.models.schema import utcnow

TRANSACTION_ATTEMPTS = 3
OPEN_STATUSES = {s.value for s in NON_TERMINAL_BOOKING_STATUSES}


def _is_transient(error: Exception) -> bool:
    has_label = getattr(error, "has_error_label", None)
    return bool(has_label and has_label("TransientTransactionError"))


class InventoryEngine:
    def __init__(
        self,
        materials: MaterialRepository,
        ledger: BookingLedger,
        transactions: Optional[TransactionManager] = None,
        loan_period: timedelta = timedelta(days=14),
        clock=utcnow,
    ):
        self.materials = materials
        self.ledger = ledger
        self.transactions = transactions
        self.loan_period = loan_period
        self.clock = clock

    @property
    def transactional(self) -> bool:
        return bool(self.transactions and self.transactions.supports_transactions)

    def due_date_for(self, borrowed_at: datetime) -> datetime:
        return borrowed_at + self.loan_period

    # --- borrow ---

    async def borrow(self, material_id: str, borrower_id: str) -> Booking.Response:
        material = await self.materials.get(material_id)
        if material is None:
            raise NotFoundError("Material not found.", {"material_id": material_id})
        if not material.is_physical:
            raise NotBorrowableError(
                "This material is not a physical item and cannot be booked.", {"material_id": material_id}
            )
        if material.available_copies <= 0:
            raise NoCopiesAvailableError(
                "No copies currently available for borrowing.", {"material_id": material_id}
            )
        if await self.ledger.find_active_loan(borrower_id, material_id):
            raise DuplicateActiveLoanError(
                "You already have an active loan or booking for this material.",
                {"material_id": material_id, "borrower_id": borrower_id},
            )

        commit = self._borrow_in_transaction if self.transactional else self._borrow_with_compensation
        # Once the decrement is persisted the operation must finish or compensate,
        # even if the request that started it goes away.
        booking = await asyncio.shield(commit(material_id, borrower_id))
        logger.info(
            f"Material '{material.title}' ({material_id}) borrowed by {borrower_id}; "
            f"booking {booking.id} due {booking.due_date.isoformat()}."
        )
        return booking

    async def _in_transaction(self, work, context: dict, failure, message: str):
        for attempt in range(1, TRANSACTION_ATTEMPTS + 1):
            try:
                async with self.transactions.transaction() as session:
                    return await work(session)
            except LibraryError:
                raise
            except Exception as e:
                if _is_transient(e) and attempt < TRANSACTION_ATTEMPTS:
                    logger.warning(f"Transient transaction error for {context} (attempt {attempt}), retrying: {e}")
                    continue
                logger.opt(exception=e).error(f"Transaction aborted for {context}: {e}")
                raise failure(message, context) from e

    async def _borrow_in_transaction(self, material_id: str, borrower_id: str) -> Booking.Response:
        context = {"material_id": material_id, "borrower_id": borrower_id}

        async def work(session):
            updated = await self.materials.decrement_available(material_id, session=session)
            if updated is None:
                raise NoCopiesAvailableError("No copies currently available for borrowing.", context)
            borrowed_at = self.clock()
            return await self.ledger.open_loan(
                borrower_id, material_id, borrowed_at, self.due_date_for(borrowed_at), session=session
            )

        return await self._in_transaction(work, context, BorrowFailedError, "Server error creating booking.")

    async def _borrow_with_compensation(self, material_id: str, borrower_id: str) -> Booking.Response:
        context = {"material_id": material_id, "borrower_id": borrower_id}
        updated = await self.materials.decrement_available(material_id)
        if updated is None:
            # Another request took the last copy between the check and the decrement.
            raise NoCopiesAvailableError("No copies currently available for borrowing.", context)
        logger.debug(f"Decremented available copies of {material_id} to {updated.available_copies}.")

        borrowed_at = self.clock()
        try:
            return await self.ledger.open_loan(borrower_id, material_id, borrowed_at, self.due_date_for(borrowed_at))
        except DuplicateActiveLoanError:
            await self._compensate_decrement(context)
            raise
        except Exception as e:
            logger.opt(exception=e).error(f"Booking insert failed after decrement for {context}: {e}")
            await self._compensate_decrement(context, cause=e)
            raise BorrowFailedError("Server error creating booking.", context) from e

    async def _compensate_decrement(self, context: dict, cause: Optional[BaseException] = None) -> None:
        material_id = context["material_id"]
        try:
            restored = await self.materials.increment_available(material_id)
        except Exception as e:
            restored = None
            cause = e
        if restored is None:
            logger.critical(
                f"DATA INTEGRITY: failed to roll back available copy decrement "
                f"(material_id={material_id}, borrower_id={context.get('borrower_id')}). "
                f"available_copies is one lower than the ledger implies. Error: {cause}"
            )
            raise IntegrityViolationError(
                "Booking failed and the inventory counter could not be restored.", context
            ) from cause
        logger.warning(f"Rolled back available copy decrement for {material_id} to {restored.available_copies}.")

    # --- return ---

    async def return_loan(self, loan_id: str) -> Booking.Response:
        booking = await self.ledger.get(loan_id)
        if booking is None:
            raise NotFoundError("Booking not found.", {"loan_id": loan_id})
        if booking.status == BookingStatus.RETURNED:
            raise AlreadyReturnedError("This booking has already been marked as returned.", {"loan_id": loan_id})
        if booking.status not in OPEN_STATUSES:
            raise InvalidRequestError(
                f"Cannot return a {booking.status} booking; it does not hold a copy.", {"loan_id": loan_id}
            )

        context = {"loan_id": loan_id, "material_id": booking.material_id, "borrower_id": booking.user_id}
        material = await self.materials.get(booking.material_id)
        if material is None:
            logger.error(f"DATA INTEGRITY: material missing for booking {context}.")
            raise IntegrityViolationError(
                "Cannot return booking: associated material record not found.", context
            )

        commit = self._return_in_transaction if self.transactional else self._return_with_compensation
        returned = await asyncio.shield(commit(booking, context))
        logger.info(f"Booking {loan_id} returned; material {booking.material_id} copy back on the shelf.")
        return returned

    async def _return_in_transaction(self, booking: Booking.Response, context: dict) -> Booking.Response:
        async def work(session):
            returned = await self.ledger.close_loan(booking.id, self.clock(), session=session)
            if returned is None:
                raise AlreadyReturnedError("This booking has already been marked as returned.", context)
            if await self.materials.increment_available(booking.material_id, session=session) is None:
                raise IntegrityViolationError(
                    "Cannot return booking: associated material record not found.", context
                )
            return returned

        return await self._in_transaction(work, context, ReturnFailedError, "Server error processing return.")

    async def _return_with_compensation(self, booking: Booking.Response, context: dict) -> Booking.Response:
        returned = await self.ledger.close_loan(booking.id, self.clock())
        if returned is None:
            raise AlreadyReturnedError("This booking has already been marked as returned.", context)

        try:
            restored = await self.materials.increment_available(booking.material_id)
            cause = None
        except Exception as e:
            restored, cause = None, e
        if restored is not None:
            return returned

        logger.error(f"Increment failed after marking booking returned for {context}: {cause}")
        try:
            reverted = await self.ledger.reopen_loan(booking.id, booking.status)
        except Exception as e:
            reverted, cause = None, e
        if reverted is None:
            logger.critical(
                f"DATA INTEGRITY: booking {context['loan_id']} is marked returned but "
                f"material {context['material_id']} was not incremented and the booking could not be "
                f"reopened (borrower_id={context['borrower_id']}). Error: {cause}"
            )
            raise IntegrityViolationError("Return left inventory and ledger inconsistent.", context) from cause
        raise ReturnFailedError("Server error processing return.", context) from cause

    # --- inventory administration ---

    async def adjust_inventory(
        self, material_id: str, total_copies: int, is_physical: Optional[bool] = None
    ) -> Material.Response:
        """Sets the number of owned copies while keeping the copies on loan checked out."""
        material = await self.materials.get(material_id)
        if material is None:
            raise NotFoundError("Material not found.", {"material_id": material_id})

        physical = material.is_physical if is_physical is None else is_physical
        on_loan = material.total_copies - material.available_copies
        if total_copies < 0:
            raise InvalidRequestError("Total copies cannot be negative.", {"material_id": material_id})
        if not physical and total_copies:
            raise InvalidRequestError("Only physical materials can have copies.", {"material_id": material_id})
        if total_copies < on_loan:
            raise InvalidRequestError(
                f"Cannot reduce total copies to {total_copies}: {on_loan} copies are currently on loan.",
                {"material_id": material_id, "on_loan": on_loan},
            )

        updated = await self.materials.replace_inventory(
            material_id,
            expected=(material.total_copies, material.available_copies),
            is_physical=physical,
            total_copies=total_copies,
            available_copies=total_copies - on_loan,
        )
        if updated is None:
            raise InvalidRequestError(
                "Inventory changed while updating; please retry.", {"material_id": material_id}
            )
        logger.info(
            f"Inventory of {material_id} set to total={updated.total_copies}, "
            f"available={updated.available_copies}, physical={updated.is_physical}."
        )
        return updated
