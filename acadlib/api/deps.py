# acadlib/api/deps.py
"""FastAPI providers for the repositories and the services built on them.

Tests swap the ``get_*_repository`` and ``get_transaction_manager``
providers through ``app.dependency_overrides``; everything else is derived.
"""
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request

from acadlib.core import config
from acadlib.core.inventory import InventoryEngine
from acadlib.core.ledger import BookingLedger
from acadlib.core.storage import BlobStore
from acadlib.db.repositories import (
    BookingRepository,
    MaterialRepository,
    MongoBookingRepository,
    MongoMaterialRepository,
    MongoRequestRepository,
    MongoTransactionManager,
    MongoUserRepository,
    RequestRepository,
    TransactionManager,
    UserRepository,
)


def get_material_repository() -> MaterialRepository:
    return MongoMaterialRepository()


def get_booking_repository() -> BookingRepository:
    return MongoBookingRepository()


def get_user_repository() -> UserRepository:
    return MongoUserRepository()


def get_request_repository() -> RequestRepository:
    return MongoRequestRepository()


def get_transaction_manager(request: Request) -> Optional[TransactionManager]:
    client = getattr(request.app.state, "mongo_client", None)
    if client is None:
        return None
    return MongoTransactionManager(client, getattr(request.app.state, "supports_transactions", False))


def get_blob_store() -> BlobStore:
    return BlobStore(config.UPLOAD_DIR, config.MAX_UPLOAD_SIZE_MB * 1024 * 1024)


def get_ledger(
    bookings: BookingRepository = Depends(get_booking_repository),
    materials: MaterialRepository = Depends(get_material_repository),
    users: UserRepository = Depends(get_user_repository),
) -> BookingLedger:
    return BookingLedger(bookings, materials=materials, users=users)


def get_inventory_engine(
    materials: MaterialRepository = Depends(get_material_repository),
    ledger: BookingLedger = Depends(get_ledger),
    transactions: Optional[TransactionManager] = Depends(get_transaction_manager),
) -> InventoryEngine:
    return InventoryEngine(
        materials, ledger, transactions=transactions, loan_period=timedelta(days=config.LOAN_PERIOD_DAYS)
    )
