# acadlib/db/repositories.py
"""Persistence seams for the library core.

The engine and the ledger only talk to these interfaces. The ``Mongo*``
classes are the production implementations on top of Beanie/Motor; every
counter mutation is a single guarded ``find_one_and_update`` so that MongoDB
itself arbitrates racing requests.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from loguru import logger
from pymongo import ReturnDocument, DESCENDING
from pymongo.errors import DuplicateKeyError

from acadlib.core.errors import DuplicateActiveLoanError
from acadlib.core.utils import to_object_id, to_schema, document_to_schema
from acadlib.models.booking import Booking, ACTIVE_LOAN_INDEX
from acadlib.models.enum import BookingStatus, NON_TERMINAL_BOOKING_STATUSES
from acadlib.models.material import Material
from acadlib.models.request import MaterialRequest
from acadlib.models.schema import utcnow
from acadlib.models.user import User

SortSpec = List[Tuple[str, int]]

_OPEN_STATUSES = [s.value for s in NON_TERMINAL_BOOKING_STATUSES]


# --- Interfaces ---

class TransactionManager(ABC):
    supports_transactions: bool = False

    @abstractmethod
    def transaction(self):
        """Async context manager yielding a session bound to one transaction."""


class MaterialRepository(ABC):
    @abstractmethod
    async def get(self, material_id: str, session=None) -> Optional[Material.Response]: ...

    @abstractmethod
    async def get_many(self, material_ids: Sequence[str]) -> List[Material.Response]: ...

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Material.Response: ...

    @abstractmethod
    async def delete(self, material_id: str) -> Optional[Material.Response]: ...

    @abstractmethod
    async def search(self, filter_: Dict[str, Any], sort: SortSpec, skip: int, limit: int) -> List[Material.Response]: ...

    @abstractmethod
    async def count(self, filter_: Dict[str, Any]) -> int: ...

    @abstractmethod
    async def decrement_available(self, material_id: str, session=None) -> Optional[Material.Response]:
        """Takes one copy out if ``available_copies > 0``; returns None when nothing matched."""

    @abstractmethod
    async def increment_available(self, material_id: str, session=None) -> Optional[Material.Response]:
        """Puts one copy back, never exceeding ``total_copies``; returns None when the material is gone."""

    @abstractmethod
    async def replace_inventory(
        self,
        material_id: str,
        expected: Tuple[int, int],
        is_physical: bool,
        total_copies: int,
        available_copies: int,
        session=None,
    ) -> Optional[Material.Response]:
        """Sets the counters only if they still equal ``expected`` (total, available)."""


class BookingRepository(ABC):
    @abstractmethod
    async def get(self, booking_id: str, session=None) -> Optional[Booking.Response]: ...

    @abstractmethod
    async def find_active(self, user_id: str, material_id: str, session=None) -> Optional[Booking.Response]: ...

    @abstractmethod
    async def create(
        self, user_id: str, material_id: str, borrowed_at: datetime, due_date: datetime, session=None
    ) -> Booking.Response:
        """Inserts an active booking; raises DuplicateActiveLoanError on the unique index."""

    @abstractmethod
    async def mark_returned(self, booking_id: str, returned_at: datetime, session=None) -> Optional[Booking.Response]:
        """Guarded on an open status; returns None if the booking no longer holds a copy."""

    @abstractmethod
    async def restore_status(self, booking_id: str, status: str, session=None) -> Optional[Booking.Response]: ...

    @abstractmethod
    async def list(
        self, status: Optional[str] = None, user_id: Optional[str] = None, material_id: Optional[str] = None
    ) -> List[Booking.Response]:
        """Newest first."""

    @abstractmethod
    async def count_open_for_material(self, material_id: str) -> int: ...


class UserRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Optional[User.Response]: ...

    @abstractmethod
    async def get_credentials(self, email: str) -> Optional[Tuple[User.Response, str]]:
        """Returns the user and its password hash."""

    @abstractmethod
    async def get_many(self, user_ids: Sequence[str]) -> List[User.Response]: ...

    @abstractmethod
    async def email_exists(self, email: str) -> bool: ...

    @abstractmethod
    async def create(self, name: str, email: str, hashed_password: str, role: str) -> User.Response: ...


class RequestRepository(ABC):
    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> MaterialRequest.Response: ...

    @abstractmethod
    async def get(self, request_id: str) -> Optional[MaterialRequest.Response]: ...

    @abstractmethod
    async def list(self, status: Optional[str] = None, requested_by: Optional[str] = None) -> List[MaterialRequest.Response]:
        """Newest first."""

    @abstractmethod
    async def update(self, request_id: str, changes: Dict[str, Any]) -> Optional[MaterialRequest.Response]: ...


# --- MongoDB implementations ---

class MongoTransactionManager(TransactionManager):
    def __init__(self, client, supports_transactions: bool):
        self.client = client
        self.supports_transactions = supports_transactions

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Any]:
        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session


class MongoMaterialRepository(MaterialRepository):
    def _collection(self):
        return Material.get_motor_collection()

    def _to_response(self, raw: Optional[dict]) -> Optional[Material.Response]:
        return to_schema(Material.Response, raw) if raw else None

    async def get(self, material_id: str, session=None) -> Optional[Material.Response]:
        raw = await self._collection().find_one({"_id": to_object_id(material_id, "material ID")}, session=session)
        return self._to_response(raw)

    async def get_many(self, material_ids: Sequence[str]) -> List[Material.Response]:
        oids = [ObjectId(m) for m in set(material_ids) if ObjectId.is_valid(m)]
        if not oids:
            return []
        cursor = self._collection().find({"_id": {"$in": oids}})
        return [self._to_response(raw) async for raw in cursor]

    async def create(self, data: Dict[str, Any]) -> Material.Response:
        material = Material(**data)
        await material.insert()
        logger.info(f"Material '{material.title}' ({material.id}) stored.")
        return document_to_schema(Material.Response, material)

    async def delete(self, material_id: str) -> Optional[Material.Response]:
        raw = await self._collection().find_one_and_delete({"_id": to_object_id(material_id, "material ID")})
        return self._to_response(raw)

    async def search(self, filter_: Dict[str, Any], sort: SortSpec, skip: int, limit: int) -> List[Material.Response]:
        docs = await Material.find(filter_, skip=skip, limit=limit, sort=sort).to_list()
        return [document_to_schema(Material.Response, d) for d in docs]

    async def count(self, filter_: Dict[str, Any]) -> int:
        return await Material.find(filter_).count()

    async def decrement_available(self, material_id: str, session=None) -> Optional[Material.Response]:
        raw = await self._collection().find_one_and_update(
            {"_id": to_object_id(material_id, "material ID"), "available_copies": {"$gt": 0}},
            {"$inc": {"available_copies": -1}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return self._to_response(raw)

    async def increment_available(self, material_id: str, session=None) -> Optional[Material.Response]:
        # Update pipeline so the clamp is evaluated atomically on the server.
        raw = await self._collection().find_one_and_update(
            {"_id": to_object_id(material_id, "material ID")},
            [{"$set": {
                "available_copies": {"$min": [{"$add": ["$available_copies", 1]}, "$total_copies"]},
                "updated_at": utcnow(),
            }}],
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return self._to_response(raw)

    async def replace_inventory(
        self,
        material_id: str,
        expected: Tuple[int, int],
        is_physical: bool,
        total_copies: int,
        available_copies: int,
        session=None,
    ) -> Optional[Material.Response]:
        expected_total, expected_available = expected
        raw = await self._collection().find_one_and_update(
            {
                "_id": to_object_id(material_id, "material ID"),
                "total_copies": expected_total,
                "available_copies": expected_available,
            },
            {"$set": {
                "is_physical": is_physical,
                "total_copies": total_copies,
                "available_copies": available_copies,
                "updated_at": utcnow(),
            }},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return self._to_response(raw)


class MongoBookingRepository(BookingRepository):
    def _collection(self):
        return Booking.get_motor_collection()

    def _to_response(self, raw: Optional[dict]) -> Optional[Booking.Response]:
        return to_schema(Booking.Response, raw) if raw else None

    async def get(self, booking_id: str, session=None) -> Optional[Booking.Response]:
        raw = await self._collection().find_one({"_id": to_object_id(booking_id, "booking ID")}, session=session)
        return self._to_response(raw)

    async def find_active(self, user_id: str, material_id: str, session=None) -> Optional[Booking.Response]:
        raw = await self._collection().find_one(
            {
                "user_id": to_object_id(user_id, "user ID"),
                "material_id": to_object_id(material_id, "material ID"),
                "status": {"$in": _OPEN_STATUSES},
            },
            session=session,
        )
        return self._to_response(raw)

    async def create(
        self, user_id: str, material_id: str, borrowed_at: datetime, due_date: datetime, session=None
    ) -> Booking.Response:
        booking = Booking(
            user_id=to_object_id(user_id, "user ID"),
            material_id=to_object_id(material_id, "material ID"),
            status=BookingStatus.ACTIVE,
            borrowed_at=borrowed_at,
            due_date=due_date,
            created_at=borrowed_at,
            updated_at=borrowed_at,
        )
        try:
            await booking.insert(session=session)
        except DuplicateKeyError as e:
            if ACTIVE_LOAN_INDEX in str(e):
                raise DuplicateActiveLoanError(
                    "You appear to already have an active loan for this material (concurrent request?).",
                    {"user_id": user_id, "material_id": material_id},
                ) from e
            raise
        return document_to_schema(Booking.Response, booking)

    async def mark_returned(self, booking_id: str, returned_at: datetime, session=None) -> Optional[Booking.Response]:
        raw = await self._collection().find_one_and_update(
            {"_id": to_object_id(booking_id, "booking ID"), "status": {"$in": _OPEN_STATUSES}},
            {"$set": {"status": BookingStatus.RETURNED.value, "returned_at": returned_at, "updated_at": returned_at}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return self._to_response(raw)

    async def restore_status(self, booking_id: str, status: str, session=None) -> Optional[Booking.Response]:
        raw = await self._collection().find_one_and_update(
            {"_id": to_object_id(booking_id, "booking ID")},
            {"$set": {"status": status, "returned_at": None, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return self._to_response(raw)

    async def list(
        self, status: Optional[str] = None, user_id: Optional[str] = None, material_id: Optional[str] = None
    ) -> List[Booking.Response]:
        query_filters: Dict[str, Any] = {}
        if status:
            query_filters["status"] = status
        if user_id:
            query_filters["user_id"] = to_object_id(user_id, "user ID")
        if material_id:
            query_filters["material_id"] = to_object_id(material_id, "material ID")
        cursor = self._collection().find(query_filters).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        return [self._to_response(raw) async for raw in cursor]

    async def count_open_for_material(self, material_id: str) -> int:
        return await self._collection().count_documents(
            {"material_id": to_object_id(material_id, "material ID"), "status": {"$in": _OPEN_STATUSES}}
        )


class MongoUserRepository(UserRepository):
    async def get(self, user_id: str) -> Optional[User.Response]:
        if not ObjectId.is_valid(user_id):
            return None
        user = await User.get(ObjectId(user_id))
        return document_to_schema(User.Response, user) if user else None

    async def get_credentials(self, email: str) -> Optional[Tuple[User.Response, str]]:
        user = await User.find_one(User.email == email.lower())
        if not user:
            return None
        return document_to_schema(User.Response, user), user.hashed_password

    async def get_many(self, user_ids: Sequence[str]) -> List[User.Response]:
        oids = [ObjectId(u) for u in set(user_ids) if ObjectId.is_valid(u)]
        if not oids:
            return []
        users = await User.find({"_id": {"$in": oids}}).to_list()
        return [document_to_schema(User.Response, u) for u in users]

    async def email_exists(self, email: str) -> bool:
        return await User.find_one(User.email == email.lower()) is not None

    async def create(self, name: str, email: str, hashed_password: str, role: str) -> User.Response:
        user = User(name=name, email=email.lower(), hashed_password=hashed_password, role=role)
        await user.insert()
        return document_to_schema(User.Response, user)


class MongoRequestRepository(RequestRepository):
    async def create(self, data: Dict[str, Any]) -> MaterialRequest.Response:
        request_doc = MaterialRequest(**data)
        await request_doc.insert()
        return document_to_schema(MaterialRequest.Response, request_doc)

    async def get(self, request_id: str) -> Optional[MaterialRequest.Response]:
        doc = await MaterialRequest.get(to_object_id(request_id, "request ID"))
        return document_to_schema(MaterialRequest.Response, doc) if doc else None

    async def list(self, status: Optional[str] = None, requested_by: Optional[str] = None) -> List[MaterialRequest.Response]:
        query_filters: Dict[str, Any] = {}
        if status:
            query_filters["status"] = status
        if requested_by:
            query_filters["requested_by"] = to_object_id(requested_by, "user ID")
        docs = await MaterialRequest.find(query_filters, sort=[("requested_at", DESCENDING)]).to_list()
        return [document_to_schema(MaterialRequest.Response, d) for d in docs]

    async def update(self, request_id: str, changes: Dict[str, Any]) -> Optional[MaterialRequest.Response]:
        changes = dict(changes, updated_at=utcnow())
        if changes.get("fulfilled_material_id"):
            changes["fulfilled_material_id"] = to_object_id(changes["fulfilled_material_id"], "material ID")
        raw = await MaterialRequest.get_motor_collection().find_one_and_update(
            {"_id": to_object_id(request_id, "request ID")},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return to_schema(MaterialRequest.Response, raw) if raw else None


async def detect_transaction_support(client) -> bool:
    """True when the server is a replica set member or a mongos router."""
    try:
        hello = await client.admin.command("hello")
    except Exception as e:
        logger.warning(f"Could not probe MongoDB topology, assuming no transactions: {e}")
        return False
    return bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"
