# acadlib/models/request.py
from typing import Optional, List
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field, field_validator
from pymongo import IndexModel, ASCENDING, DESCENDING

from .enum import RequestStatus
from .material import split_list
from .schema import CamelModel, utcnow
from .user import UserSummary


class MaterialRequest(Document):
    """A user's request that the library acquire a material."""
    title: str
    authors: List[str] = Field(default_factory=list)
    publication_year: Optional[int] = None
    description: str
    requested_by: PydanticObjectId
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    action_notes: Optional[str] = None
    fulfilled_material_id: Optional[PydanticObjectId] = None
    requested_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "requests"
        indexes = [
            IndexModel([("requested_by", ASCENDING)], name="request_requested_by_index"),
            IndexModel([("status", ASCENDING)], name="request_status_index"),
            IndexModel([("requested_at", DESCENDING)], name="request_requested_at_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(CamelModel):
        title: str = Field(..., min_length=3, max_length=300)
        authors: List[str] = Field(default_factory=list)
        publication_year: Optional[int] = Field(None, gt=0)
        description: str = Field(..., min_length=10)

        @field_validator("authors", mode="before")
        @classmethod
        def _split(cls, value):
            return split_list(value)

    class StatusUpdate(CamelModel):
        # A request can be moved to any of these; "pending" is only the initial state.
        status: RequestStatus
        action_notes: Optional[str] = None
        fulfilled_material_id: Optional[str] = None

        @field_validator("status")
        @classmethod
        def _not_pending(cls, value):
            if value == RequestStatus.PENDING:
                raise ValueError("Status must be one of: approved, rejected, fulfilled")
            return value

    class Response(CamelModel):
        id: str = Field(..., alias="_id")
        title: str
        authors: List[str] = Field(default_factory=list)
        publication_year: Optional[int] = None
        description: str
        requested_by: str
        status: RequestStatus
        action_notes: Optional[str] = None
        fulfilled_material_id: Optional[str] = None
        requested_at: Optional[datetime] = None
        updated_at: Optional[datetime] = None
        requester: Optional[UserSummary] = None


class RequestList(CamelModel):
    success: bool = True
    count: int
    data: List[MaterialRequest.Response]
