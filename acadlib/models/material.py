# acadlib/models/material.py
from typing import Optional, List
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field, field_validator, model_validator
from pymongo import IndexModel, ASCENDING, DESCENDING

from .enum import MaterialType
from .schema import CamelModel, Pagination, utcnow


def split_list(value) -> List[str]:
    """Accepts a comma separated string or a list and returns trimmed, non-empty entries."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


class Material(Document):
    """An academic material: file metadata plus physical copy counters."""
    title: str = Field(..., max_length=300)
    authors: List[str] = Field(default_factory=list)
    publication_year: Optional[int] = None
    material_type: MaterialType = Field(default=MaterialType.OTHER)
    keywords: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    description: Optional[str] = None
    uploaded_by: PydanticObjectId
    file_name: str
    file_path: str
    file_mime_type: str

    # Only the inventory engine writes these three.
    is_physical: bool = Field(default=False)
    total_copies: int = Field(default=0, ge=0)
    available_copies: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "materials"
        indexes = [
            IndexModel([("category", ASCENDING)], name="material_category_index"),
            IndexModel([("material_type", ASCENDING)], name="material_type_index"),
            IndexModel([("publication_year", ASCENDING)], name="material_publication_year_index"),
            IndexModel([("is_physical", ASCENDING)], name="material_is_physical_index"),
            IndexModel([("created_at", DESCENDING)], name="material_created_at_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(CamelModel):
        """Metadata sent alongside the uploaded file."""
        title: str = Field(..., min_length=3, max_length=300)
        authors: List[str] = Field(default_factory=list)
        publication_year: Optional[int] = Field(None, ge=1000)
        material_type: MaterialType = MaterialType.OTHER
        keywords: List[str] = Field(default_factory=list)
        category: Optional[str] = None
        description: Optional[str] = None
        is_physical: bool = False
        total_copies: int = Field(default=0, ge=0)

        @field_validator("authors", "keywords", mode="before")
        @classmethod
        def _split(cls, value):
            return split_list(value)

        @field_validator("keywords")
        @classmethod
        def _lower_keywords(cls, value: List[str]) -> List[str]:
            return [k.lower() for k in value]

        @field_validator("publication_year")
        @classmethod
        def _not_far_future(cls, value: Optional[int]) -> Optional[int]:
            if value is not None and value > utcnow().year + 1:
                raise ValueError("Publication year cannot be in the far future")
            return value

        @field_validator("category", "description")
        @classmethod
        def _strip(cls, value: Optional[str]) -> Optional[str]:
            if value is None:
                return None
            return value.strip() or None

        @model_validator(mode="after")
        def _copies_need_physical(self):
            if self.total_copies and not self.is_physical:
                raise ValueError("Only physical materials can have copies")
            return self

    class InventoryUpdate(CamelModel):
        is_physical: Optional[bool] = None
        total_copies: int = Field(..., ge=0)

    class Response(CamelModel):
        id: str = Field(..., alias="_id")
        title: str
        authors: List[str] = Field(default_factory=list)
        publication_year: Optional[int] = None
        material_type: MaterialType
        keywords: List[str] = Field(default_factory=list)
        category: Optional[str] = None
        description: Optional[str] = None
        uploaded_by: Optional[str] = None
        file_name: Optional[str] = None
        file_path: Optional[str] = None
        file_mime_type: Optional[str] = None
        is_physical: bool = False
        total_copies: int = 0
        available_copies: int = 0
        created_at: Optional[datetime] = None
        updated_at: Optional[datetime] = None


class MaterialSummary(CamelModel):
    """Reference shape used when a booking is populated."""
    id: str = Field(..., alias="_id")
    title: str
    material_type: Optional[MaterialType] = None


class MaterialPage(CamelModel):
    success: bool = True
    count: int
    pagination: Pagination
    data: List[Material.Response]
