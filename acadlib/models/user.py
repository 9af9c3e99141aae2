# acadlib/models/user.py
from typing import Optional
from enum import Enum
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field, EmailStr
from pymongo import IndexModel, ASCENDING

from .schema import CamelModel, utcnow


class UserRole(str, Enum):
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"
    PUBLIC = "public"


# Roles a user may pick for themselves at registration.
SELF_SERVICE_ROLES = (UserRole.STUDENT, UserRole.PUBLIC)


class User(Document):
    name: str
    email: EmailStr
    hashed_password: str
    role: UserRole = Field(default=UserRole.PUBLIC)
    disabled: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "users"
        indexes = [
            IndexModel([("email", ASCENDING)], name="email_unique_index", unique=True),
            IndexModel([("role", ASCENDING)], name="role_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(CamelModel):
        name: str = Field(..., min_length=1, max_length=120)
        email: EmailStr
        password: str = Field(..., min_length=6)
        role: UserRole = UserRole.PUBLIC

    class Response(CamelModel):
        id: str = Field(..., alias="_id")
        name: str
        email: EmailStr
        role: UserRole
        disabled: bool = False
        created_at: Optional[datetime] = None


class UserSummary(CamelModel):
    """Reference shape used when a booking or request is populated."""
    id: str = Field(..., alias="_id")
    name: str
    email: Optional[str] = None


class CurrentUser(CamelModel):
    """Identity of the caller for the duration of one request."""
    id: str
    name: str
    email: str
    role: UserRole


class Token(BaseModel):
    # OAuth2 clients expect snake_case here.
    access_token: str
    token_type: str = "bearer"
