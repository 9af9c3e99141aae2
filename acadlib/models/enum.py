# acadlib/models/enum.py
from enum import Enum


class BookingStatus(str, Enum):
    BOOKED = "booked"
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# A borrower may hold at most one booking in these states per material.
NON_TERMINAL_BOOKING_STATUSES = (BookingStatus.BOOKED, BookingStatus.ACTIVE, BookingStatus.OVERDUE)


class MaterialType(str, Enum):
    RESEARCH_PAPER = "research_paper"
    BOOK = "book"
    COURSE_MATERIAL = "course_material"
    THESIS = "thesis"
    OTHER = "other"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FULFILLED = "fulfilled"
