# acadlib/core/errors.py
"""Error taxonomy shared by the inventory engine, the ledger and the API layer.

Each error carries the HTTP status it maps to and a stable ``code`` that is
returned to clients. ``context`` holds the identifiers needed to repair data
by hand when a 5xx-class error is logged.
"""
from typing import Any, Dict, Optional


class LibraryError(Exception):
    status_code: int = 500
    code: str = "LibraryError"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InvalidRequestError(LibraryError):
    """Malformed input caught before it reaches the core."""
    status_code = 400
    code = "ValidationError"


class NotFoundError(LibraryError):
    status_code = 404
    code = "NotFound"


class NotBorrowableError(LibraryError):
    status_code = 400
    code = "NotBorrowable"


class NoCopiesAvailableError(LibraryError):
    status_code = 400
    code = "NoCopiesAvailable"


class DuplicateActiveLoanError(LibraryError):
    status_code = 400
    code = "DuplicateActiveLoan"


class AlreadyReturnedError(LibraryError):
    status_code = 400
    code = "AlreadyReturned"


class BorrowFailedError(LibraryError):
    """The borrow did not go through and the inventory counter was restored."""
    status_code = 500
    code = "BorrowFailed"


class ReturnFailedError(LibraryError):
    """The return did not go through and the booking status was restored."""
    status_code = 500
    code = "ReturnFailed"


class IntegrityViolationError(LibraryError):
    """Counters and ledger disagree; needs manual reconciliation."""
    status_code = 500
    code = "IntegrityViolation"
