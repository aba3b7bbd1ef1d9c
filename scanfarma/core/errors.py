"""
Domain error taxonomy.

Services raise these; routers and the global handlers in ``main`` turn them
into HTTP responses. Bulk operations catch them per item and report them
alongside a success count.
"""
from typing import Optional

from fastapi import status


class ScanFarmaError(Exception):
    """Base class for all expected domain failures."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class NotFoundError(ScanFarmaError):
    """A product or batch lookup missed inside the current pharmacy."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationError(ScanFarmaError):
    """Malformed input: a CSV row, a form field or an out-of-range date."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class InsufficientStockError(ScanFarmaError):
    """Requested more units than a batch (or product) holds."""

    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"

    def __init__(self, message: str, available: int = 0, requested: int = 0):
        super().__init__(message)
        self.available = available
        self.requested = requested

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.available)


class DuplicateImportError(ScanFarmaError):
    """The same sales file was already imported for this pharmacy."""

    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_import"


class PersistenceError(ScanFarmaError):
    """The database was unreachable or a write failed. Never retried here."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "connection_error"

    def __init__(self, message: str = "Connection error. Please try again later."):
        super().__init__(message)
