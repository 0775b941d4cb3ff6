"""
Domain error taxonomy

Services raise these; main.py renders them with the same detail shape the
endpoints use for HTTPException ({"message", "error_code", ...}).
"""
from typing import Any, Dict, Optional


class StockroomError(Exception):
    """Base class for errors surfaced to API clients"""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> Dict[str, Any]:
        detail = {"message": self.message, "error_code": self.error_code}
        detail.update(self.context)
        return detail


class ValidationError(StockroomError):
    """Blank or malformed input"""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, **context: Any):
        if field is not None:
            context["field"] = field
        super().__init__(message, **context)


class NotFoundError(StockroomError):
    status_code = 404
    error_code = "NOT_FOUND"


class InvalidStateError(StockroomError):
    """Operation not permitted in the current lifecycle state"""

    status_code = 400
    error_code = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    error_code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot transition from {current} to {requested}",
            current_status=current,
            requested_status=requested,
        )
        self.current = current
        self.requested = requested


class EmptySelectionError(StockroomError):
    status_code = 400
    error_code = "EMPTY_SELECTION"


class DuplicateBarcodeError(StockroomError):
    status_code = 409
    error_code = "BARCODE_ALREADY_EXISTS"

    def __init__(self, barcode: str):
        super().__init__(
            f"An item with barcode '{barcode}' already exists",
            field="barcode",
            value=barcode,
        )


class StorageError(StockroomError):
    """Underlying persistence failure; never retried automatically"""

    status_code = 500
    error_code = "STORAGE_ERROR"
