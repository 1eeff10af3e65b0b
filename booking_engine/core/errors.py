"""
Error taxonomy of the availability and reservation engine.

Every error carries the ``kind`` reported to HTTP clients and the status
code the API layer answers with.
"""


class BookingEngineError(Exception):
    kind = "Internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(BookingEngineError):
    """Malformed input or a slot outside every availability window. Raised before any write."""
    kind = "Validation"
    status_code = 422


class ConflictError(BookingEngineError):
    """The requested interval is already taken."""
    kind = "Conflict"
    status_code = 409

    def __init__(self, message: str = "Slot no longer available"):
        super().__init__(message)


class ExternalServiceError(BookingEngineError):
    """Calendar provider (or ledger) could not be reached or rejected the call."""
    kind = "External"
    status_code = 502

    def __init__(self, message: str, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout


class LedgerUnavailableError(ExternalServiceError):
    kind = "External"
    status_code = 503


class LedgerBusyError(BookingEngineError):
    """Transient ledger contention; the coordinator retries it."""
    kind = "Conflict"
    status_code = 409
