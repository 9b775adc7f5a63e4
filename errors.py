from typing import Optional


class TradeError(Exception):
    """Base class for every error the trade engine hands back to callers"""

    code = "TRADE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(TradeError):
    code = "VALIDATION_ERROR"


class NotFoundError(TradeError):
    code = "NOT_FOUND"


class AuthorizationError(TradeError):
    code = "NOT_AUTHORIZED"


class NotBookOwner(AuthorizationError):
    code = "NOT_BOOK_OWNER"


class BookUnavailableError(TradeError):
    code = "BOOK_UNAVAILABLE"

    def __init__(self, book_id: str, message: Optional[str] = None):
        super().__init__(message or f"Book {book_id} is not available for trade")
        self.book_id = book_id


class TradeStateConflict(TradeError):
    code = "TRADE_STATE_CONFLICT"


class DispatchError(TradeError):
    code = "DISPATCH_ERROR"


class ConflictError(Exception):
    """Raised by a TradeStore when a compare-and-swap finds stale state"""

    def __init__(self, trade_id: str, expected_status, actual_status=None):
        super().__init__(
            f"Trade {trade_id} is no longer {getattr(expected_status, 'value', expected_status)}"
        )
        self.trade_id = trade_id
        self.expected_status = expected_status
        self.actual_status = actual_status
