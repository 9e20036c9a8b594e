"""
Domain errors raised by the shuttle services.

Each error carries a stable ``code`` and the HTTP status the API answers with.
Services raise them after rolling back their unit of work, so an error reaching
the caller never comes with partial effects.
"""


class ShuttleError(Exception):
    code = "SHUTTLE_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidStopError(ShuttleError):
    """Unknown, inactive or identical origin/destination stop in a plan request"""
    code = "INVALID_STOP"
    status_code = 400


class MalformedLegError(ShuttleError):
    """A booking leg does not resolve, does not chain, or no longer runs"""
    code = "MALFORMED_LEG"
    status_code = 400


class InsufficientBalanceError(ShuttleError):
    code = "INSUFFICIENT_BALANCE"
    status_code = 402


class DuplicateReferenceError(ShuttleError):
    """Idempotency key replayed with a different payload"""
    code = "DUPLICATE_REFERENCE"
    status_code = 409


class InvalidAllocationError(ShuttleError):
    """Wallet movement with a non-positive amount or unknown type"""
    code = "INVALID_ALLOCATION"
    status_code = 400


class NotFoundError(ShuttleError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidTransitionError(ShuttleError):
    """Booking status change not allowed from the current state"""
    code = "INVALID_TRANSITION"
    status_code = 409


class PermissionDeniedError(ShuttleError):
    code = "PERMISSION_DENIED"
    status_code = 403


class ReferenceUnavailableError(ShuttleError):
    """No unused booking reference could be generated"""
    code = "REFERENCE_UNAVAILABLE"
    status_code = 503
