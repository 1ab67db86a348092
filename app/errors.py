"""Error taxonomy of the reservation engine.

Each class carries the HTTP status the API layer answers with.
"""


class ReservationError(Exception):
    status_code = 400

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ReservationError):
    """Malformed interval, closed day, duration out of bounds."""
    status_code = 400


class PermissionDenied(ReservationError):
    status_code = 403


class NotFoundError(ReservationError):
    status_code = 404


class ConflictError(ReservationError):
    """Overlapping interval, or a conditional write that lost a race."""
    status_code = 409


class InvalidTransitionError(ConflictError):
    """The reservation's current status does not allow the requested change."""
