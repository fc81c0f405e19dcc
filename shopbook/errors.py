# shopbook/errors.py

from typing import Optional


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(BookingError):
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.field:
            body["field"] = self.field
        return body


class TransitionError(ValidationError):
    """Status change that the appointment state machine does not allow."""


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    status_code = 409

    def __init__(self, message: str, appointment_id: str, start, end):
        super().__init__(message)
        self.appointment_id = appointment_id
        self.start = start
        self.end = end

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "conflict": {
                "appointment_id": self.appointment_id,
                "start": self.start.isoformat(),
                "end": self.end.isoformat(),
            },
        }


class PersistenceError(BookingError):
    status_code = 500

    def to_dict(self) -> dict:
        # storage details stay in the logs
        return {"error": "Internal storage error"}


class NotificationDispatchError(BookingError):
    """Raised by notifiers; callers record it and carry on."""

    status_code = 502
