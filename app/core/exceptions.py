"""
Booking domain errors.

Raised by the slot manager and translated to JSON responses by the handler
registered in app.main. Each error carries the HTTP status and a stable
machine-readable code so callers can tell "fix your input" apart from
"pick another time".
"""
from typing import Optional


class BookingError(Exception):
    status_code = 400
    code = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(BookingError):
    """Malformed or missing input"""
    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class PastTimeError(BookingError):
    """The requested date and time is already over in business time"""
    status_code = 400
    code = "past_time"


class SlotUnavailableError(BookingError):
    """The slot is full or not offered"""
    status_code = 409
    code = "slot_unavailable"


class DayHasActiveBookingsError(BookingError):
    status_code = 409
    code = "day_has_active_bookings"

    def __init__(self, count: int):
        plural = "s" if count != 1 else ""
        super().__init__(f"Cannot close day: {count} active booking{plural} exist for this date")
        self.count = count

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["count"] = self.count
        return data


class DayNotConfiguredError(BookingError):
    """An admin action on a day that has no slots"""
    status_code = 404
    code = "day_not_configured"

    def __init__(self, day):
        super().__init__(f"No slots configured for {day}")


class StorageError(BookingError):
    """Opaque persistence failure"""
    status_code = 500
    code = "storage_error"
