"""Domain error taxonomy.

Each error carries a stable machine ``code``, the HTTP status the API layer
answers with, and optional structured ``extra`` merged into the response body.
Denials (quota, conflict, validation) are expected control flow; only
StorageError and MailDeliveryError represent infrastructure failures.
"""

from __future__ import annotations

from datetime import time
from typing import Any


class DomainError(Exception):
    """Base class for errors translated into structured API responses."""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, message: str | None = None) -> None:
        super().__init__(message or f"{resource.capitalize()} not found", resource=resource)
        self.resource = resource


class SubscriptionInactiveError(DomainError):
    status_code = 403
    code = "subscription_inactive"

    def __init__(self, status: str) -> None:
        super().__init__(
            "Your subscription is not active. Please complete payment or renew your plan.",
            status=status,
        )
        self.status = status


class TrialExpiredError(DomainError):
    status_code = 403
    code = "trial_expired"

    def __init__(self) -> None:
        super().__init__("Your trial has expired. Please upgrade your plan to continue.")


class SubscriptionExpiredError(DomainError):
    status_code = 403
    code = "subscription_expired"

    def __init__(self) -> None:
        super().__init__("Your subscription has expired. Please renew your plan to continue.")


class QuotaExceededError(DomainError):
    status_code = 403
    code = "quota_exceeded"

    def __init__(self, plan: str, resource: str, limit: int) -> None:
        super().__init__(
            f"Your {plan} plan allows up to {limit} {resource}. "
            "Please upgrade your plan to add more.",
            plan=plan,
            resource=resource,
            limit=limit,
        )
        self.plan = plan
        self.resource = resource
        self.limit = limit


class SlotConflictError(DomainError):
    status_code = 409
    code = "slot_conflict"

    def __init__(
        self,
        room_id: int,
        conflicting_booking_id: int | None = None,
        existing_start: time | None = None,
        existing_end: time | None = None,
    ) -> None:
        if existing_start is not None and existing_end is not None:
            super().__init__(
                "This room is already booked from "
                f"{existing_start.strftime('%I:%M %p')} to {existing_end.strftime('%I:%M %p')}",
                conflicting_booking_id=conflicting_booking_id,
                existing_start=existing_start.strftime("%H:%M"),
                existing_end=existing_end.strftime("%H:%M"),
            )
        else:
            super().__init__("This room is already booked for the selected time")
        self.room_id = room_id
        self.conflicting_booking_id = conflicting_booking_id
        self.existing_start = existing_start
        self.existing_end = existing_end


class PastScheduleError(DomainError):
    status_code = 400
    code = "past_schedule"

    def __init__(self, message: str = "Cannot schedule a booking in the past") -> None:
        super().__init__(message)


class RoomLockedError(DomainError):
    status_code = 403
    code = "room_locked"

    def __init__(self, room_id: int, message: str | None = None) -> None:
        super().__init__(
            message or "This room is locked. Upgrade your plan to edit it.",
            room_id=room_id,
        )
        self.room_id = room_id


class RoomHasBookingsError(DomainError):
    status_code = 409
    code = "room_has_bookings"

    def __init__(self, room_id: int) -> None:
        super().__init__("Room has bookings and cannot be deleted", room_id=room_id)
        self.room_id = room_id


class DuplicateRoomNumberError(DomainError):
    status_code = 409
    code = "duplicate_room_number"

    def __init__(self, room_number: int) -> None:
        super().__init__(f"Room number {room_number} already exists", room_number=room_number)
        self.room_number = room_number


class InvalidInputError(DomainError):
    """Validation failure; ``errors`` lists ``{field, message}`` pairs."""

    status_code = 400
    code = "invalid_input"

    def __init__(self, errors: list[dict[str, str]]) -> None:
        message = errors[0]["message"] if len(errors) == 1 else "Invalid input"
        super().__init__(message, errors=errors)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "InvalidInputError":
        return cls([{"field": field, "message": message}])


class TooManyRequestsError(DomainError):
    status_code = 429
    code = "too_many_requests"

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(
            f"Please wait {retry_after_seconds} seconds before requesting a new code",
            retry_after_seconds=retry_after_seconds,
        )
        self.retry_after_seconds = retry_after_seconds


class OtpMismatchError(DomainError):
    status_code = 400
    code = "otp_mismatch"

    def __init__(self) -> None:
        super().__init__("Invalid verification code")


class OtpExpiredError(DomainError):
    status_code = 410
    code = "otp_expired"

    def __init__(self) -> None:
        super().__init__("Verification code has expired. Please request a new one.")


class SessionExpiredError(DomainError):
    status_code = 401
    code = "session_expired"

    def __init__(self) -> None:
        super().__init__("Verification session expired. Please verify your e-mail again.")


class StorageError(DomainError):
    status_code = 503
    code = "storage_unavailable"


class MailDeliveryError(DomainError):
    status_code = 503
    code = "mail_unavailable"
