from __future__ import annotations

from typing import Any, Iterable


class BookingError(Exception):
    """Base class of every business error; carries the HTTP status and the payload kind."""

    kind = "booking_error"

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {}

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message, **self.details()}


class ValidationError(BookingError):
    kind = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, 400)
        self.field = field

    def details(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class NotFoundError(BookingError):
    kind = "not_found"

    def __init__(self, message: str, status_code: int = 404) -> None:
        super().__init__(message, status_code)


class LessonNotFoundError(NotFoundError):
    def __init__(self, missing_ids: Iterable[str]) -> None:
        self.missing_ids = list(missing_ids)
        label = "Lesson" if len(self.missing_ids) == 1 else "Lessons"
        super().__init__(f"{label} with ID {', '.join(self.missing_ids)} not found", 400)

    def details(self) -> dict[str, Any]:
        return {"missingIds": self.missing_ids}


class OrderNotFoundError(NotFoundError):
    kind = "order_not_found"

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found", 404)


class AlreadyProcessedError(BookingError):
    kind = "already_processed"

    def __init__(self, order_id: str, status: str) -> None:
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} has already been processed (status: {status})", 400)


class InsufficientCapacityError(BookingError):
    kind = "insufficient_capacity"

    def __init__(self, lesson_id: str, available: int, requested: int) -> None:
        self.lesson_id = lesson_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough space for lesson {lesson_id}. Available: {available}, Requested: {requested}",
            400,
        )

    def details(self) -> dict[str, Any]:
        return {"lessonId": self.lesson_id, "available": self.available, "requested": self.requested}


class UpdateFailedError(BookingError):
    kind = "update_failed"

    def __init__(self, lesson_ids: Iterable[str]) -> None:
        self.lesson_ids = list(lesson_ids)
        super().__init__(f"Some updates failed to apply: {', '.join(self.lesson_ids)}", 400)

    def details(self) -> dict[str, Any]:
        return {"lessonIds": self.lesson_ids}
