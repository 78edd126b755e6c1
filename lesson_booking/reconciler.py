from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from .db import db_session
from .errors import (
    AlreadyProcessedError,
    InsufficientCapacityError,
    LessonNotFoundError,
    OrderNotFoundError,
    UpdateFailedError,
    ValidationError,
)
from .models import Lesson, Order, OrderItem, OrderStatus, as_utc
from .stores import LessonStore, OrderStore

CENTS = Decimal("0.01")
PATCHABLE_FIELDS = ("subject", "location", "price", "description", "image")
IMMUTABLE_FIELDS = ("id", "space")
_PHONE_RE = re.compile(r"^\+?[0-9][0-9 \-]*[0-9]$")


# =========================
# DTO
# =========================
@dataclass(frozen=True)
class CartItem:
    lesson_id: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.lesson_id, "count": self.count}


@dataclass(frozen=True)
class LessonUpdate:
    lesson_id: str
    changes: Mapping[str, Any]


@dataclass(frozen=True)
class ConfirmationSummary:
    order_id: str
    updated_lessons: list[CartItem]
    status: str = OrderStatus.CONFIRMED.value
    message: str = "Lesson spaces reduced successfully and order confirmed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "orderId": self.order_id,
            "updatedLessons": [{"id": i.lesson_id, "reducedBy": i.count} for i in self.updated_lessons],
            "status": self.status,
        }


@dataclass(frozen=True)
class PatchSummary:
    updated_lessons: list[LessonUpdate] = field(default_factory=list)
    status: str = "success"
    message: str = "Lesson fields updated successfully"

    @property
    def updated_count(self) -> int:
        return len(self.updated_lessons)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "updatedCount": self.updated_count,
            "updatedLessons": [{"id": u.lesson_id, "changes": dict(u.changes)} for u in self.updated_lessons],
            "status": self.status,
        }


# =========================
# Flat views (safe outside the session)
# =========================
def lesson_flat(lesson: Lesson) -> dict[str, Any]:
    return {
        "id": lesson.id,
        "subject": lesson.subject,
        "location": lesson.location,
        "description": lesson.description,
        "image": lesson.image,
        "price": lesson.price,
        "space": lesson.space,
        "updatedAt": as_utc(lesson.updated_at),
    }


def order_flat(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "name": order.name,
        "phone": order.phone,
        "cartItems": [{"id": i.lesson_id, "count": i.count} for i in order.cart_items],
        "status": order.status.value,
        "total": order.total,
        "createdAt": as_utc(order.created_at),
        "updatedAt": as_utc(order.updated_at),
    }


# =========================
# Input validation
# =========================
def _as_cart_item(raw: CartItem | Mapping[str, Any], position: int) -> CartItem:
    if isinstance(raw, CartItem):
        lesson_id, count = raw.lesson_id, raw.count
    elif isinstance(raw, Mapping):
        lesson_id, count = raw.get("id", raw.get("lesson_id")), raw.get("count")
    else:
        raise ValidationError("Cart item must be an object with id and count", f"cartItems[{position}]")

    if not isinstance(lesson_id, str) or not lesson_id.strip():
        raise ValidationError("Lesson ID is required", f"cartItems[{position}].id")
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValidationError("Item count must be at least 1", f"cartItems[{position}].count")
    return CartItem(lesson_id.strip(), count)


def normalize_cart(cart_items: Iterable[CartItem | Mapping[str, Any]] | None) -> list[CartItem]:
    if cart_items is None or isinstance(cart_items, (str, bytes, Mapping)):
        raise ValidationError("Cart items must be a non-empty array", "cartItems")

    items = [_as_cart_item(raw, n) for n, raw in enumerate(cart_items)]
    if not items:
        raise ValidationError("Cart items must be a non-empty array", "cartItems")

    seen: set[str] = set()
    for item in items:
        if item.lesson_id in seen:
            raise ValidationError(f"Lesson {item.lesson_id} appears more than once in the cart", "cartItems")
        seen.add(item.lesson_id)
    return items


def _validate_customer(name: Any, phone: Any) -> tuple[str, str]:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name is required", "name")
    if not isinstance(phone, str) or not _PHONE_RE.match(phone.strip()):
        raise ValidationError("Valid phone number is required", "phone")

    digits = sum(ch.isdigit() for ch in phone)
    if not 7 <= digits <= 15:
        raise ValidationError("Valid phone number is required", "phone")
    return name.strip(), phone.strip()


def _coerce_change(name: str, value: Any) -> Any:
    if name == "price":
        if isinstance(value, bool):
            raise ValidationError("Price must be a number", "price")
        try:
            price = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError("Price must be a number", "price") from None
        if not price.is_finite() or price < 0:
            raise ValidationError("Price must be a non-negative number", "price")
        return price.quantize(CENTS)

    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Field {name} must be a string", name)
    return value


def normalize_updates(updates: Iterable[LessonUpdate | Mapping[str, Any]] | None) -> list[LessonUpdate]:
    if updates is None or isinstance(updates, (str, bytes, Mapping)):
        raise ValidationError("Updates must be a non-empty array for field updates", "updates")

    result: list[LessonUpdate] = []
    seen: set[str] = set()
    for n, raw in enumerate(updates):
        if isinstance(raw, LessonUpdate):
            lesson_id, changes = raw.lesson_id, raw.changes
        elif isinstance(raw, Mapping):
            lesson_id, changes = raw.get("id", raw.get("lesson_id")), raw.get("changes")
        else:
            raise ValidationError("Update must be an object with id and changes", f"updates[{n}]")

        if not isinstance(lesson_id, str) or not lesson_id.strip():
            raise ValidationError("Lesson ID is required for field updates", f"updates[{n}].id")
        if not isinstance(changes, Mapping) or not changes:
            raise ValidationError("Changes must be a non-empty object", f"updates[{n}].changes")

        lesson_id = lesson_id.strip()
        if lesson_id in seen:
            raise ValidationError(f"Lesson {lesson_id} appears more than once in updates", "updates")
        seen.add(lesson_id)

        coerced: dict[str, Any] = {}
        for key, value in changes.items():
            if key in IMMUTABLE_FIELDS:
                raise ValidationError(f"Field {key} cannot be changed through field updates", f"updates[{n}].changes.{key}")
            if key not in PATCHABLE_FIELDS:
                raise ValidationError(f"Unknown lesson field: {key}", f"updates[{n}].changes.{key}")
            coerced[key] = _coerce_change(key, value)
        result.append(LessonUpdate(lesson_id, coerced))

    if not result:
        raise ValidationError("Updates must be a non-empty array for field updates", "updates")
    return result


def _cart_counts(items: Iterable[CartItem]) -> dict[str, int]:
    return {i.lesson_id: i.count for i in items}


def _check_capacity(lessons: Mapping[str, Lesson], items: Iterable[CartItem]) -> None:
    for item in items:
        lesson = lessons[item.lesson_id]
        if lesson.space < item.count:
            raise InsufficientCapacityError(item.lesson_id, lesson.space, item.count)


# =========================
# Reconciler (use case core)
# =========================
class Reconciler:
    """
    Availability reconciliation: every operation is one transaction on the
    injected session factory, so a failure leaves no partial mutation behind.
    The only writer of Lesson.space and Order.status.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def list_lessons(self) -> list[dict[str, Any]]:
        with db_session(self.session_factory) as s:
            return [lesson_flat(lesson) for lesson in LessonStore(s).list_all()]

    def get_order(self, order_id: str) -> dict[str, Any]:
        with db_session(self.session_factory) as s:
            order = OrderStore(s).get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            return order_flat(order)

    def create_order(
        self,
        name: str,
        phone: str,
        cart_items: Iterable[CartItem | Mapping[str, Any]],
    ) -> dict[str, Any]:
        """
        Use case: create an order (status pending).
        - every lesson id must exist
        - each count must fit the space read now
        - total = sum(price * count)
        Seats are NOT reserved here: capacity can still be taken by another
        confirmation before this order is confirmed.
        """
        name, phone = _validate_customer(name, phone)
        items = normalize_cart(cart_items)

        with db_session(self.session_factory) as s:
            lessons = LessonStore(s).get_many(i.lesson_id for i in items)

            missing = [i.lesson_id for i in items if i.lesson_id not in lessons]
            if missing:
                raise ValidationError(f"Some lesson IDs do not exist: {', '.join(missing)}", "cartItems")

            _check_capacity(lessons, items)

            total = sum((lessons[i.lesson_id].price * i.count for i in items), Decimal("0"))
            order = Order(
                name=name,
                phone=phone,
                status=OrderStatus.PENDING,
                total=total.quantize(CENTS),
                cart_items=[OrderItem(lesson_id=i.lesson_id, count=i.count) for i in items],
            )
            OrderStore(s).add(order)

            logger.info(f"Order {order.id} created for {len(items)} lesson(s), total={order.total}")
            logger.debug(f"Order {order.id}: seats checked but not reserved until confirmation")
            return order_flat(order)

    def confirm_order(
        self,
        order_id: str,
        cart_items: Iterable[CartItem | Mapping[str, Any]] | None = None,
    ) -> ConfirmationSummary:
        """
        Use case: reserve the seats and confirm the order, all or nothing.
        - the order must exist and still be pending
        - capacity is re-read inside the transaction (row lock where supported)
        - each decrement is conditional on space >= count in the same statement
        - status moves pending -> confirmed with a compare-and-swap
        Without cart_items the cart stored on the order is used; a cart that is
        given must match the stored one (same lessons, same counts).
        """
        items = normalize_cart(cart_items) if cart_items is not None else None

        with db_session(self.session_factory) as s:
            orders = OrderStore(s)
            lessons = LessonStore(s)

            order = orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if order.status is not OrderStatus.PENDING:
                raise AlreadyProcessedError(order_id, order.status.value)

            stored = [CartItem(i.lesson_id, i.count) for i in order.cart_items]
            if items is None:
                items = stored
            elif _cart_counts(items) != _cart_counts(stored):
                raise ValidationError(f"Cart items do not match the cart of order {order_id}", "cartItems")

            current = lessons.get_many((i.lesson_id for i in items), for_update=True)
            missing = [i.lesson_id for i in items if i.lesson_id not in current]
            if missing:
                raise LessonNotFoundError(missing)

            try:
                _check_capacity(current, items)
            except InsufficientCapacityError as exc:
                logger.warning(f"Order {order_id} not confirmed: {exc.message}")
                raise

            if orders.transition_status(order_id, OrderStatus.PENDING, OrderStatus.CONFIRMED) == 0:
                fresh = orders.get(order_id)
                raise AlreadyProcessedError(order_id, fresh.status.value if fresh else "unknown")

            for item in items:
                if lessons.decrement_space(item.lesson_id, item.count) == 0:
                    available = lessons.current_space(item.lesson_id) or 0
                    logger.warning(
                        f"Order {order_id} lost the race on lesson {item.lesson_id}: "
                        f"available={available}, requested={item.count}"
                    )
                    raise InsufficientCapacityError(item.lesson_id, available, item.count)

            logger.info(f"Order {order_id} confirmed, reserved {sum(i.count for i in items)} seat(s)")
            return ConfirmationSummary(order_id=order_id, updated_lessons=list(items))

    def patch_lesson_fields(self, updates: Iterable[LessonUpdate | Mapping[str, Any]]) -> PatchSummary:
        """
        Use case: partial update of lesson fields across a batch.
        Missing ids are reported all at once and nothing is written.
        """
        batch = normalize_updates(updates)

        with db_session(self.session_factory) as s:
            lessons = LessonStore(s)

            missing = lessons.missing_ids(u.lesson_id for u in batch)
            if missing:
                raise LessonNotFoundError(missing)

            failed = [u.lesson_id for u in batch if lessons.update_fields(u.lesson_id, u.changes) == 0]
            if failed:
                logger.error(f"Field updates did not apply to lessons {failed}")
                raise UpdateFailedError(failed)

            logger.info(f"Updated fields of {len(batch)} lesson(s): {[u.lesson_id for u in batch]}")
            return PatchSummary(updated_lessons=batch)
