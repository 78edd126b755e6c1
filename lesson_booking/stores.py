from __future__ import annotations

from typing import Any, Iterable, Mapping

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .models import Lesson, Order, OrderStatus, utcnow


class LessonStore:
    """Key-indexed access to lessons, bound to the caller's session (and so to its transaction)."""

    def __init__(self, session: Session):
        self.session = session

    def list_all(self) -> list[Lesson]:
        return list(self.session.scalars(select(Lesson).order_by(Lesson.id)))

    def get(self, lesson_id: str) -> Lesson | None:
        return self.session.execute(select(Lesson).where(Lesson.id == lesson_id)).scalar_one_or_none()

    def get_many(self, lesson_ids: Iterable[str], for_update: bool = False) -> dict[str, Lesson]:
        """
        One round trip for the whole cart.
        for_update: row lock on backends that support it (no-op on SQLite),
        taken in lesson id order so overlapping carts lock in the same sequence;
        populate_existing refreshes rows already in the identity map.
        """
        ids = set(lesson_ids)
        if not ids:
            return {}
        q = select(Lesson).where(Lesson.id.in_(ids)).order_by(Lesson.id).execution_options(populate_existing=True)
        if for_update:
            q = q.with_for_update()
        return {lesson.id: lesson for lesson in self.session.scalars(q)}

    def missing_ids(self, lesson_ids: Iterable[str]) -> list[str]:
        requested = list(dict.fromkeys(lesson_ids))
        found = set(self.session.scalars(select(Lesson.id).where(Lesson.id.in_(requested))))
        missing = set(requested) - found
        return [lesson_id for lesson_id in requested if lesson_id in missing]

    def current_space(self, lesson_id: str) -> int | None:
        return self.session.execute(select(Lesson.space).where(Lesson.id == lesson_id)).scalar_one_or_none()

    def decrement_space(self, lesson_id: str, count: int) -> int:
        """
        Relative decrement guarded by the capacity check in the same statement:
        returns 0 when the row is missing or a concurrent writer got there first.
        """
        result = self.session.execute(
            update(Lesson)
            .where(Lesson.id == lesson_id, Lesson.space >= count)
            .values(space=Lesson.space - count, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def update_fields(self, lesson_id: str, changes: Mapping[str, Any]) -> int:
        result = self.session.execute(
            update(Lesson)
            .where(Lesson.id == lesson_id)
            .values(**changes, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class OrderStore:
    def __init__(self, session: Session):
        self.session = session

    def add(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def get(self, order_id: str) -> Order | None:
        return self.session.get(Order, order_id, populate_existing=True)

    def transition_status(self, order_id: str, from_status: OrderStatus, to_status: OrderStatus) -> int:
        """Compare-and-swap on status: 0 rows means the order was not in from_status anymore."""
        result = self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == from_status)
            .values(status=to_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
