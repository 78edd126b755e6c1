from __future__ import annotations

from decimal import Decimal

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .db import db_session
from .models import Lesson

DEFAULT_LESSONS = [
    ("SN01", "Math", "London", Decimal("100.00"), 5),
    ("SN02", "English", "Oxford", Decimal("80.00"), 5),
    ("SN03", "Music", "Bristol", Decimal("90.00"), 5),
    ("SN04", "Art", "Cambridge", Decimal("70.00"), 5),
    ("SN05", "Science", "York", Decimal("110.00"), 5),
    ("SN06", "History", "Bath", Decimal("60.00"), 5),
    ("SN07", "Coding", "Leeds", Decimal("120.00"), 5),
    ("SN08", "Drama", "Brighton", Decimal("75.00"), 5),
    ("SN09", "Chess", "Manchester", Decimal("50.00"), 5),
    ("SN10", "Photography", "Liverpool", Decimal("95.00"), 5),
]


def seed_lessons(session_factory: sessionmaker[Session]) -> int:
    """
    Populates the default catalogue (idempotent): existing ids are left untouched.
    Returns the number of lessons inserted.
    """
    inserted = 0
    with db_session(session_factory) as s:
        existing = set(s.scalars(select(Lesson.id)))
        for lesson_id, subject, location, price, space in DEFAULT_LESSONS:
            if lesson_id in existing:
                continue
            s.add(Lesson(id=lesson_id, subject=subject, location=location, price=price, space=space))
            inserted += 1

    if inserted:
        logger.info(f"Seeded {inserted} lesson(s)")
    return inserted
