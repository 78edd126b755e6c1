"""Pytest fixtures: isolated SQLite database per test, seeded with a small catalogue."""
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from lesson_booking.api_main import create_app
from lesson_booking.db import db_session, init_db, make_engine, make_session_factory
from lesson_booking.models import Lesson, Order
from lesson_booking.reconciler import Reconciler

SEEDED_AT = datetime(2020, 1, 1, 12, 0, 0)


@pytest.fixture
def engine(tmp_path):
    # file database: every thread gets its own connection to the same data
    engine = make_engine(f"sqlite:///{tmp_path / 'test.sqlite'}", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def add_lesson(session_factory):
    def _add(lesson_id: str, price: str, space: int, **extra) -> None:
        with db_session(session_factory) as s:
            s.add(
                Lesson(
                    id=lesson_id,
                    price=Decimal(price),
                    space=space,
                    created_at=SEEDED_AT,
                    updated_at=SEEDED_AT,
                    **extra,
                )
            )

    return _add


@pytest.fixture
def reconciler(session_factory, add_lesson) -> Reconciler:
    add_lesson("SN01", "10.00", 5, subject="Math", location="London")
    add_lesson("SN02", "25.50", 3, subject="Music", location="Bristol")
    add_lesson("SN03", "40.00", 0, subject="Art", location="York")  # sold out
    return Reconciler(session_factory)


@pytest.fixture
def load_lesson(session_factory):
    def _load(lesson_id: str) -> Lesson:
        with db_session(session_factory) as s:
            return s.execute(select(Lesson).where(Lesson.id == lesson_id)).scalar_one()

    return _load


@pytest.fixture
def space_of(load_lesson):
    return lambda lesson_id: load_lesson(lesson_id).space


@pytest.fixture
def status_of(session_factory):
    def _status(order_id: str) -> str:
        with db_session(session_factory) as s:
            return s.get(Order, order_id).status.value

    return _status


@pytest.fixture
def client(engine, reconciler):
    app = create_app(engine, seed=False)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
