from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings


class Base(DeclarativeBase):
    """Base ORM for every model."""
    pass


def make_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    """
    Builds the engine for the given URL (default: configured DATABASE_URL).
    SQLite connections are shared across the request threadpool, so the
    same-thread check is disabled and writers wait on the lock instead of failing.
    """
    url = url or settings.database_url
    connect_args: dict = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}

    return create_engine(
        url,
        echo=settings.db_echo if echo is None else echo,
        future=True,
        connect_args=connect_args,
    )


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )


def init_db(engine: Engine) -> None:
    """Creates the tables if they do not exist."""
    # registers the tables on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def db_session(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    One transaction per block:
    - commit if everything went fine
    - rollback on exceptions
    - close always
    """
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
