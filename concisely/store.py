"""
store.py
========
Database gateway for Concisely.

1) Creates the SQLAlchemy engine from ``DB_URL`` (SQLite by default).
2) Creates tables for the SQLModel classes in models.py.
3) Hands out Sessions (one unit of work each).

Usage pattern:
  with get_session() as session:
      session.add(obj)
      session.commit()
      session.refresh(obj)
"""

from sqlmodel import SQLModel, Session, create_engine

from .config import DB_URL

# SQLite connections are handed between the request threadpool and the
# scheduler thread, so the same-thread check has to go.
_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}

engine = create_engine(DB_URL, echo=False, connect_args=_connect_args)


def init_db() -> None:
    """
    Create all tables declared in models.py. Safe on every startup: only
    missing tables are created, nothing is dropped.
    """
    from . import models  # noqa: F401  (import just to register models with SQLModel)

    SQLModel.metadata.create_all(engine)


def reset_db() -> None:
    """Drop and recreate every table. Used by the test suite."""
    from . import models  # noqa: F401

    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    return Session(engine)
