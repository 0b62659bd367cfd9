from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine

from ..config import get_settings


settings = get_settings()
_is_sqlite = settings.database_url.startswith("sqlite")

# FastAPI runs sync endpoints in a threadpool.
engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)


def _sqlite_pragmas(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    # Mercado Pago retries webhooks in bursts; writers wait instead of failing.
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


if _is_sqlite:
    event.listen(engine, "connect", _sqlite_pragmas)


def init_db() -> None:
    from . import models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(engine)


def drop_db() -> None:
    SQLModel.metadata.drop_all(engine)


@contextmanager
def get_session() -> Iterator[Session]:
    # Rows handed back to callers stay readable after the session closes.
    with Session(engine, expire_on_commit=False) as session:
        yield session
