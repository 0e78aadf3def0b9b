"""
Engine and session helpers.

Proximity search evaluates the Haversine formula inside SQL. PostgreSQL ships
`radians`, `sin`, `cos`, `sqrt`, `atan2`, `greatest` and `least`. SQLite lacks the
last two and only has the rest when compiled with math functions, so for SQLite we
register null-safe Python versions on every new connection. The same SQLAlchemy
expression then runs on both backends.
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bunda.config.settings import Settings
from bunda.core.env import resolve_project_path
from bunda.storage.models import Base

logger = logging.getLogger(__name__)


def _null_safe(fn: Callable[..., float]) -> Callable[..., float | None]:
    def wrapper(*args: Any) -> float | None:
        if any(a is None for a in args):
            return None
        return fn(*(float(a) for a in args))

    return wrapper


_SQLITE_MATH_FUNCTIONS: dict[str, tuple[int, Callable[..., float]]] = {
    "radians": (1, math.radians),
    "sin": (1, math.sin),
    "cos": (1, math.cos),
    "sqrt": (1, math.sqrt),
    "atan2": (2, math.atan2),
    "greatest": (2, max),
    "least": (2, min),
}


def _register_sqlite_math(dbapi_connection: Any, _connection_record: Any) -> None:
    for name, (n_args, fn) in _SQLITE_MATH_FUNCTIONS.items():
        dbapi_connection.create_function(name, n_args, _null_safe(fn), deterministic=True)


def _sqlite_url(url: str) -> str:
    """Resolve relative SQLite file paths against the project root."""
    parsed = make_url(url)
    database = parsed.database
    if not database or database == ":memory:":
        return url
    return parsed.set(database=str(resolve_project_path(database))).render_as_string(hide_password=False)


def build_engine(settings: Settings, url: str | None = None) -> Engine:
    """Create the SQLAlchemy engine for `settings.database` (or an explicit URL)."""
    url = url or settings.database.url
    kwargs: dict[str, Any] = {"echo": settings.database.echo}

    is_sqlite = make_url(url).get_backend_name() == "sqlite"
    if is_sqlite:
        url = _sqlite_url(url)
        kwargs["connect_args"] = {"check_same_thread": False}
        if make_url(url).database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database.
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _register_sqlite_math)
    logger.debug("Created engine for %s", engine.url.render_as_string(hide_password=True))
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope: commit on success, roll back on error."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
