"""
Module: ledger_kernel.db.engine
Responsibility: The process-wide SQLAlchemy engine, its session factory and
    the commit-or-rollback scope every kernel operation runs in.
Architecture position: Kernel > DB.  Imports db/base.py only (create_tables
    also imports models so the metadata is populated).

Backends:
    - PostgreSQL in production: READ COMMITTED plus SELECT ... FOR UPDATE on
      the account row around each fetch-compute-persist cycle.
    - File-based SQLite for local runs and tests.  FOR UPDATE is ignored
      there; writers serialize on the database file lock instead.

Failure modes:
    - RuntimeError from get_engine/get_session_factory before
      init_engine_from_url().
    - sqlalchemy TimeoutError when pool_size + max_overflow connections are
      all checked out for longer than pool_timeout.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    (Re)initialize the module engine and session factory.

    A second call replaces the first; the previous engine is disposed.
    Sessions come out with expire_on_commit=False so DTOs can be built
    from committed rows.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        # SQLite's own busy timeout stands in for the pool wait.
        _engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": pool_timeout, "check_same_thread": False},
        )
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Session factory bound to the module engine.

    Fleet workers open one session each from this factory; sessions are
    never shared between threads.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on any exception.

    Usage:
        with session_scope(factory) as session:
            registry = AccountRegistry(session)
            ...
    """
    session = (factory or get_session_factory())()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the accounts and ledger_movements tables if missing."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401  -- populate Base.metadata

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every kernel table. Test teardown only."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def _atexit_dispose() -> None:
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
