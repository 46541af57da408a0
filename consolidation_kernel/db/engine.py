"""
Module: consolidation_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory and
    transactional scope.  Single point of database connection setup.
Architecture position: Kernel > DB.  May import db/base.py; create_tables
    imports the model registry so every table is known to the metadata.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with a pre-pinged QueuePool.
    - In-memory SQLite (tests, local tooling) shares one connection through
      StaticPool so every session sees the same database.

Failure modes:
    - RuntimeError if get_engine/get_session is called before
      init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from consolidation_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    A second call replaces the first engine.

    Args:
        database_url: SQLAlchemy URL, e.g. ``postgresql+psycopg://...`` or
            ``sqlite://`` for an in-memory database.
        echo: Log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections allowed beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Transactional scope: commit on normal exit, roll back and re-raise on error.

    Usage:
        with session_scope() as session:
            service = AdjustmentService(session, clock)
            ...
    """
    session = get_session()
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
    """Create every consolidation table on the current engine."""
    from consolidation_kernel.db.base import Base
    from consolidation_kernel.models import import_all_models

    import_all_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every consolidation table. Primarily for tests."""
    from consolidation_kernel.db.base import Base
    from consolidation_kernel.models import import_all_models

    import_all_models()
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None
