"""
Module: approval_kernel.db.engine
Responsibility: Own the SQLAlchemy engine and session factory, and provide
    the transactional scope every workflow action runs in.
Architecture position: Kernel > DB.  May import from db/base.py and, inside
    create_tables(), the models package (to register tables).

Invariants enforced:
    - Explicit lifecycle: a Database is constructed once by the application
      and passed to the services that need it.  There is no module-level
      engine; two Database objects never share state.
    - session_scope() is all-or-nothing: commit on normal exit, rollback and
      re-raise on any exception.  The workflow engine relies on this for the
      atomic status change plus audit entry.

Failure modes:
    - SQLAlchemy OperationalError on unreachable database or SQLite lock
      timeout (connect_args timeout, default 30s).
    - Connection pool exhaustion on PostgreSQL if pool_size + max_overflow is
      exceeded.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.logging_config import get_logger

logger = get_logger("db.engine")


class Database:
    """
    Injected persistence collaborator.

    Usage:
        database = Database.from_url("sqlite:///approvals.db")
        database.create_tables()
        with database.session_scope() as session:
            ...
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False,
        )

    @classmethod
    def from_url(
        cls,
        database_url: str,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        sqlite_timeout: float = 30.0,
    ) -> Database:
        """Build the engine for ``database_url``.

        SQLite URLs get a busy timeout and cross-thread connections (the
        dispatcher may deliver from an executor thread); other backends get
        a pre-pinged connection pool.
        """
        if database_url.startswith("sqlite"):
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"timeout": sqlite_timeout, "check_same_thread": False},
            )
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=pool_pre_ping,
            )
        logger.info(
            "engine_initialized",
            extra={"dialect": engine.dialect.name, "echo": echo},
        )
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    def session(self) -> Session:
        """A new, unmanaged session. Prefer session_scope()."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Transactional scope around a series of operations.

        Postconditions: on normal exit the session is committed and closed;
        on exception it is rolled back, closed and the exception re-raised.
        """
        session = self._session_factory()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except Exception:
            session.rollback()
            logger.debug("session_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create every table registered on Base.metadata."""
        from approval_kernel.db.base import Base
        import approval_kernel.models  # noqa: F401  (registers tables)

        Base.metadata.create_all(self._engine)

    def drop_tables(self) -> None:
        """Drop all tables. Testing and demo resets only."""
        from approval_kernel.db.base import Base
        import approval_kernel.models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()
