"""
Module: invoice_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope for the ledger store.  LedgerStore is the single
    point of database connection configuration.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py.  MUST NOT import from services/, selectors/, domain/,
    or outer layers (create_tables imports models to populate metadata).

Invariants enforced:
    - One explicit store object per database, constructed and closed by its
      owner.  There is no process-wide connection cache.
    - SQLite connections always run with foreign keys ON and the WAL journal.
    - Other backends run READ COMMITTED, with row locks (FOR UPDATE) where
      services need stronger guarantees.
    - session_scope() commits on success and rolls back on ANY exception, so
      a failure partway through a multi-row operation leaves nothing behind.

Failure modes:
    - StorageUnavailableError when the connection or transaction machinery
      fails (OperationalError, InterfaceError, DisconnectionError).  Domain
      exceptions propagate unchanged after rollback.
    - RuntimeError when a closed store is used.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from invoice_kernel.exceptions import StorageUnavailableError
from invoice_kernel.logging_config import get_logger

logger = get_logger("db.engine")

MEMORY = ":memory:"

_STORAGE_FAILURES = (OperationalError, InterfaceError, DisconnectionError)


def storage_url(storage_location: str | Path) -> str:
    """
    Turn a storage location into a SQLAlchemy URL.

    ":memory:" and plain filesystem paths become SQLite URLs; anything with a
    scheme ("postgresql://...", "sqlite:///...") is used as given.
    """
    location = str(storage_location)
    if location == MEMORY:
        return "sqlite://"
    if "://" in location:
        return location
    return f"sqlite:///{Path(location).expanduser()}"


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """Foreign keys and the write-ahead log on every new SQLite connection."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute("PRAGMA journal_mode = WAL")
    finally:
        cursor.close()


class LedgerStore:
    """
    Storage session object shared by every ledger operation.

    Contract:
        Owns one Engine and one sessionmaker.  Services never commit; they
        flush inside the Session handed out by session_scope(), and the store
        commits or rolls back the whole unit of work.

    Guarantees:
        - An in-memory store uses a single shared connection so every session
          sees the same database.
        - close() disposes the engine; a closed store refuses new sessions.

    Usage:
        with LedgerStore("ledger.db") as store:
            store.create_tables()
            with store.session_scope() as session:
                ...
    """

    def __init__(self, storage_location: str | Path = MEMORY, echo: bool = False):
        self.storage_location = str(storage_location)
        self.url = storage_url(storage_location)
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "LedgerStore":
        """Create the engine.  Idempotent."""
        if self._engine is not None:
            return self

        if self.url.startswith("sqlite"):
            if self.url == "sqlite://":
                engine = create_engine(
                    self.url,
                    echo=self.echo,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )
            else:
                Path(self.url.removeprefix("sqlite:///")).parent.mkdir(
                    parents=True, exist_ok=True
                )
                engine = create_engine(self.url, echo=self.echo)
            event.listen(engine, "connect", _enable_sqlite_pragmas)
            dialect = "sqlite"
        else:
            engine = create_engine(
                self.url,
                echo=self.echo,
                pool_pre_ping=True,
                isolation_level="READ COMMITTED",
            )
            dialect = engine.dialect.name

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        logger.info(
            "store_opened",
            extra={"dialect": dialect, "in_memory": self.url == "sqlite://"},
        )
        return self

    def close(self) -> None:
        """Dispose the engine and release pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
            logger.info("store_closed")
        self._engine = None
        self._session_factory = None

    def __enter__(self) -> "LedgerStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("LedgerStore is not open. Call open() first.")
        return self._engine

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def create_tables(self) -> None:
        """
        Create every ledger table (idempotent) and register the ORM
        immutability listeners.
        """
        from invoice_kernel.db.base import Base
        from invoice_kernel.db.immutability import register_immutability_listeners

        import invoice_kernel.models  # noqa: F401  (populates Base.metadata)

        try:
            Base.metadata.create_all(self.engine)
        except _STORAGE_FAILURES as exc:
            raise StorageUnavailableError("create_tables", str(getattr(exc, "orig", None) or exc)) from exc
        register_immutability_listeners()

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        from invoice_kernel.db.base import Base

        Base.metadata.drop_all(self.engine)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def session(self) -> Session:
        """A new, unmanaged session.  Prefer session_scope()."""
        if self._session_factory is None:
            raise RuntimeError("LedgerStore is not open. Call open() first.")
        return self._session_factory()

    @contextmanager
    def session_scope(self, operation: str = "transaction") -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Postconditions: On normal exit, session is committed and closed.
            On exception, session is rolled back and closed; storage failures
            are re-raised as StorageUnavailableError, everything else as is.
        """
        session = self.session()
        logger.debug("transaction_started", extra={"operation": operation})
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed", extra={"operation": operation})
        except _STORAGE_FAILURES as exc:
            session.rollback()
            logger.error(
                "transaction_rolled_back",
                extra={"operation": operation, "cause": "storage"},
                exc_info=True,
            )
            raise StorageUnavailableError(operation, str(getattr(exc, "orig", None) or exc)) from exc
        except Exception:
            session.rollback()
            logger.warning(
                "transaction_rolled_back",
                extra={"operation": operation},
                exc_info=True,
            )
            raise
        finally:
            session.close()
