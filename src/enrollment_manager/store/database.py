"""SQLite engine and transaction scopes for the Store."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from enrollment_manager.store.exceptions import ConflictError, PersistenceError
from enrollment_manager.store.models import Base

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy import Engine

MEMORY = ":memory:"

# Seconds a writer waits for the SQLite write lock before giving up
DEFAULT_BUSY_TIMEOUT = 30.0

# Run on every new DBAPI connection
_PRAGMAS = ("PRAGMA journal_mode=WAL", "PRAGMA foreign_keys=ON")


def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
    # pysqlite's own transaction handling would defeat BEGIN IMMEDIATE
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    for pragma in _PRAGMAS:
        cursor.execute(pragma)
    cursor.close()


def _on_begin(conn: Any) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Owns the engine and hands out transactional sessions.

    Every transaction starts with ``BEGIN IMMEDIATE``, so a read-check-write
    sequence holds the SQLite write lock from its first statement. Seat
    counting and the insert that follows it therefore cannot interleave with
    another writer, whether that writer is a thread or another process.
    """

    def __init__(self, db_path: str = "enrollment.db", busy_timeout: float = DEFAULT_BUSY_TIMEOUT):
        """Initialize the database.

        Args:
            db_path: SQLite file path, or ":memory:" for a private in-memory database.
            busy_timeout: Seconds to wait on a locked database file.
        """
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._engine: Engine | None = None
        self._sessions: sessionmaker[Session] | None = None

    def _create_engine(self) -> Engine:
        if self.db_path == MEMORY:
            # One shared connection, usable from TestClient and worker threads
            engine = create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                f"sqlite:///{self.db_path}",
                connect_args={"check_same_thread": False, "timeout": self.busy_timeout},
            )
        event.listen(engine, "connect", _on_connect)
        event.listen(engine, "begin", _on_begin)
        return engine

    @property
    def engine(self) -> Engine:
        """The engine, created on first use."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def create_tables(self) -> None:
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self, session: Session | None = None) -> Iterator[Session]:
        """Provide a transactional scope.

        When ``session`` is given the caller owns the transaction and this
        scope neither commits nor closes it. Otherwise a new session is
        opened, committed on success, rolled back on error and closed.

        Args:
            session: An already open session to join (optional).

        Yields:
            The session to run statements on.

        Raises:
            ConflictError: If a write violates a constraint.
            PersistenceError: If the database fails otherwise.
        """
        if session is not None:
            yield session
            return

        if self._sessions is None:
            self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        session = self._sessions()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ConflictError(str(e.orig)) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(str(e)) from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def journal_mode(self) -> str:
        """Current SQLite journal mode ("wal" for file databases)."""
        with self.engine.connect() as conn:
            return str(conn.execute(text("PRAGMA journal_mode")).scalar())

    def is_wal_mode(self) -> bool:
        return self.journal_mode() == "wal"

    def close(self) -> None:
        """Dispose of the engine; the next use reconnects."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessions = None
