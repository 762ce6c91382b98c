from contextlib import contextmanager
from typing import Callable, TypeVar
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from .config import settings
from .exceptions import BranchStockError, ConflictError, StoreUnavailableError, WriteConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Execution option read by the SQLite "begin" hook
SQLITE_BEGIN_OPTION = "sqlite_begin"

# PostgreSQL serialization_failure and deadlock_detected
RETRYABLE_PGCODES = ("40001", "40P01")


def create_db_engine(url: str, **kwargs):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(
        url,
        connect_args=connect_args,
        pool_pre_ping=True,
        echo=settings.DEBUG,
        **kwargs
    )

    if url.startswith("sqlite"):
        # Let SQLAlchemy own BEGIN/SAVEPOINT instead of pysqlite, enable WAL and FKs
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        @event.listens_for(engine, "begin")
        def do_begin(conn):
            conn.exec_driver_sql(conn.get_execution_options().get(SQLITE_BEGIN_OPTION, "BEGIN"))

    return engine


engine = create_db_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_write_conflict(error: DBAPIError) -> bool:
    """Lost a lock or snapshot race against another writer, as opposed to a broken store"""
    orig = error.orig
    if getattr(orig, "pgcode", None) in RETRYABLE_PGCODES:
        return True
    # sqlite3: SQLITE_BUSY, SQLITE_BUSY_SNAPSHOT, ...
    if (getattr(orig, "sqlite_errorname", None) or "").startswith("SQLITE_BUSY"):
        return True
    return "database is locked" in str(orig)


@contextmanager
def atomic(db: Session):
    """
    Commit everything done inside the block as one unit, or nothing.

    Store errors are rolled back and re-raised as service errors so callers
    never see driver-specific exceptions.
    """
    try:
        yield db
        db.commit()
    except BranchStockError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity violation, rolled back: {e.orig}")
        raise ConflictError("Conflicting concurrent update, please retry") from e
    except DBAPIError as e:
        db.rollback()
        if is_write_conflict(e):
            logger.warning(f"Write conflict with a concurrent transaction, rolled back: {e.orig}")
            raise WriteConflictError("Conflicting concurrent update, please retry") from e
        logger.error(f"Database error, rolled back: {e}")
        raise StoreUnavailableError("Data store unavailable, please retry") from e
    except Exception:
        db.rollback()
        raise


def run_atomic(db: Session, unit: Callable[[Session], T], attempts: int = 3) -> T:
    """
    Run ``unit(db)`` inside ``atomic`` and return its result.

    A WriteConflictError rolls the unit back and runs it again from a fresh
    snapshot, so it re-reads what the winning transaction committed. Retries
    start with BEGIN IMMEDIATE on SQLite (ignored elsewhere), which waits for
    the other writer instead of racing it again.
    """
    for attempt in range(1, attempts + 1):
        if attempt > 1:
            db.connection(execution_options={SQLITE_BEGIN_OPTION: "BEGIN IMMEDIATE"})
        try:
            with atomic(db):
                return unit(db)
        except WriteConflictError:
            if attempt == attempts:
                raise
            logger.info(f"Write conflict, re-running unit (attempt {attempt + 1}/{attempts})")
