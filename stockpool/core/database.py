import functools
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .config import settings
from .exceptions import ConcurrentUpdate

logger = logging.getLogger(__name__)

# Create engine
connect_args = {}
if "sqlite" in settings.DATABASE_URL:
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,
    echo=settings.DEBUG
)

# Enable WAL Mode for SQLite Concurrency
if "sqlite" in settings.DATABASE_URL:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

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


@contextmanager
def atomic(db: Session):
    """Run a unit of work: commit when the block finishes, roll back on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


# deadlock_detected, serialization_failure
RETRYABLE_PGCODES = ("40P01", "40001")


def is_lock_conflict(error: OperationalError) -> bool:
    return getattr(error.orig, "pgcode", None) in RETRYABLE_PGCODES


def retry_on_conflict(func):
    """
    Re-run a mutating service call when another request changed the same
    variant row first (optimistic version check failed) or the database
    aborted it as a deadlock victim.
    """
    @functools.wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        attempts = max(1, settings.STOCK_CONFLICT_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                return func(db, *args, **kwargs)
            except StaleDataError as e:
                db.rollback()
                logger.warning(f"{func.__name__}: stale variant row (attempt {attempt}/{attempts}): {e}")
            except OperationalError as e:
                if not is_lock_conflict(e):
                    raise
                db.rollback()
                logger.warning(f"{func.__name__}: lock conflict (attempt {attempt}/{attempts}): {e.orig}")
        raise ConcurrentUpdate(
            f"Stock changed concurrently, gave up after {attempts} attempts",
            operation=func.__name__,
            attempts=attempts,
        )
    return wrapper
