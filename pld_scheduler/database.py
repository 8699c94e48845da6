import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base

from pld_scheduler.core.config import settings
from pld_scheduler.core.exceptions import BackingStoreUnavailableError

logger = logging.getLogger(__name__)

# Support both PostgreSQL and SQLite via centralized settings
DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)
else:
    # SQLite configuration for local development/testing
    engine = create_engine(
        DATABASE_URL, connect_args={"check_same_thread": False}
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    from pld_scheduler.models import member, leave_request, allotment, audit_log  # noqa: F401
    Base.metadata.create_all(bind=engine)


@contextmanager
def backing_store_errors():
    """
    Translates driver/connection failures into BackingStoreUnavailableError.
    Integrity violations pass through untouched so callers can map them to domain errors.
    """
    try:
        yield
    except IntegrityError:
        raise
    except (OperationalError, DBAPIError) as e:
        logger.error(f"Backing store failure: {e}", exc_info=True)
        raise BackingStoreUnavailableError() from e
