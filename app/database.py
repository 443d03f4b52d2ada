import logging

from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings

# Load .env file (DATABASE_URL lives there)
load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().DATABASE_URL

# SQLite needs cross-thread connections for the favorite lookup pool
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# SQLAlchemy engine & session factory
engine = create_engine(
    DATABASE_URL,
    future=True,
    echo=False,  # set True if you want to see SQL in terminal
    pool_pre_ping=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

Base = declarative_base()


def init_db() -> None:
    """
    Import models and create tables if they don't exist.
    Alembic is the real migration tool, but this keeps local dev sane.
    """
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def open_session(factory=SessionLocal) -> Session:
    """
    Open a session and make sure the store actually answers.

    Raises StoreUnavailableError before the caller gets a chance to read
    or write anything.
    """
    from app.services.lifecycle.errors import StoreUnavailableError  # imported here to avoid circular imports

    try:
        db: Session = factory()
    except SQLAlchemyError as e:
        raise StoreUnavailableError("Failed to initialize the listing store", details=str(e)) from e

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.close()
        logger.error(f"Listing store ping failed: {e}")
        raise StoreUnavailableError("Failed to initialize the listing store", details=str(e)) from e
    return db


def get_db():
    """
    FastAPI dependency that gives you a DB session and cleans it up after.
    """
    db = open_session()
    try:
        yield db
    finally:
        db.close()
