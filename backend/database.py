"""
Database engine and session management for listings and pricing tiers.

SQLite in development and tests, PostgreSQL in production.
"""
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import get_settings

logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Some providers hand out postgres:// URLs, SQLAlchemy wants postgresql://."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def create_db_engine(url: str, echo: bool = False) -> Engine:
    url = normalize_database_url(url)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    # Sessions are used from FastAPI's threadpool
    sqlite_engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})

    @event.listens_for(sqlite_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        # Tiers and audit rows reference their listing
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


settings = get_settings()
DATABASE_URL = normalize_database_url(settings.database_url)
engine = create_db_engine(DATABASE_URL, echo=settings.database_echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create the listing, tier and audit tables if they do not exist."""
    from db_models import Base
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database ready ({engine.url.get_backend_name()})")
