"""
Database Configuration
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator

from obraledger.core.config import settings

engine = create_engine(
    settings.database_url,
    # Sync sessions are handed to async routes, so SQLite must accept other threads
    connect_args={"check_same_thread": False} if settings.is_sqlite else {},
    echo=settings.SQL_ECHO
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    One session per request. Routes commit explicitly; anything left
    uncommitted is rolled back when the session closes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create missing tables"""
    from obraledger import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
