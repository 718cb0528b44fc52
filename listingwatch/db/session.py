"""Database session management."""
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from listingwatch.core.config import settings
from listingwatch.db.db_url import resolve_db_url
from listingwatch.models import Base

resolved_db_url = resolve_db_url(settings.database_url)

_connect_args = {"check_same_thread": False} if resolved_db_url.startswith("sqlite") else {}

engine = create_engine(
    resolved_db_url,
    pool_pre_ping=True,
    echo=False,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI routes to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_connection() -> bool:
    """Check if database connection is available."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


# Development only; migrations own the schema in production
def init_db() -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)
