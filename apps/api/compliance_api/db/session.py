"""Database session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from compliance_api.settings import get_settings

settings = get_settings()

if settings.database_url_computed.startswith("sqlite"):
    engine = create_engine(
        settings.database_url_computed,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        settings.database_url_computed,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables (development and tests; production uses alembic)."""
    from compliance_api import models  # noqa: F401
    from compliance_api.db.base import Base

    Base.metadata.create_all(bind=engine)
