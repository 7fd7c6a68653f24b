"""Worker database engine.

Each task run holds one session (see ``tasks.DatabaseTask``).
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from compliance_worker.settings import get_settings


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=1800)


engine = build_engine(get_settings().database_url_computed)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def new_session() -> Session:
    return SessionLocal()
