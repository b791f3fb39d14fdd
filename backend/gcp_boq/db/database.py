"""
Database connection and session management.
"""
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from gcp_boq.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


sync_engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

SyncSessionLocal = sessionmaker(
    sync_engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


def get_sync_session() -> Generator[Session, None, None]:
    """
    Yield a database session, committing on success.

    Usage:
        @router.get("/endpoint")
        def endpoint(db: Session = Depends(get_sync_session)):
            ...
    """
    session = SyncSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Initialize database tables."""
    # Registers the mapped classes on Base.metadata
    from gcp_boq.models import models  # noqa: F401

    Base.metadata.create_all(sync_engine)


def close_db() -> None:
    """Close database connections."""
    sync_engine.dispose()
