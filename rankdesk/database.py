"""Database connection and session management."""

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from loguru import logger

from .config import get_settings, PROJECT_ROOT


Base = declarative_base()


def get_engine(db_url: str = None):
    """Create database engine."""
    db_url = db_url or get_settings().database_url

    # Handle relative SQLite paths
    if db_url.startswith("sqlite:///") and not db_url.startswith("sqlite:////"):
        db_path = db_url.replace("sqlite:///", "")
        if db_path and db_path != ":memory:":
            full_path = PROJECT_ROOT / db_path
            full_path.parent.mkdir(parents=True, exist_ok=True)
            db_url = f"sqlite:///{full_path}"

    return create_engine(
        db_url,
        echo=False,
        connect_args={"check_same_thread": False} if "sqlite" in db_url else {}
    )


def get_session_factory(engine=None):
    """Create session factory."""
    engine = engine or get_engine()
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_session() -> Session:
    """Context manager for database sessions."""
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine=None):
    """Initialize the database (create all tables)."""
    # Import models to register them with Base
    from . import models  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized at: {}", engine.url)
    return engine


def reset_db(engine=None):
    """Reset the database (drop and recreate all tables)."""
    from . import models  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info("Database reset complete.")
    return engine
