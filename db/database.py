"""
Database engine, session management, and initialization.

SQLite is the default store. Foreign keys are switched on per connection so
snapshot / competitor / pattern-override rows cannot outlive their parents.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional
import logging

from config.settings import settings
from db.models import Base

logger = logging.getLogger(__name__)


def make_engine(url: str, **kwargs) -> Engine:
    """Create an engine; SQLite URLs get thread-sharing and FK enforcement."""
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    new_engine = create_engine(url, echo=settings.DEBUG, **kwargs)

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Optional[Engine] = None, seed: bool = False) -> Dict[str, Any]:
    """
    Create all tables; optionally seed the rule and intent registries.
    Returns the seed reports (empty when not seeding).
    """
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"✅ Database initialized ({bind.url.get_backend_name()}).")
    if not seed:
        return {}

    from services.seeds import seed_all

    session = sessionmaker(autocommit=False, autoflush=False, bind=bind)()
    try:
        reports = seed_all(session)
    finally:
        session.close()
    logger.info(f"Registries seeded: { {k: r.to_dict() for k, r in reports.items()} }")
    return reports


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """Context manager for database sessions."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db_dependency() -> Generator[Session, None, None]:
    """FastAPI dependency injector."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
