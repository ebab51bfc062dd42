from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.orm.util import identity_key
from sqlalchemy.pool import StaticPool
from ..core.config import settings
import logging

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    """
    Create the SQLAlchemy engine for a database URL.

    SQLite needs cross-thread access for FastAPI's threadpool, and in-memory
    SQLite must share one connection or every session sees an empty database.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        logger.info(f"Connecting to database: sqlite ({url.database or 'memory'})")
        return create_engine(url, **kwargs)

    sanitized = f"{url.drivername}://{url.username}:****@{url.host}:{url.port}/{url.database}"
    logger.info(f"Connecting to database: {sanitized}")
    return create_engine(url, pool_pre_ping=True)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Get a database session for one request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Generator[Session, None, None]:
    """
    Run a unit of work: commit everything on success, roll back everything on failure.

    Used wherever two rows (report status + owner points) must change together.
    """
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {e}")
        raise


def expire_cached(db: Session, model, ident, attributes) -> None:
    """
    Expire columns of an already-loaded row after a bulk UPDATE bypassed the ORM,
    so the next attribute access reloads them from the database.
    """
    obj = db.identity_map.get(identity_key(model, ident))
    if obj is not None:
        db.expire(obj, attributes)
