from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlmodel import SQLModel

from dashcache.config.settings import settings
# registers the table on SQLModel.metadata
from dashcache.models.session_snapshot import SessionSnapshot  # noqa: F401


def create_session_engine(url: Optional[str] = None) -> Engine:
    """Create the engine for the local session snapshot store and its table."""
    engine = create_engine(
        url or settings.SESSION_DB_URL,
        pool_pre_ping=True,
        echo=False
    )
    SQLModel.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@contextmanager
def get_db(factory: sessionmaker) -> Iterator[Session]:
    """
    yields a new database session and always closes it.
    """
    db = factory()
    try:
        yield db
    finally:
        db.close()
