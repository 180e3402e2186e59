"""Base database configuration and mixins."""

import uuid
from datetime import datetime, timezone
from typing import Generator

from sqlalchemy import Column, Uuid, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, declared_attr, sessionmaker

from brandcrawl.config import get_settings

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    # SQLite (tests, local runs) is shared between threads by the TestClient and the tick.
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {"pool_size": 5, "max_overflow": 10, "pool_timeout": 30}


engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower() + "s"


class UUIDMixin:
    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Factory handed to the tick, which opens one session per claimed job."""
    return SessionLocal
