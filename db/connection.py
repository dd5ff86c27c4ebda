from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .base import Base


def create_db_engine(db_url: str, echo: bool = False) -> Engine:
    """
    Build the process-wide engine.

    Server databases get the pooled settings the services run with in
    production; SQLite (tests, local runs) is opened so that worker threads
    can share it.
    """
    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, echo=echo, **kwargs)

    return create_engine(
        db_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        bind=engine
    )


def init_db(engine: Engine):
    """Create any missing tables"""
    from . import models  # noqa: F401  registers the mapped classes
    Base.metadata.create_all(engine)
