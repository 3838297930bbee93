from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from stocklens.config import settings

Base = declarative_base()


def build_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite") and "connect_args" not in kwargs:
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, pool_pre_ping=True, **kwargs)


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


def create_tables(bind: Engine) -> None:
    # Import models so they register on Base.metadata
    import stocklens.models  # noqa: F401

    Base.metadata.create_all(bind=bind)
