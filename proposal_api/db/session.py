from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..config import settings


def _engine_kwargs(database_url: str) -> dict:
    kwargs: dict = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        # background ingestion opens sessions from worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db() -> None:
    from ..models.base import Base
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
