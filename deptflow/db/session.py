"""Engine and session factory for deptflow."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from deptflow.core.config import get_settings
from deptflow.db.base import Base


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine; SQLite connections may be shared across threads."""
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
    return create_engine(database_url, **kwargs)


settings = get_settings()

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def init_db(bind: Engine = engine) -> None:
    """Create all tables that do not exist yet."""
    import deptflow.db.models  # noqa: F401  registers the mappers

    Base.metadata.create_all(bind=bind)
