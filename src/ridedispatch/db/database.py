"""Database engine initialization and connection management."""

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from .schema import Base, ServiceMetadata

SCHEMA_VERSION = "1.0.0"


def init_database(
    url: str,
    busy_timeout_seconds: float = 30.0,
    echo: bool = False,
) -> sessionmaker[Any]:
    """Initialize database and return session factory.

    For SQLite the parent directory of the database file is created, and
    connections wait up to ``busy_timeout_seconds`` for a competing writer
    to release its lock.
    """
    connect_args: dict[str, Any] = {}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        connect_args = {"check_same_thread": False, "timeout": busy_timeout_seconds}

    engine = create_engine(url, echo=echo, connect_args=connect_args)
    Base.metadata.create_all(engine)

    session_maker = sessionmaker(bind=engine, expire_on_commit=False)

    with session_maker() as session:
        schema_version = session.get(ServiceMetadata, "schema_version")
        if not schema_version:
            session.add(ServiceMetadata(key="schema_version", value=SCHEMA_VERSION))
            session.commit()

    return session_maker
