"""
Database session management using SQLModel.
Holds the engine for the pricing configuration rows and the session dependency.
"""

from pathlib import Path
from typing import Any, Dict, Generator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from coatquote.core.config import settings


def _engine_options(uri: str) -> Dict[str, Any]:
    if uri.startswith("sqlite"):
        db_path = uri[len("sqlite:///"):]
        if db_path and db_path != ":memory:":
            # SQLite creates the file but not its directory
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    echo=settings.DEBUG,
    **_engine_options(settings.SQLALCHEMY_DATABASE_URI),
)


def init_db(bind: Engine = engine) -> None:
    """Create the pricing configuration table if it does not exist yet."""
    from coatquote.models import pricing_config  # noqa: F401  (registers the table)

    SQLModel.metadata.create_all(bind)


def get_session() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session for FastAPI routes.

    Yields:
        Database session instance
    """
    with Session(engine) as session:
        yield session
