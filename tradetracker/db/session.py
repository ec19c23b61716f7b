# tradetracker/db/session.py
"""Database session factory and initialization."""

import os
from pathlib import Path
from typing import Dict, Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

DEFAULT_DATABASE_URL = "sqlite:///./tradetracker.db"

_engines: Dict[str, Engine] = {}


def database_url() -> str:
    """Database URL from the environment, defaulting to a local SQLite file."""
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_engine(url: Optional[str] = None) -> Engine:
    url = url or database_url()
    engine = _engines.get(url)
    if engine is None:
        if url.startswith("sqlite:///") and ":memory:" not in url:
            db_path = url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            url,
            connect_args={"check_same_thread": False} if "sqlite" in url else {},
            echo=False,
        )
        _engines[url] = engine
    return engine


def create_db_and_tables(engine: Engine) -> None:
    """Create all tables if they don't exist."""
    SQLModel.metadata.create_all(engine)


def get_session(url: Optional[str] = None) -> Session:
    """Get a new database session, creating tables on first use."""
    engine = get_engine(url)
    create_db_and_tables(engine)
    return Session(engine)
