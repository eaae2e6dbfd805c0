"""Database configuration and session management for the portfolio."""

import os
from collections.abc import Generator

import sqlmodel

from . import settings

_connect_args = (
    {'check_same_thread': False}
    if settings.DATABASE_URL.startswith('sqlite')
    else {}
)

engine = sqlmodel.create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args,
    echo=settings.DATABASE_ECHO,
)


def create_db_and_tables() -> None:
    """Create database tables."""
    # Import models to ensure they're registered with SQLModel
    from . import models  # noqa: F401 # pyright: ignore[reportUnusedImport]

    if settings.DATABASE_URL.startswith('sqlite:///'):
        os.makedirs(settings.DATA_DIR, exist_ok=True)
    sqlmodel.SQLModel.metadata.create_all(engine)


def get_session() -> Generator[sqlmodel.Session, None, None]:
    """Get database session."""
    with sqlmodel.Session(engine) as session:
        yield session


def get_admin_session() -> Generator[sqlmodel.Session, None, None]:
    """Session for the admin router; overridden separately in tests."""
    with sqlmodel.Session(engine) as session:
        yield session
