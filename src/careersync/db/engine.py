"""SQLModel engine singleton for the client-local store."""
from typing import Optional

from sqlmodel import SQLModel, create_engine

from careersync.config import get_settings

_engine = None


def get_engine(database_url: Optional[str] = None):
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        url = database_url or get_settings().store_database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, connect_args=connect_args)
        # Import models so metadata is populated before create_all
        from careersync.models.store import StoreEntry  # noqa
        SQLModel.metadata.create_all(_engine)
    return _engine
