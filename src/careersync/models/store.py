"""Key/value rows backing the SQL Status Store."""
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class StoreEntry(SQLModel, table=True):
    """One persisted client-local key. `value` holds JSON text."""

    key: str = Field(primary_key=True)
    value: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
