# lovablee/models.py
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    display_name: Optional[str] = Field(default=None)
    apns_token: Optional[str] = Field(default=None, max_length=512, index=True)


class SharedEntry(SQLModel, table=True):
    """One key of the app-group store shared by the app and the widget."""

    __tablename__ = "shared_entries"

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
