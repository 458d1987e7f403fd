# lovablee/schemas.py
import base64
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from pydantic.alias_generators import to_camel


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# --- Records shared between the app and the widget ---
class SharedRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionRecord(SharedRecord):
    access_token: str
    refresh_token: str = ""
    user_id: str
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _expires_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or datetime.now(timezone.utc))


class DoodleCacheRecord(SharedRecord):
    image_data: bytes
    partner_name: str
    timestamp: datetime

    @field_validator("image_data", mode="before")
    @classmethod
    def _decode_image(cls, value: Any) -> Any:
        if isinstance(value, str):
            return base64.b64decode(value, validate=True)
        return value

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_serializer("image_data")
    def _encode_image(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")


# --- Backend rows ---
class RemoteDoodle(BaseModel):
    """A row returned by the `get_doodles` RPC, newest first."""

    id: str
    sender_id: str
    sender_name: str
    storage_path: Optional[str] = None
    content: Optional[str] = None
    created_at: datetime

    @field_validator("id", "sender_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if value is not None else value


class RefreshedTokens(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int


# --- Function payloads ---
class PushRequest(BaseModel):
    targetUserId: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
