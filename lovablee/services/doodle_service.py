# lovablee/services/doodle_service.py
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import httpx
from pydantic import TypeAdapter, ValidationError

from lovablee.config import Settings
from lovablee.errors import AuthenticationError, NetworkError, NoDataError
from lovablee.schemas import RemoteDoodle, SessionRecord

logger = logging.getLogger(__name__)

PUBLIC_STORAGE_PREFIX = "/storage/v1/object/public/storage/"
_doodle_list = TypeAdapter(List[RemoteDoodle])


# A doodle row either embeds its image, points at a storage object, or has neither.
@dataclass(frozen=True)
class InlineContent:
    data: bytes


@dataclass(frozen=True)
class StoragePath:
    path: str


@dataclass(frozen=True)
class Missing:
    pass


DoodleSource = Union[InlineContent, StoragePath, Missing]


@dataclass(frozen=True)
class FetchedDoodle:
    image_data: bytes
    partner_name: str


def decode_inline_content(content: str) -> bytes:
    """Decodes base64 image text, dropping a `data:image/...;base64,` prefix."""
    _, comma, rest = content.partition(",")
    payload = rest if comma else content
    try:
        return base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise NoDataError(f"Inline doodle content is not valid base64: {e}") from e


def doodle_source(doodle: RemoteDoodle) -> DoodleSource:
    if doodle.content is not None:
        return InlineContent(decode_inline_content(doodle.content))
    if doodle.storage_path:
        return StoragePath(doodle.storage_path)
    return Missing()


def public_object_url(supabase_url: str, path: str) -> str:
    return supabase_url.rstrip("/") + PUBLIC_STORAGE_PREFIX + path


class DoodleFetcher:
    """Fetches the newest partner doodle for a stored session."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.settings = settings

    async def fetch_latest_records(self, session: SessionRecord, limit: int = 1) -> List[RemoteDoodle]:
        url = f"{self.settings.supabase_url}/rest/v1/rpc/get_doodles"
        headers = {
            "Content-Type": "application/json",
            "apikey": self.settings.anon_key,
            "Authorization": f"Bearer {session.access_token}",
        }
        try:
            response = await self.client.post(url, json={"p_limit": limit}, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"get_doodles request failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError("get_doodles rejected the access token", status_code=401)
        if not response.is_success:
            raise NetworkError(f"get_doodles returned {response.status_code}", status_code=response.status_code)
        try:
            return _doodle_list.validate_json(response.content)
        except ValidationError as e:
            raise NetworkError(f"Unexpected get_doodles payload: {e}") from e

    async def fetch_object(self, path: str) -> bytes:
        # Public bucket: no auth header
        url = public_object_url(self.settings.supabase_url, path)
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise NetworkError(f"Storage fetch failed for {path}: {e}") from e
        if not response.is_success:
            raise NetworkError(f"Storage returned {response.status_code} for {path}", status_code=response.status_code)
        return response.content

    async def fetch_latest(self, session: SessionRecord) -> Optional[FetchedDoodle]:
        """
        Returns the newest doodle if a partner sent it, None when there is
        nothing new for this user. Only the newest row is considered: when
        the caller sent the last doodle, older partner doodles stay hidden.
        """
        doodles = await self.fetch_latest_records(session, limit=1)
        if not doodles or doodles[0].sender_id == session.user_id:
            return None
        latest = doodles[0]

        source = doodle_source(latest)
        if isinstance(source, InlineContent):
            return FetchedDoodle(image_data=source.data, partner_name=latest.sender_name)
        if isinstance(source, StoragePath):
            # Older doodles were uploaded to storage instead of stored inline
            data = await self.fetch_object(source.path)
            return FetchedDoodle(image_data=data, partner_name=latest.sender_name)
        raise NoDataError(f"Doodle {latest.id} has neither content nor storage path")
