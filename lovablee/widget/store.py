# lovablee/widget/store.py
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from lovablee.database import session_factory
from lovablee.models import SharedEntry
from lovablee.schemas import DoodleCacheRecord, SessionRecord
from lovablee.widget.images import normalize_for_widget

logger = logging.getLogger(__name__)

SESSION_KEY = "widget_session_data"
DOODLE_KEY = "widget_latest_doodle"

RecordT = TypeVar("RecordT", bound=BaseModel)


class SharedStore:
    """
    Key-value store living in the app group, read by the widget and written
    by the app. Every key is written in its own transaction; the last
    writer wins and nothing spans keys.
    """

    def __init__(self, engine: AsyncEngine, namespace: str):
        self.engine = engine
        self.namespace = namespace
        self._sessions = session_factory(engine)
        self._ready = False

    @classmethod
    def open(cls, path: str, namespace: str) -> "SharedStore":
        Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(f"sqlite+aiosqlite:///{Path(path).expanduser()}")
        return cls(engine, namespace)

    def _key(self, key: str) -> str:
        return f"{self.namespace}.{key}"

    async def _ensure_table(self):
        if self._ready:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all, tables=[SharedEntry.__table__])
        self._ready = True

    async def put(self, key: str, value: Any):
        await self._ensure_table()
        async with self._sessions() as session:
            await session.merge(
                SharedEntry(key=self._key(key), value=json.dumps(value), updated_at=datetime.now(timezone.utc))
            )
            await session.commit()

    async def get(self, key: str) -> Optional[Any]:
        await self._ensure_table()
        async with self._sessions() as session:
            entry = await session.get(SharedEntry, self._key(key))
            if entry is None:
                return None
            return json.loads(entry.value)

    async def clear(self, key: str):
        await self._ensure_table()
        async with self._sessions() as session:
            entry = await session.get(SharedEntry, self._key(key))
            if entry is not None:
                await session.delete(entry)
                await session.commit()

    async def close(self):
        await self.engine.dispose()

    # --- Session ---
    async def save_session(self, access_token: str, user_id: str, expires_at: datetime, refresh_token: str = "") -> SessionRecord:
        record = SessionRecord(
            access_token=access_token, refresh_token=refresh_token, user_id=user_id, expires_at=expires_at
        )
        await self.put(SESSION_KEY, record.model_dump(mode="json", by_alias=True))
        logger.info("Widget session saved (userId: %s...)", user_id[:8])
        return record

    async def _load_record(self, key: str, model: Type[RecordT]) -> Optional[RecordT]:
        # Undecodable rows read as absent
        try:
            raw = await self.get(key)
            if raw is None:
                return None
            return model.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable %s: %s", self._key(key), e)
            return None

    async def load_session(self, allow_expired: bool = False) -> Optional[SessionRecord]:
        session = await self._load_record(SESSION_KEY, SessionRecord)
        if session is None:
            return None
        if session.is_expired() and not allow_expired:
            logger.info("Widget session for %s... expired at %s", session.user_id[:8], session.expires_at)
            return None
        return session

    async def clear_session(self):
        await self.clear(SESSION_KEY)

    # --- Latest doodle ---
    async def save_latest_doodle(self, image_data: bytes, partner_name: str) -> DoodleCacheRecord:
        # Raises ImageNormalizationError before anything is written
        resized = normalize_for_widget(image_data)
        record = DoodleCacheRecord(image_data=resized, partner_name=partner_name, timestamp=datetime.now(timezone.utc))
        await self.put(DOODLE_KEY, record.model_dump(mode="json", by_alias=True))
        logger.info("Saved doodle from %s for widget (%d bytes)", partner_name, len(resized))
        return record

    async def load_latest_doodle(self) -> Optional[DoodleCacheRecord]:
        return await self._load_record(DOODLE_KEY, DoodleCacheRecord)

    async def clear_doodle_data(self):
        await self.clear(DOODLE_KEY)
