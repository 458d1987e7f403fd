# lovablee/widget/timeline.py
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from lovablee.errors import LovableeError
from lovablee.services.doodle_service import DoodleFetcher
from lovablee.widget.store import SharedStore

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = timedelta(minutes=15)
DEFAULT_PARTNER_NAME = "Partner"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DoodleEntry:
    date: datetime
    doodle_image_data: Optional[bytes] = None
    partner_name: str = DEFAULT_PARTNER_NAME

    @property
    def is_empty(self) -> bool:
        return self.doodle_image_data is None


@dataclass(frozen=True)
class Timeline:
    entries: List[DoodleEntry] = field(default_factory=list)
    refresh_after: Optional[datetime] = None


class DoodleTimelineProvider:
    def __init__(self, store: SharedStore, fetcher: DoodleFetcher, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.fetcher = fetcher
        self.clock = clock

    def empty_entry(self) -> DoodleEntry:
        return DoodleEntry(date=self.clock())

    def placeholder(self) -> DoodleEntry:
        return self.empty_entry()

    def snapshot(self) -> DoodleEntry:
        # Widget gallery preview, never touches the network
        return self.empty_entry()

    async def timeline(self) -> Timeline:
        entry = await self.latest_entry()
        return Timeline(entries=[entry], refresh_after=self.clock() + REFRESH_INTERVAL)

    async def latest_entry(self) -> DoodleEntry:
        try:
            return await self._latest_entry()
        except SQLAlchemyError as e:
            logger.warning("Widget: shared store unavailable: %s", e)
            return self.empty_entry()

    async def _latest_entry(self) -> DoodleEntry:
        cached = await self.store.load_latest_doodle()
        if cached is not None:
            logger.info("Widget: using cached doodle from %s (%d bytes)", cached.partner_name, len(cached.image_data))
            return DoodleEntry(date=self.clock(), doodle_image_data=cached.image_data, partner_name=cached.partner_name)

        session = await self.store.load_session()
        if session is None:
            logger.info("Widget: no cached doodle and no valid session")
            return self.empty_entry()

        try:
            fetched = await self.fetcher.fetch_latest(session)
            if fetched is None:
                return self.empty_entry()
            record = await self.store.save_latest_doodle(fetched.image_data, fetched.partner_name)
        except LovableeError as e:
            logger.warning("Widget: failed to fetch doodle: %s", e)
            return self.empty_entry()

        return DoodleEntry(date=self.clock(), doodle_image_data=record.image_data, partner_name=record.partner_name)
