# lovablee/widget/sync.py
import logging
from datetime import datetime, timedelta, timezone

from lovablee.errors import AuthenticationError, LovableeError
from lovablee.schemas import SessionRecord
from lovablee.services.auth_service import SupabaseAuth
from lovablee.services.doodle_service import DoodleFetcher
from lovablee.widget.store import SharedStore

logger = logging.getLogger(__name__)


class WidgetSyncService:
    """App-side refresh of the widget cache, independent of any screen."""

    def __init__(self, store: SharedStore, fetcher: DoodleFetcher, auth: SupabaseAuth):
        self.store = store
        self.fetcher = fetcher
        self.auth = auth

    async def _store_latest(self, session: SessionRecord) -> bool:
        fetched = await self.fetcher.fetch_latest(session)
        if fetched is None:
            logger.info("WidgetSyncService: no partner doodle found")
            return False
        await self.store.save_latest_doodle(fetched.image_data, fetched.partner_name)
        logger.info("WidgetSyncService: widget updated with doodle from %s", fetched.partner_name)
        return True

    async def _refresh(self, session: SessionRecord) -> SessionRecord:
        tokens = await self.auth.refresh_session(session.refresh_token)
        return await self.store.save_session(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            user_id=session.user_id,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in),
        )

    async def sync_latest_doodle(self) -> bool:
        session = await self.store.load_session(allow_expired=True)
        if session is None:
            logger.info("WidgetSyncService: no session available")
            return False

        try:
            return await self._store_latest(session)
        except AuthenticationError:
            logger.info("WidgetSyncService: session rejected, refreshing once")
        except LovableeError as e:
            logger.error("WidgetSyncService: sync failed: %s", e)
            return False

        try:
            session = await self._refresh(session)
            return await self._store_latest(session)
        except LovableeError as e:
            logger.error("WidgetSyncService: sync after refresh failed: %s", e)
            return False
