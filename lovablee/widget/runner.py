# lovablee/widget/runner.py
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable

import httpx

from lovablee.config import Settings, get_settings
from lovablee.logging_config import setup_logging
from lovablee.services.doodle_service import DoodleFetcher
from lovablee.widget.renderer import render_entry_png
from lovablee.widget.store import SharedStore
from lovablee.widget.timeline import REFRESH_INTERVAL, DoodleTimelineProvider, Timeline

logger = logging.getLogger(__name__)


async def request_timeline(provider: DoodleTimelineProvider, timeout: float) -> Timeline:
    """Stands in for the platform: awaits the timeline under a fixed timeout."""
    try:
        return await asyncio.wait_for(provider.timeline(), timeout)
    except asyncio.TimeoutError:
        logger.warning("Widget: timeline request timed out after %ss", timeout)
    except Exception:
        logger.exception("Widget: timeline request failed")
    return Timeline(entries=[provider.placeholder()], refresh_after=provider.clock() + REFRESH_INTERVAL)


def write_snapshots(timeline: Timeline, output_dir: Path, families: Iterable[str]) -> Dict[str, Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    entry = timeline.entries[0]
    written = {}
    for family in families:
        path = output_dir / f"doodle_{family}.png"
        path.write_bytes(render_entry_png(entry, family))
        written[family] = path
    return written


async def run_once(provider: DoodleTimelineProvider, settings: Settings) -> Timeline:
    timeline = await request_timeline(provider, settings.widget_timeout_seconds)
    paths = write_snapshots(timeline, Path(settings.widget_output_dir), settings.widget_families)
    logger.info("Widget: rendered %s, next refresh after %s", ", ".join(str(p) for p in paths.values()), timeline.refresh_after)
    return timeline


async def run_forever(settings: Settings):
    store = SharedStore.open(settings.store_path(), settings.app_group)
    async with httpx.AsyncClient() as client:
        provider = DoodleTimelineProvider(store, DoodleFetcher(client, settings))
        try:
            while True:
                timeline = await run_once(provider, settings)
                refresh_after = timeline.refresh_after or datetime.now(timezone.utc) + REFRESH_INTERVAL
                delay = max(timedelta(0), refresh_after - datetime.now(timezone.utc))
                await asyncio.sleep(delay.total_seconds())
        finally:
            await store.close()


def main():
    settings = get_settings()
    setup_logging(settings.log_level)
    try:
        asyncio.run(run_forever(settings))
    except KeyboardInterrupt:
        logger.info("Widget: stopped")


if __name__ == "__main__":
    main()
