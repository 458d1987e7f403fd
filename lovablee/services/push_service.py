# lovablee/services/push_service.py
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from lovablee.auth import create_provider_token
from lovablee.config import Settings
from lovablee.errors import PushDeliveryError
from lovablee.logging_config import short_token
from lovablee.models import User

logger = logging.getLogger(__name__)


async def fetch_device_tokens(session: AsyncSession, user_id: str) -> List[str]:
    statement = select(User.apns_token).where(User.id == user_id, col(User.apns_token).is_not(None))
    result = await session.execute(statement)
    return [token for token in result.scalars().all() if token]


def unique_tokens(tokens: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(t for t in tokens if t))


def build_notification(title: str, body: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    notification: Dict[str, Any] = {
        "aps": {
            "alert": {"title": title, "body": body},
            "sound": "default",
            "content-available": 1,
        },
    }
    if payload:
        # Extra keys sit next to "aps"; a caller-supplied "aps" replaces ours
        notification.update(payload)
    return notification


async def send_apns_push(
    client: httpx.AsyncClient, settings: Settings, provider_token: str, device_token: str, notification: Dict[str, Any]
) -> int:
    logger.info("send-push: hitting APNs for token %s", short_token(device_token))
    try:
        response = await client.post(
            f"{settings.apns_host}/3/device/{device_token}",
            json=notification,
            headers={
                "authorization": f"bearer {provider_token}",
                "apns-topic": settings.apns_bundle_id,
                "content-type": "application/json",
            },
        )
    except httpx.HTTPError as e:
        raise PushDeliveryError(f"APNs request failed: {e}") from e
    logger.info("send-push: APNs response %s %s", response.status_code, response.text)
    if not response.is_success:
        logger.error("send-push: APNs rejected %s (%s): %s", short_token(device_token), response.status_code, response.text)
    return response.status_code


async def dispatch_push(
    client: httpx.AsyncClient,
    settings: Settings,
    tokens: Iterable[str],
    title: str,
    body: str,
    payload: Optional[Dict[str, Any]] = None,
) -> Dict[str, int]:
    """Sends one notification per distinct token; 0 marks a token whose send raised."""
    provider_token = create_provider_token(settings)
    notification = build_notification(title, body, payload)
    results: Dict[str, int] = {}
    for token in unique_tokens(tokens):
        try:
            results[token] = await send_apns_push(client, settings, provider_token, token, notification)
        except PushDeliveryError as e:
            logger.error("APNs send error for %s: %s", short_token(token), e)
            results[token] = 0
    return results
