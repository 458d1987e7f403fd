# lovablee/services/auth_service.py
import logging
from typing import Any, Dict

import httpx
from pydantic import ValidationError

from lovablee.config import Settings
from lovablee.errors import AuthenticationError, NetworkError
from lovablee.schemas import RefreshedTokens

logger = logging.getLogger(__name__)


def bearer_token(authorization: str) -> str:
    """Access token from an `Authorization: Bearer ...` header value."""
    return authorization.replace("Bearer ", "", 1).strip()


class SupabaseAuth:
    """Thin client over the Supabase GoTrue endpoints used by lovablee."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.settings = settings

    def _url(self, path: str) -> str:
        return f"{self.settings.supabase_url}/auth/v1/{path}"

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        headers = {"apikey": self.settings.service_role_key, "Authorization": f"Bearer {access_token}"}
        try:
            response = await self.client.get(self._url("user"), headers=headers)
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Could not resolve user: {e}") from e
        if not response.is_success:
            raise AuthenticationError(f"User lookup returned {response.status_code}", status_code=response.status_code)
        try:
            user = response.json()
        except ValueError as e:
            raise AuthenticationError(f"User lookup returned invalid JSON: {e}") from e
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthenticationError("User lookup returned no user")
        return user

    async def delete_user(self, user_id: str):
        key = self.settings.service_role_key
        headers = {"apikey": key, "Authorization": f"Bearer {key}"}
        try:
            response = await self.client.delete(self._url(f"admin/users/{user_id}"), headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"Delete request failed: {e}") from e
        if not response.is_success:
            raise NetworkError(f"Delete returned {response.status_code}: {response.text}", status_code=response.status_code)

    async def refresh_session(self, refresh_token: str) -> RefreshedTokens:
        if not refresh_token:
            raise AuthenticationError("Refresh token is empty")
        anon = self.settings.anon_key
        headers = {"Content-Type": "application/json", "apikey": anon, "Authorization": f"Bearer {anon}"}
        try:
            response = await self.client.post(
                self._url("token"),
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Refresh request failed: {e}") from e
        if not response.is_success:
            logger.error("Session refresh failed with status %s: %s", response.status_code, response.text)
            raise AuthenticationError("Session refresh rejected", status_code=response.status_code)
        try:
            return RefreshedTokens.model_validate_json(response.content)
        except ValidationError as e:
            raise NetworkError(f"Unexpected refresh payload: {e}") from e
