# lovablee/auth.py
import time
from typing import Optional

from jose import jwt
from jose.exceptions import JOSEError

from lovablee.config import Settings
from lovablee.errors import ConfigurationError

ALGORITHM = "ES256"


def create_provider_token(settings: Settings, issued_at: Optional[int] = None) -> str:
    """
    Signs an APNs provider token: header {alg, kid, typ}, claims {iss, iat},
    ES256 over a P-256 key. A new token is signed on every call.
    """
    settings.require_apns()
    claims = {"iss": settings.apns_team_id, "iat": int(time.time()) if issued_at is None else issued_at}
    try:
        return jwt.encode(claims, settings.apns_private_key, algorithm=ALGORITHM, headers={"kid": settings.apns_key_id})
    except (JOSEError, ValueError) as e:
        raise ConfigurationError(f"APNS_PRIVATE_KEY is not a usable P-256 key: {e}") from e
