# lovablee/errors.py
from typing import Optional


class LovableeError(Exception):
    """Base class for every error raised by lovablee."""


class ConfigurationError(LovableeError):
    """A required environment value is missing."""


class NetworkError(LovableeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(NetworkError):
    """The backend rejected the access token (HTTP 401)."""


class NoDataError(LovableeError):
    """A doodle record carried no usable image."""


class ImageNormalizationError(LovableeError):
    pass


class PushDeliveryError(LovableeError):
    pass
