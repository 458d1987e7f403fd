# lovablee/config.py
import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

from lovablee.errors import ConfigurationError

load_dotenv()

APNS_SANDBOX_HOST = "https://api.sandbox.push.apple.com"
DEFAULT_APP_GROUP = "group.com.anthony.lovablee"


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value.strip()
    return default


@dataclass(frozen=True)
class Settings:
    supabase_url: str = ""
    service_role_key: str = ""
    anon_key: str = ""
    database_url: str = "sqlite+aiosqlite:///./lovablee.db"
    apns_key_id: str = ""
    apns_team_id: str = ""
    apns_private_key: str = ""
    apns_bundle_id: str = ""
    apns_host: str = APNS_SANDBOX_HOST
    app_group: str = DEFAULT_APP_GROUP
    widget_store_path: str = ""
    widget_output_dir: str = "widget-output"
    widget_families: Tuple[str, ...] = field(default=("small", "medium"))
    widget_timeout_seconds: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        families = tuple(
            f.strip() for f in _env("WIDGET_FAMILIES", default="small,medium").split(",") if f.strip()
        )
        return cls(
            supabase_url=_env("APP_SUPABASE_URL", "SUPABASE_URL").rstrip("/"),
            service_role_key=_env("APP_SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE_KEY"),
            anon_key=_env("APP_SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY"),
            database_url=_env("DATABASE_URL", default=cls.database_url),
            apns_key_id=_env("APNS_KEY_ID"),
            apns_team_id=_env("APNS_TEAM_ID"),
            # Secrets managers usually hand the PEM over with escaped newlines
            apns_private_key=_env("APNS_PRIVATE_KEY").replace("\\n", "\n"),
            apns_bundle_id=_env("APNS_BUNDLE_ID"),
            apns_host=_env("APNS_HOST", default=APNS_SANDBOX_HOST).rstrip("/"),
            app_group=_env("WIDGET_APP_GROUP", default=DEFAULT_APP_GROUP),
            widget_store_path=_env("WIDGET_STORE_PATH"),
            widget_output_dir=_env("WIDGET_OUTPUT_DIR", default="widget-output"),
            widget_families=families or ("small",),
            widget_timeout_seconds=float(_env("WIDGET_TIMEOUT_SECONDS", default="30")),
            log_level=_env("LOG_LEVEL", default="INFO").upper(),
        )

    @property
    def has_backend(self) -> bool:
        return bool(self.supabase_url and self.service_role_key)

    @property
    def has_apns(self) -> bool:
        return bool(self.apns_key_id and self.apns_team_id and self.apns_private_key and self.apns_bundle_id)

    def require_backend(self) -> None:
        if not self.has_backend:
            raise ConfigurationError("Missing Supabase env configuration")

    def require_apns(self) -> None:
        if not self.has_apns:
            raise ConfigurationError("APNs environment variables are not configured.")

    def store_path(self) -> str:
        """File backing the app-group shared store."""
        return self.widget_store_path or os.path.join(os.path.expanduser("~"), ".lovablee", f"{self.app_group}.db")


def get_settings() -> Settings:
    return Settings.from_env()
