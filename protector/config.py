import os
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

FALLBACK_SECRET = "CHANGE_THIS_TO_A_LONG_SECRET"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    encryption_key: str = ""
    supabase_url: str = ""
    supabase_service_key: str = ""
    status_shared_secret: str = ""
    status_patch_url: str = ""
    heartbeat_timeout: float = 15.0
    sweep_interval: float = 5.0
    sweep_enabled: bool = True
    upstream_timeout: float = 10.0
    max_payload_bytes: int = 4000
    home_url: str = "https://discord.com"
    port: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            encryption_key=os.environ.get("ENCRYPTION_KEY", ""),
            supabase_url=os.environ.get("SUPABASE_URL", "").rstrip("/"),
            supabase_service_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            status_shared_secret=os.environ.get("STATUS_SHARED_SECRET", ""),
            status_patch_url=os.environ.get("STATUS_PATCH_URL", ""),
            heartbeat_timeout=float(os.environ.get("HEARTBEAT_TIMEOUT", 15)),
            sweep_interval=float(os.environ.get("SWEEP_INTERVAL", 5)),
            sweep_enabled=_env_bool("SWEEP_ENABLED", True),
            upstream_timeout=float(os.environ.get("UPSTREAM_TIMEOUT", 10)),
            max_payload_bytes=int(os.environ.get("MAX_PAYLOAD_BYTES", 4000)),
            home_url=os.environ.get("HOME_URL", "https://discord.com"),
            port=int(os.environ.get("PORT", 5000)),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
        settings.check()
        return settings

    def check(self) -> None:
        """Log what is missing; the relay still boots so /health answers."""
        if not self.supabase_url or not self.supabase_service_key:
            logger.error("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
        if not self.encryption_key:
            logger.warning("ENCRYPTION_KEY not set, using the built-in fallback secret")
        if not self.status_shared_secret:
            logger.warning("STATUS_SHARED_SECRET not set, /status-patch will refuse requests")
