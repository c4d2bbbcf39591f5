import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, Tuple

BASE_DIR = Path(__file__).resolve().parent.parent

DEV_SIGNING_SECRET = "local-secret"


def detect_platform() -> Literal["railway", "digitalocean", "fly", "generic"]:
    """Auto-detect deployment platform based on environment variables."""
    if os.getenv("RAILWAY_ENVIRONMENT_ID"):
        return "railway"
    if os.getenv("DD_ENV"):  # DigitalOcean App Platform
        return "digitalocean"
    if os.getenv("FLY_APP_NAME"):
        return "fly"
    return "generic"


def get_port() -> int:
    """Get port from environment."""
    return int(os.getenv("PORT", "5000"))


def get_host() -> str:
    """Get host binding address."""
    return os.getenv("HOST", "0.0.0.0")


def get_signing_secret() -> str:
    """Resolve the download-URL signing secret, most specific variable first."""
    return (
        os.getenv("FILE_SIGNING_SECRET")
        or os.getenv("SUPABASE_FILE_SIGNING_SECRET")
        or os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        or DEV_SIGNING_SECRET
    )


def get_cors_origins() -> Tuple[str, ...]:
    raw = os.getenv("CORS_ORIGIN", "*")
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return None
    return float(value)


def is_production() -> bool:
    """Check if running in production."""
    platform = detect_platform()
    return platform != "generic"


@dataclass(frozen=True)
class Config:
    """
    Process-wide configuration.

    Built once at startup (``Config.from_env()``) and handed to the app factory,
    which passes it on to the signer and the plan catalog.
    """

    signing_secret: str = DEV_SIGNING_SECRET
    default_signed_url_ttl_seconds: int = 60 * 30
    upload_dir: Path = BASE_DIR / "uploads"

    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    provider_timeout_seconds: Optional[float] = None

    public_base_url: Optional[str] = None
    cors_origins: Tuple[str, ...] = ("*",)

    platform: str = "generic"
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"
    version: str = "0.1.0"

    admin_roles: Tuple[str, ...] = field(default=("admin",))

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            signing_secret=get_signing_secret(),
            default_signed_url_ttl_seconds=int(
                os.getenv("FILE_SIGNED_URL_TTL_SECONDS", str(60 * 30))
            ),
            upload_dir=Path(os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads"))),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None,
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY") or None,
            provider_timeout_seconds=_optional_float("PROVIDER_TIMEOUT_SECONDS"),
            public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
            cors_origins=get_cors_origins(),
            platform=detect_platform(),
            host=get_host(),
            port=get_port(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def has_provider_credentials(self) -> bool:
        """Server-side provider access (service role) is configured."""
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def has_identity_provider(self) -> bool:
        """Browser-side provider access (anon key) is configured."""
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def uses_dev_signing_secret(self) -> bool:
        return self.signing_secret == DEV_SIGNING_SECRET
