from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


def _load_version() -> str:
    version_path = Path(__file__).resolve().parent / "VERSION"
    try:
        return version_path.read_text().strip()
    except FileNotFoundError:
        return "0.1.0"


class Settings(BaseSettings):
    """Application configuration using Pydantic settings."""

    # Database
    DATABASE_URL: str = "sqlite:///./data/ipam.db"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Application
    APP_NAME: str = "Homelab IPAM"
    APP_VERSION: str = _load_version()
    DEBUG: bool = False

    # ── UniFi controller ───────────────────────────────────────────────
    # Environment fallbacks only. Values saved through /api/settings
    # take precedence over these (see services/settings_store.py).
    UNIFI_URL: Optional[str] = None
    UNIFI_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("UNIFI_API_KEY", "UNIFI-X-APIKEY"),
    )
    UNIFI_VERIFY_SSL: bool = False  # controllers ship self-signed certs
    UNIFI_TIMEOUT_SECONDS: float = 10.0
    UNIFI_PAGE_SIZE: int = 100

    # ── Populate ───────────────────────────────────────────────────────
    # Smallest prefix length that may be auto-populated (/20 = 4094 hosts)
    POPULATE_MIN_PREFIX: int = 20

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
