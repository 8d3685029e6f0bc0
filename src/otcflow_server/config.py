"""Server configuration - reads settings from environment variables.

All settings have sensible defaults for local development.  When
``OTCFLOW_RULES_BASE_URL`` is set, packs are loaded through the signed
manifest; otherwise they are read from a local directory without trust
checks.
"""

import os
from dataclasses import dataclass, field

from otcflow_rules.constants import MANIFEST_PATH, PUBLIC_KEY_PATH, SIGNATURE_PATH


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS - comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Signed rule source (None → local pack directory)
    rules_base_url: str | None = None
    manifest_path: str = MANIFEST_PATH
    signature_path: str = SIGNATURE_PATH
    public_key_path: str = PUBLIC_KEY_PATH

    # Local pack directory (None → rules/packs/ from repo root)
    pack_dir: str | None = None

    # Logging
    log_level: str = "INFO"

    # Admin API key - shared secret for pack reloads (None = reload is open)
    admin_api_key: str | None = None


def load_settings() -> ServerSettings:
    """Build settings from ``OTCFLOW_*`` environment variables."""
    raw_origins = os.getenv("OTCFLOW_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("OTCFLOW_HOST", "0.0.0.0"),
        port=int(os.getenv("OTCFLOW_PORT", "8080")),
        cors_origins=origins,
        rules_base_url=os.getenv("OTCFLOW_RULES_BASE_URL") or None,
        manifest_path=os.getenv("OTCFLOW_MANIFEST_PATH", MANIFEST_PATH),
        signature_path=os.getenv("OTCFLOW_SIGNATURE_PATH", SIGNATURE_PATH),
        public_key_path=os.getenv("OTCFLOW_PUBLIC_KEY_PATH", PUBLIC_KEY_PATH),
        pack_dir=os.getenv("OTCFLOW_PACK_DIR") or None,
        log_level=os.getenv("OTCFLOW_LOG_LEVEL", "INFO").upper(),
        admin_api_key=os.getenv("OTCFLOW_ADMIN_API_KEY") or None,
    )
