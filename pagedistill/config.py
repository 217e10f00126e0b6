"""Centralised settings for pagedistill.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

Durations are expressed in seconds.  The CLI accepts milliseconds and
converts at the boundary.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "10.0"))
    )
    max_fetch_attempts: int = field(
        default_factory=lambda: int(os.environ.get("MAX_FETCH_ATTEMPTS", "3"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get("USER_AGENT", _DEFAULT_USER_AGENT)
    )
    insecure: bool = field(default_factory=lambda: _env_bool("INSECURE_TLS", "true"))

    # ------------------------------------------------------------------
    # Rendering / stabilisation
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("BROWSER_HEADLESS", "true"))
    quiet_window: float = field(
        default_factory=lambda: float(os.environ.get("QUIET_WINDOW", "0.5"))
    )
    network_idle: float = field(
        default_factory=lambda: float(os.environ.get("NETWORK_IDLE", "2.0"))
    )
    network_max_wait: float = field(
        default_factory=lambda: float(os.environ.get("NETWORK_MAX_WAIT", "30.0"))
    )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------
    radius_levels: int = field(
        default_factory=lambda: int(os.environ.get("RADIUS_LEVELS", "3"))
    )
    min_repeat: int = field(
        default_factory=lambda: int(os.environ.get("MIN_REPEAT", "2"))
    )

    # ------------------------------------------------------------------
    # Link expansion
    # ------------------------------------------------------------------
    max_links: int = field(
        default_factory=lambda: int(os.environ.get("MAX_LINKS", "1"))
    )
    link_timeout: float = field(
        default_factory=lambda: float(os.environ.get("LINK_TIMEOUT", "15.0"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )


# Module-level singleton, import this everywhere:
#   from pagedistill.config import settings
settings = Settings()
