"""Client configuration with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://customer-rest-service-frontend-personaltrainer.2.rahtiapp.fi/api"


@dataclass(frozen=True)
class Settings:
    """Immutable client settings resolved from environment."""

    base_url: str = DEFAULT_BASE_URL
    app_env: str = "dev"
    log_level: str = "INFO"
    request_timeout: float = 30.0

    # Calendar-style polling of the training list
    refresh_interval_seconds: int = 60

    # An update that cannot be addressed is re-sent as a create (reported as "upserted")
    update_falls_back_to_create: bool = True

    @property
    def api_root(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def customers_url(self) -> str:
        return f"{self.api_root}/customers"

    @property
    def trainings_url(self) -> str:
        return f"{self.api_root}/trainings"

    @property
    def gettrainings_url(self) -> str:
        return f"{self.api_root}/gettrainings"

    @property
    def reset_url(self) -> str:
        return f"{self.api_root}/reset"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "update_falls_back_to_create": True,
    },
    "staging": {
        "log_level": "INFO",
        "update_falls_back_to_create": True,
    },
    "production": {
        "log_level": "WARNING",
        "update_falls_back_to_create": False,
    },
}

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def get_base_url() -> str:
    """Resolve the API base address.

    Resolution order:
    1. TRAINER_API_BASE_URL environment variable
    2. The public demo backend
    """
    env_url = os.getenv("TRAINER_API_BASE_URL")
    if env_url:
        return env_url.rstrip("/")
    return DEFAULT_BASE_URL


def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        base_url=get_base_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
        refresh_interval_seconds=int(os.getenv("REFRESH_INTERVAL_SECONDS", "60")),
        update_falls_back_to_create=_env_flag(
            "UPDATE_FALLS_BACK_TO_CREATE", profile.get("update_falls_back_to_create", True)
        ),
    )
