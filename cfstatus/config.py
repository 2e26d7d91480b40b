"""Configuration management for the Cloudflare status service."""

import os
from dataclasses import dataclass
from pathlib import Path

import platformdirs
from dotenv import load_dotenv

APP_NAME = "CloudflareStatusBar"

DEFAULT_API_BASE_URL = "https://api.cloudflare.com/client/v4"
DEFAULT_GRAPHQL_URL = "https://api.cloudflare.com/client/v4/graphql"
DEFAULT_DASHBOARD_URL = "https://dash.cloudflare.com"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def default_data_dir() -> Path:
    """Application-support directory used for preferences and diagnostics."""
    return Path(platformdirs.user_data_dir(APP_NAME))


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    api_base_url: str = DEFAULT_API_BASE_URL
    graphql_url: str = DEFAULT_GRAPHQL_URL
    dashboard_url: str = DEFAULT_DASHBOARD_URL
    request_timeout: float = 30.0
    resource_timeout: float = 60.0
    refresh_interval_seconds: float = 300.0
    usage_max_age_seconds: float = 900.0
    diagnostics_enabled: bool = False
    data_dir: str = ""
    keyring_service: str = "com.cloudflarestatusbar"
    host: str = "127.0.0.1"
    port: int = 8787
    log_level: str = "INFO"

    def __post_init__(self):
        for name in (
            "request_timeout",
            "resource_timeout",
            "refresh_interval_seconds",
            "usage_max_age_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be a positive number")
        if not self.data_dir:
            self.data_dir = str(default_data_dir())

    @property
    def diagnostics_dir(self) -> Path:
        return Path(self.data_dir) / "Diagnostics"

    @property
    def preferences_path(self) -> Path:
        return Path(self.data_dir) / "preferences.json"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def load_config(use_dotenv: bool = True) -> Config:
    """Load configuration from environment variables.

    Args:
        use_dotenv: Prime the environment from a ``.env`` file first.

    Returns:
        Config: Configured application settings

    Raises:
        ValueError: If an environment variable holds an invalid value
    """
    if use_dotenv:
        load_dotenv()

    return Config(
        api_base_url=os.getenv("CLOUDFLARE_API_BASE_URL", DEFAULT_API_BASE_URL),
        graphql_url=os.getenv("CLOUDFLARE_GRAPHQL_URL", DEFAULT_GRAPHQL_URL),
        dashboard_url=os.getenv("CLOUDFLARE_DASHBOARD_URL", DEFAULT_DASHBOARD_URL),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")),
        resource_timeout=float(os.getenv("RESOURCE_TIMEOUT_SECONDS", "60")),
        refresh_interval_seconds=float(os.getenv("REFRESH_INTERVAL_SECONDS", "300")),
        usage_max_age_seconds=float(os.getenv("USAGE_MAX_AGE_SECONDS", "900")),
        diagnostics_enabled=_env_bool("DIAGNOSTICS_ENABLED"),
        data_dir=os.getenv("CFSTATUS_DATA_DIR", ""),
        keyring_service=os.getenv(
            "CFSTATUS_KEYRING_SERVICE", "com.cloudflarestatusbar"
        ),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8787")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
