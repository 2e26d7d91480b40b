"""Credential resolution: active profile, then wrangler config, then environment."""

import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from cfstatus.models import Credentials
from cfstatus.profiles import ProfileStore

logger = logging.getLogger(__name__)

WRANGLER_CONFIG_PATHS = (
    "Library/Preferences/.wrangler/config/default.toml",
    ".wrangler/config/default.toml",
    ".config/.wrangler/config/default.toml",
    ".config/wrangler/config/default.toml",
)

_CONFIG_KEYS = ("oauth_token", "api_token", "account_id")


def _extract_value(line: str) -> Optional[str]:
    """Return the value of a ``key = "value"  # comment`` line."""
    _, sep, rest = line.partition("=")
    if not sep:
        return None
    value = rest.strip().strip("\"'")
    if "#" in value:
        value = value.split("#", 1)[0].strip().strip("\"'")
    return value or None


def parse_wrangler_config(text: str) -> Dict[str, str]:
    """Pull ``oauth_token``, ``api_token`` and ``account_id`` out of a wrangler config.

    Only a flat ``key = "value"`` subset of TOML is understood; lines that do
    not look like one of the three keys are skipped.
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        trimmed = line.strip()
        for key in _CONFIG_KEYS:
            if not trimmed.startswith(key):
                continue
            name = trimmed.split("=", 1)[0].strip()
            if name != key:
                continue
            value = _extract_value(trimmed)
            if value is not None:
                values[key] = value
            break
    return values


class CredentialResolver:
    """Resolves the credential used for every API call.

    Resolution never raises; an empty :class:`Credentials` means
    "not authenticated".
    """

    def __init__(
        self,
        profiles: Optional[ProfileStore] = None,
        home: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        config_paths: Sequence[str] = WRANGLER_CONFIG_PATHS,
    ):
        self.profiles = profiles
        self.home = Path(home) if home is not None else Path.home()
        self.environ = environ if environ is not None else os.environ
        self.config_paths = config_paths

    def candidate_paths(self) -> List[Path]:
        return [self.home / relative for relative in self.config_paths]

    def resolve(self) -> Credentials:
        if self.profiles is not None:
            profile = self.profiles.get_active_profile()
            if profile is not None:
                return Credentials(api_token=profile.api_token)

        wrangler = self.load_wrangler_credentials()
        if wrangler is not None:
            return wrangler

        return Credentials(
            api_token=self.environ.get("CLOUDFLARE_API_TOKEN") or None,
            account_id=self.environ.get("CLOUDFLARE_ACCOUNT_ID") or None,
        )

    def load_wrangler_credentials(self) -> Optional[Credentials]:
        for path in self.candidate_paths():
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue

            values = parse_wrangler_config(text)
            if "oauth_token" in values or "api_token" in values:
                logger.debug("Using wrangler credentials from %s", path)
                return Credentials(
                    oauth_token=values.get("oauth_token"),
                    api_token=values.get("api_token"),
                    account_id=values.get("account_id"),
                )
        return None
