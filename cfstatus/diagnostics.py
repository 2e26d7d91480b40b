"""Opt-in capture of undecodable API responses to a rotating log file."""

import base64
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from cfstatus.stores import PreferenceStore

logger = logging.getLogger(__name__)

DIAGNOSTICS_FILE_NAME = "api-diagnostics.log"
DIAGNOSTICS_PREF_KEY = "diagnosticsEnabled"
MAX_LOG_BYTES = 1024 * 1024
BACKUP_COUNT = 3


class DiagnosticsLog:
    """Appends response diagnostics when enabled.

    ``record`` never raises; on any failure it returns ``None`` and the
    caller continues with its own error.
    """

    def __init__(self, directory: Path, is_enabled: Callable[[], bool]):
        self.directory = Path(directory)
        self.is_enabled = is_enabled
        self._logger: Optional[logging.Logger] = None

    @property
    def path(self) -> Path:
        return self.directory / DIAGNOSTICS_FILE_NAME

    def _file_logger(self) -> logging.Logger:
        if self._logger is None:
            self.directory.mkdir(parents=True, exist_ok=True)
            file_logger = logging.getLogger(f"{__name__}.file.{id(self)}")
            file_logger.propagate = False
            file_logger.setLevel(logging.INFO)
            handler = logging.handlers.RotatingFileHandler(
                self.path,
                maxBytes=MAX_LOG_BYTES,
                backupCount=BACKUP_COUNT,
                encoding="utf-8",
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
            file_logger.addHandler(handler)
            self._logger = file_logger
        return self._logger

    def record(
        self,
        endpoint: str,
        status_code: int,
        content_type: Optional[str],
        error: BaseException,
        body: bytes,
    ) -> Optional[str]:
        """Append one entry; return the log path if it was written."""
        try:
            if not self.is_enabled():
                return None
            entry = "\n".join(
                [
                    f"[{datetime.now(timezone.utc).isoformat()}]",
                    f"endpoint: {endpoint}",
                    f"status: {status_code}",
                    f"content-type: {content_type or '-'}",
                    f"error: {error}",
                    f"utf8: {body.decode('utf-8', errors='replace')}",
                    f"base64: {base64.b64encode(body).decode('ascii')}",
                    "",
                ]
            )
            self._file_logger().info(entry)
            return str(self.path)
        except Exception as exc:
            logger.debug("Could not write diagnostics entry: %s", exc)
            return None

    def close(self) -> None:
        if self._logger is None:
            return
        for handler in list(self._logger.handlers):
            handler.close()
            self._logger.removeHandler(handler)
        self._logger = None


def preference_toggle(preferences: PreferenceStore, default: bool) -> Callable[[], bool]:
    """Read the diagnostics switch from preferences, falling back to ``default``."""

    def is_enabled() -> bool:
        value = preferences.get(DIAGNOSTICS_PREF_KEY)
        if value is None:
            return default
        return value.lower() == "true"

    return is_enabled
