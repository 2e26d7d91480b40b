"""Key-value storage backends: secret store and preference store."""

import base64
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)


class SecretStore(Protocol):
    def save(self, key: str, data: bytes) -> None: ...

    def load(self, key: str) -> Optional[bytes]: ...

    def delete(self, key: str) -> None: ...


class PreferenceStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: Optional[str]) -> None: ...


class KeyringSecretStore:
    """Secret store backed by the OS keychain through ``keyring``.

    Values are bytes; they are stored base64-encoded because keyring backends
    only accept text passwords.
    """

    def __init__(self, service: str):
        self.service = service

    def save(self, key: str, data: bytes) -> None:
        self.delete(key)
        keyring.set_password(self.service, key, base64.b64encode(data).decode("ascii"))

    def load(self, key: str) -> Optional[bytes]:
        try:
            encoded = keyring.get_password(self.service, key)
        except KeyringError as exc:
            logger.warning("Keyring read failed for %s: %s", key, exc)
            return None
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded)
        except ValueError:
            logger.warning("Keyring entry %s is not valid base64", key)
            return None

    def delete(self, key: str) -> None:
        try:
            keyring.delete_password(self.service, key)
        except PasswordDeleteError:
            pass


class MemorySecretStore:
    """In-process secret store, for tests and keyring-less environments."""

    def __init__(self):
        self.items: Dict[str, bytes] = {}

    def save(self, key: str, data: bytes) -> None:
        self.items[key] = bytes(data)

    def load(self, key: str) -> Optional[bytes]:
        return self.items.get(key)

    def delete(self, key: str) -> None:
        self.items.pop(key, None)


class MemoryPreferenceStore:
    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(values or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self.values.pop(key, None)
        else:
            self.values[key] = value


class JsonPreferenceStore:
    """Non-secret settings persisted as a flat JSON object on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        values = self._read()
        if value is None:
            values.pop(key, None)
        else:
            values[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(values, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
