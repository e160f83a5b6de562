"""Persisted settings — the QQ Music cookie lives here."""
import json
import logging
from pathlib import Path
from typing import Optional

from .config import COOKIE_ENV, COOKIE_KEY, SETTINGS_FILE

logger = logging.getLogger(__name__)


class CredentialStore:
    """Single-string credential store backed by a JSON file.

    QQMUSIC_COOKIE in the environment (or .env) overrides the stored value.
    """

    def __init__(self, path: Path = SETTINGS_FILE, key: str = COOKIE_KEY, env_value: str = COOKIE_ENV):
        self.path = Path(path)
        self.key = key
        self._env_value = env_value

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict):
        """Atomic write — write to tmp then replace."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False))
        tmp.replace(self.path)

    def get(self) -> str:
        if self._env_value:
            return self._env_value
        value = self._load().get(self.key, "")
        return value.strip() if isinstance(value, str) else ""

    def set(self, value: str):
        data = self._load()
        data[self.key] = value.strip()
        self._save(data)

    def remove(self):
        data = self._load()
        if data.pop(self.key, None) is not None:
            self._save(data)

    @property
    def from_env(self) -> bool:
        return bool(self._env_value)

    def masked(self) -> Optional[str]:
        """Short, safe-to-print preview of the stored cookie."""
        value = self.get()
        if not value:
            return None
        if len(value) <= 12:
            return "*" * len(value)
        return f"{value[:6]}…{value[-4:]}"
