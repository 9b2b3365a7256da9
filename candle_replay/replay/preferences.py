"""
Playback preferences persisted between sessions.

Stored as JSON next to the app (see Settings.preferences_path).
"""

import json
from pathlib import Path
from typing import Optional

from loguru import logger

from candle_replay.config import settings


class PlaybackPreferences:
    """Fast-forward speed and obfuscation toggle, saved on every change."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.preferences_path)
        self._load()

    def _load(self):
        """Load preferences from disk."""
        self.data = {"ff_speed_ms": settings.ff_speed_ms, "obfuscate": True}
        if self.path.exists():
            try:
                with open(self.path, "r") as f:
                    self.data.update(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable preferences {self.path}: {e}")

    def _save(self):
        """Save preferences to disk."""
        with open(self.path, "w") as f:
            json.dump(self.data, f, indent=2)

    @property
    def ff_speed_ms(self) -> int:
        return int(self.data.get("ff_speed_ms") or settings.ff_speed_ms)

    @ff_speed_ms.setter
    def ff_speed_ms(self, value: int):
        self.data["ff_speed_ms"] = int(value)
        self._save()

    @property
    def obfuscate(self) -> bool:
        return bool(self.data.get("obfuscate", True))

    @obfuscate.setter
    def obfuscate(self, value: bool):
        self.data["obfuscate"] = bool(value)
        self._save()
