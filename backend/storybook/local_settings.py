"""
Client-side settings tier: one JSON blob stored under a fixed key in a
JSON file, mirroring browser local storage semantics (quota included).
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .config import LOCAL_SETTINGS_FILE, LOCAL_SETTINGS_KEY, LOCAL_SETTINGS_MAX_BYTES

logger = logging.getLogger(__name__)

# Only brand/engine/key fields survive a restart; books never do.
PERSISTED_FIELDS = (
    "brandName",
    "brandLogo",
    "brandLogoUrl",
    "freepikApiKey",
    "geminiApiKey",
    "imageEngine",
)
LARGE_LOGO_CHARS = 100000


class QuotaExceededError(Exception):
    pass


class LocalSettingsStorage:
    def __init__(
        self,
        path: Path = LOCAL_SETTINGS_FILE,
        key: str = LOCAL_SETTINGS_KEY,
        max_bytes: int = LOCAL_SETTINGS_MAX_BYTES,
    ):
        self.path = Path(path)
        self.key = key
        self.max_bytes = max_bytes

    def _read_all(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning(f"Ignoring unreadable local settings file {self.path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        raw = json.dumps(data)
        if len(raw.encode("utf-8")) > self.max_bytes:
            raise QuotaExceededError(f"{len(raw)} bytes exceeds quota of {self.max_bytes}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(raw)
        os.replace(tmp, self.path)

    def _set_item(self, value: Dict[str, Any]) -> None:
        data = self._read_all()
        data[self.key] = value
        self._write_all(data)

    def load(self) -> Optional[Dict[str, Any]]:
        """Saved settings, or None when nothing (valid) is stored."""
        blob = self._read_all().get(self.key)
        if not isinstance(blob, dict):
            return None
        state = blob.get("state")
        return state if isinstance(state, dict) else None

    def save(self, state: Dict[str, Any]) -> bool:
        """
        Persist the settings subset of ``state``.

        When over quota, retry once without an oversized ``brandLogoUrl``;
        if that still fails the key is removed. Returns whether anything
        was stored.
        """
        subset = {name: state[name] for name in PERSISTED_FIELDS if name in state}
        try:
            self._set_item({"state": subset, "version": 0})
            return True
        except QuotaExceededError:
            logger.warning("Storage quota exceeded. Clearing large items...")

        logo = subset.get("brandLogoUrl") or ""
        if len(logo) > LARGE_LOGO_CHARS:
            try:
                self._set_item({"state": {**subset, "brandLogoUrl": ""}, "version": 0})
                return True
            except QuotaExceededError:
                logger.warning("Local settings still over quota without the logo")
        self.clear()
        return False

    def clear(self) -> None:
        data = self._read_all()
        if self.key in data:
            del data[self.key]
            self._write_all(data)
