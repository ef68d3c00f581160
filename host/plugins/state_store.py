"""Plugin state store - manages config/plugin-states.json."""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from host.errors import StateStoreError

logger = logging.getLogger(__name__)


class PluginStateStore:
    """Durable desired-state flags, one boolean per plugin name.

    File format:
    {
        "example-plugin": true,
        "error-test-plugin": false
    }

    A plugin missing from the file should be enabled (first-run default).
    Every mutation re-reads the whole document, applies one change and writes
    the whole document back atomically; mutations are serialized by a lock.
    """

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file)
        self._lock = threading.Lock()

    def _read(self, strict: bool) -> Dict[str, bool]:
        """Read the document; missing file is empty, unreadable is empty unless strict."""
        if not self.state_file.exists():
            return {}
        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            if strict:
                raise StateStoreError(f"Cannot read plugin states from {self.state_file}: {e}") from e
            logger.error(f"Error loading plugin states, using defaults: {e}")
            return {}

        if not isinstance(data, dict):
            if strict:
                raise StateStoreError(f"Plugin states in {self.state_file} must be a JSON object")
            logger.error(f"Plugin states file {self.state_file} is not a JSON object, using defaults")
            return {}
        states = {}
        for name, value in data.items():
            if not isinstance(value, bool):
                logger.error(
                    f"Ignoring plugin state for '{name}' in {self.state_file}: "
                    f"expected true or false, got {value!r}"
                )
                continue
            states[name] = value
        return states

    def _write(self, states: Dict[str, bool]) -> None:
        """Write the whole document via a temp file and atomic rename."""
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.state_file.name}.", suffix=".tmp", dir=self.state_file.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(states, f, indent=2, ensure_ascii=False, sort_keys=True)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.state_file)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StateStoreError(f"Cannot write plugin states to {self.state_file}: {e}") from e
        logger.debug(f"Saved plugin states to {self.state_file}")

    def load(self) -> Dict[str, bool]:
        """Return the whole persisted mapping."""
        with self._lock:
            return self._read(strict=False)

    def get(self, name: str) -> Optional[bool]:
        """Persisted flag for a plugin, or None when the plugin has no entry."""
        return self.load().get(name)

    def is_enabled(self, name: str) -> bool:
        """Whether a plugin should be enabled; absent entries default to True."""
        return self.get(name) is not False

    def set(self, name: str, enabled: bool) -> None:
        """Persist the desired state of one plugin.

        Raises:
            StateStoreError: the document could not be read or written
        """
        with self._lock:
            states = self._read(strict=True)
            states[name] = bool(enabled)
            self._write(states)
        logger.info(f"Saved plugin state: {name} = {bool(enabled)}")

    def remove(self, name: str) -> None:
        """Drop a plugin's entry entirely.

        Raises:
            StateStoreError: the document could not be read or written
        """
        with self._lock:
            if not self.state_file.exists():
                return
            states = self._read(strict=True)
            if name not in states:
                return
            del states[name]
            self._write(states)
        logger.info(f"Removed plugin state: {name}")
