"""Plugin registry - tracks every discovered plugin and its lifecycle state."""
from __future__ import annotations

import importlib.util
import logging
import sys
import threading
from dataclasses import dataclass, field
from enum import Enum
from importlib.machinery import ModuleSpec
from pathlib import Path
from types import ModuleType
from typing import Dict, FrozenSet, Optional, Tuple, TYPE_CHECKING

from host.plugins.manifest import PluginManifest

if TYPE_CHECKING:
    from host.plugins.api import CapabilityLease
    from host.plugins.ownership import ResourceHandle

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Plugin lifecycle states."""

    DISCOVERED = "discovered"
    LOADED = "loaded"
    ENABLED = "enabled"
    DISABLED = "disabled"
    DELETED = "deleted"


@dataclass
class ModuleHandle:
    """A plugin's entry module: resolved and compiled, executed only on first use.

    ``exports`` lists the module-level names found by static inspection, so the
    host can check for init/destroy without running any plugin code.
    """

    module_name: str
    path: Path
    spec: ModuleSpec = field(repr=False)
    exports: FrozenSet[str] = frozenset()
    module: Optional[ModuleType] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def executed(self) -> bool:
        return self.module is not None

    def materialize(self) -> ModuleType:
        """Execute the module body once and return the module.

        Runs plugin code; the sandbox calls it under its deadline.
        """
        with self._lock:
            if self.module is not None:
                return self.module

            # Add plugin directory to sys.path temporarily so sibling imports work
            plugin_dir = str(self.path.parent)
            added = plugin_dir not in sys.path
            if added:
                sys.path.insert(0, plugin_dir)
            try:
                module = importlib.util.module_from_spec(self.spec)
                self.spec.loader.exec_module(module)
            finally:
                if added and plugin_dir in sys.path:
                    sys.path.remove(plugin_dir)

            self.module = module
            return module


@dataclass
class PluginRecord:
    """Represents one discovered plugin, owned by the plugin manager."""

    manifest: PluginManifest
    path: Path
    state: PluginState = PluginState.DISCOVERED
    module_handle: Optional[ModuleHandle] = field(default=None, repr=False)
    lease: Optional[CapabilityLease] = field(default=None, repr=False)
    owned_resources: Tuple[ResourceHandle, ...] = field(default=(), repr=False)
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def enabled(self) -> bool:
        return self.state == PluginState.ENABLED

    def to_dict(self) -> dict:
        """Serialize plugin record to dict for API responses."""
        return {
            "name": self.manifest.name,
            "version": self.manifest.version,
            "manifest": self.manifest.to_dict(),
            "enabled": self.enabled,
            "state": self.state.value,
            "path": str(self.path),
            "resources": [h.to_dict() for h in self.owned_resources],
            "error": self.error,
        }


class PluginRegistry:
    """Central registry for all plugin records."""

    def __init__(self):
        self._plugins: Dict[str, PluginRecord] = {}

    def register(self, record: PluginRecord) -> None:
        """Register a plugin record."""
        if record.name in self._plugins:
            logger.warning(f"Plugin '{record.name}' already registered, overwriting")
        self._plugins[record.name] = record
        logger.info(f"Registered plugin: {record.name}")

    def get(self, name: str) -> Optional[PluginRecord]:
        """Get a plugin by name."""
        return self._plugins.get(name)

    def get_all(self) -> list[PluginRecord]:
        """Get all registered plugins."""
        return list(self._plugins.values())

    def get_enabled(self) -> list[PluginRecord]:
        """Get all enabled plugins."""
        return [p for p in self._plugins.values() if p.enabled]

    def remove(self, name: str) -> Optional[PluginRecord]:
        """Remove a plugin from the registry."""
        return self._plugins.pop(name, None)

    def has(self, name: str) -> bool:
        """Check if a plugin is registered."""
        return name in self._plugins

    def count(self) -> int:
        """Get total number of registered plugins."""
        return len(self._plugins)
