"""Plugin discovery - scans the plugins directory for plugin.json manifests."""

import logging
from pathlib import Path
from typing import Dict, List

from host.constants import MANIFEST_FILE
from host.errors import ManifestError
from host.plugins.manifest import load_manifest
from host.plugins.registry import PluginRecord, PluginState

logger = logging.getLogger(__name__)


class PluginDiscovery:
    """Discovers plugins by scanning a directory for plugin.json manifests."""

    def __init__(self, plugins_dir: Path):
        self.plugins_dir = Path(plugins_dir)
        # Directory name -> error for plugins whose manifest failed validation
        self.failures: Dict[str, ManifestError] = {}

    def discover_all(self) -> List[PluginRecord]:
        """Discover all plugins in the plugins directory.

        A bad manifest skips only that plugin; the error is kept in ``failures``.

        Returns:
            List of discovered PluginRecord objects (state=DISCOVERED)
        """
        self.failures = {}
        if not self.plugins_dir.exists():
            logger.debug(f"Plugin directory does not exist: {self.plugins_dir}")
            return []

        discovered = []
        seen_names = set()

        for item in sorted(self.plugins_dir.iterdir()):
            if not item.is_dir() or item.name.startswith((".", "_")):
                continue

            try:
                record = self.discover_single(item)
            except ManifestError as e:
                self.failures[item.name] = e
                logger.error(f"Skipping plugin at {item}: {e}")
                continue

            if record.name in seen_names:
                logger.warning(
                    f"Duplicate plugin name '{record.name}' found at {item}, "
                    f"skipping (first-found wins)"
                )
                continue
            seen_names.add(record.name)
            discovered.append(record)

        logger.info(f"Discovered {len(discovered)} plugin(s) in {self.plugins_dir}")
        return discovered

    def discover_single(self, plugin_path: Path) -> PluginRecord:
        """Discover a single plugin from a specific directory.

        Args:
            plugin_path: Path to the plugin directory

        Returns:
            PluginRecord in DISCOVERED state

        Raises:
            ManifestError: plugin.json is missing or invalid
        """
        manifest_file = Path(plugin_path) / MANIFEST_FILE
        if not manifest_file.is_file():
            raise ManifestError("<file>", f"no {MANIFEST_FILE} found at {plugin_path}", Path(plugin_path).name)

        manifest = load_manifest(manifest_file)
        if manifest.name != manifest_file.parent.name:
            logger.warning(
                f"Plugin directory '{manifest_file.parent.name}' holds plugin '{manifest.name}'; "
                f"the manifest name is used"
            )

        logger.debug(f"Discovered plugin: {manifest.name} at {manifest_file.parent}")
        return PluginRecord(manifest=manifest, path=manifest_file.parent, state=PluginState.DISCOVERED)
