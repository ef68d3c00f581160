"""Plugin manager - top-level orchestrator for the plugin lifecycle."""

import asyncio
import logging
import shutil
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

from host.constants import HOST_VERSION, PLUGIN_CALL_TIMEOUT
from host.errors import (
    LifecycleError,
    ManifestError,
    NotRegisteredError,
    PluginExistsError,
    PluginHostError,
    SandboxError,
    StateStoreError,
)
from host.plugins.api import build_capabilities
from host.plugins.discovery import PluginDiscovery
from host.plugins.lifecycle import PluginLifecycle
from host.plugins.manifest import check_compatibility
from host.plugins.ownership import ResourceOwnershipTracker
from host.plugins.registry import PluginRecord, PluginRegistry, PluginState
from host.plugins.sandbox import SandboxedInvoker
from host.plugins.state_store import PluginStateStore
from host.registries import HostRegistries

logger = logging.getLogger(__name__)


class PluginManager:
    """Top-level plugin system orchestrator.

    Owns every PluginRecord and drives the state machine
    Discovered → Loaded → Enabled ⇄ Disabled → Deleted. Transitions for one
    plugin are serialized by a per-name lock; different plugins may change
    state concurrently. Plugin failures are logged and reported to the caller,
    never allowed to take down the host.
    """

    def __init__(
        self,
        plugins_dir: Path,
        state_file: Path,
        registries: Optional[HostRegistries] = None,
        invoker: Optional[SandboxedInvoker] = None,
        host_version: str = HOST_VERSION,
        call_timeout: float = PLUGIN_CALL_TIMEOUT,
    ):
        self.plugins_dir = Path(plugins_dir)
        self.host_version = host_version

        self.registries = registries or HostRegistries()
        self.registry = PluginRegistry()
        self.state_store = PluginStateStore(state_file)
        self.tracker = ResourceOwnershipTracker(self.registries)
        self.lifecycle = PluginLifecycle(invoker or SandboxedInvoker(call_timeout))
        self.discovery = PluginDiscovery(self.plugins_dir)

        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Startup / shutdown
    # ------------------------------------------------------------------

    async def load_all(self) -> None:
        """Discover and load every plugin, enabling those not persisted as disabled."""
        self.plugins_dir.mkdir(parents=True, exist_ok=True)

        states = self.state_store.load()
        logger.info(f"Loaded plugin states: {states}")

        for record in self.discovery.discover_all():
            try:
                self._load(record)
            except ManifestError as e:
                logger.error(f"Failed to load plugin {record.name}: {e}")
                continue
            self.registry.register(record)

        for record in self.registry.get_all():
            if states.get(record.name) is False:
                logger.info(f"Plugin '{record.name}' is disabled, skipping")
                continue
            try:
                await self.enable_plugin(record.name)
            except LifecycleError:
                # Already logged and rolled back; the host keeps starting
                continue

        enabled = self.registry.get_enabled()
        logger.info(
            f"Plugin system initialized, "
            f"{len(enabled)}/{self.registry.count()} plugins enabled"
        )

    async def shutdown(self) -> None:
        """Tear down every enabled plugin without touching persisted state.

        Desired state survives so the same plugins come back on restart.
        """
        for record in self.registry.get_enabled():
            async with self._locks[record.name]:
                if record.enabled:
                    await self._teardown(record, persist=False)
        logger.info("All plugins stopped")

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def load_plugin(self, dir_name: str) -> PluginRecord:
        """Discover and load one plugin directory, enabling it unless persisted as disabled.

        Args:
            dir_name: Directory name under the plugins directory

        Returns:
            The registered PluginRecord

        Raises:
            ManifestError: manifest or entry module invalid; nothing is registered
            PluginExistsError: a plugin with that name is already registered
        """
        record = self.discovery.discover_single(self.plugins_dir / dir_name)
        if self.registry.has(record.name):
            raise PluginExistsError(record.name)

        self._load(record)
        self.registry.register(record)

        if self.state_store.is_enabled(record.name):
            try:
                await self.enable_plugin(record.name)
            except LifecycleError:
                pass
        return record

    async def enable_plugin(self, name: str) -> PluginRecord:
        """Enable a plugin: persist the desired state, then run init under the sandbox.

        The desired state is written before init runs, so a crash or hang
        mid-init is retried on the next start. If init fails the plugin is
        rolled back to Disabled, both in memory and on disk.

        Returns:
            The plugin record (already-enabled plugins are returned unchanged)

        Raises:
            NotRegisteredError: unknown plugin
            LifecycleError: init failed (phase "init"), tagged with the sandbox error kind
        """
        record = self._require(name)
        async with self._locks[name]:
            self._require_current(record)
            if record.state == PluginState.ENABLED:
                logger.debug(f"Plugin {name} is already enabled")
                return record

            logger.info(f"Enabling plugin: {name}")
            await self._persist(name, True)

            lease = build_capabilities(name, self.tracker, self)
            record.lease = lease
            try:
                await self.lifecycle.init(record, lease.handle)
            except SandboxError as e:
                lease.revoke()
                record.lease = None
                self.tracker.unregister_all(name)
                record.owned_resources = ()
                record.state = PluginState.DISABLED
                await self._persist(name, False)
                logger.error(f"Failed to enable plugin {name}, rolled back to disabled: {e}")
                raise LifecycleError(name, "init", e) from e

            record.state = PluginState.ENABLED
            record.error = None
            record.owned_resources = self.tracker.owned(name)
            logger.info(f"Enabled plugin: {name} ({len(record.owned_resources)} resource(s))")
            return record

    async def disable_plugin(self, name: str) -> PluginRecord:
        """Disable a plugin: unregister its resources, persist, then run destroy.

        A failing or hanging destroy is logged; the plugin still ends up Disabled.

        Raises:
            NotRegisteredError: unknown plugin
        """
        record = self._require(name)
        async with self._locks[name]:
            self._require_current(record)
            if record.state != PluginState.ENABLED:
                logger.debug(f"Plugin {name} is not enabled, nothing to disable")
                return record

            logger.info(f"Disabling plugin: {name}")
            await self._teardown(record, persist=True)
            logger.info(f"Disabled plugin: {name}")
            return record

    async def delete_plugin(self, name: str) -> PluginRecord:
        """Delete a plugin: disable it, remove its directory and its persisted state.

        Irreversible; reinstalling requires rediscovery.

        Raises:
            NotRegisteredError: unknown plugin
            LifecycleError: the plugin directory could not be removed (phase "delete")
        """
        record = self._require(name)
        async with self._locks[name]:
            self._require_current(record)
            logger.info(f"Deleting plugin: {name}")

            if record.state == PluginState.ENABLED:
                logger.info(f"Disabling plugin {name} before deletion")
                await self._teardown(record, persist=True)

            try:
                await asyncio.to_thread(shutil.rmtree, record.path)
            except FileNotFoundError:
                logger.warning(f"Plugin directory already gone: {record.path}")
            except OSError as e:
                logger.error(f"Failed to remove plugin directory {record.path}: {e}")
                raise LifecycleError(name, "delete", PluginHostError(f"cannot remove {record.path}: {e}")) from e

            try:
                await asyncio.to_thread(self.state_store.remove, name)
            except StateStoreError as e:
                logger.error(f"Failed to remove plugin state for {name}: {e}")

            self.registry.remove(name)
            record.state = PluginState.DELETED
            record.module_handle = None
            logger.info(f"Deleted plugin: {name}")

        self._locks.pop(name, None)
        return record

    async def unload_plugin(self, name: str) -> PluginRecord:
        """Drop a plugin from memory, tearing it down if enabled.

        Leaves the plugin directory and persisted state untouched.
        """
        record = self._require(name)
        async with self._locks[name]:
            self._require_current(record)
            if record.enabled:
                await self._teardown(record, persist=False)
            self.registry.remove(name)
            logger.info(f"Unloaded plugin: {name}")
        self._locks.pop(name, None)
        return record

    async def install_plugin(self, source_path: Path) -> PluginRecord:
        """Install a plugin from a local directory and load it.

        Copies the plugin directory to ``plugins/<name>``.

        Raises:
            ManifestError: source is not a valid plugin
            PluginExistsError: a plugin with that name is already installed
        """
        candidate = self.discovery.discover_single(Path(source_path))
        name = candidate.name

        dest = self.plugins_dir / name
        if self.registry.has(name) or dest.exists():
            raise PluginExistsError(name)

        self.plugins_dir.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copytree, source_path, dest)
        logger.info(f"Installed plugin '{name}' to {dest}")

        try:
            return await self.load_plugin(name)
        except ManifestError:
            # Do not leave an unloadable copy behind
            await asyncio.to_thread(shutil.rmtree, dest, True)
            raise

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_plugin(self, name: str) -> PluginRecord:
        """Get a plugin record by name.

        Raises:
            NotRegisteredError: unknown plugin
        """
        record = self._require(name)
        record.owned_resources = self.tracker.owned(name)
        return record

    def get_plugins(self) -> List[dict]:
        """List all plugins as dicts ({name, manifest, enabled, ...})."""
        plugins = []
        for record in self.registry.get_all():
            record.owned_resources = self.tracker.owned(record.name)
            plugins.append(record.to_dict())
        return plugins

    def get_enabled_plugins(self) -> List[str]:
        """Names of currently enabled plugins."""
        return [r.name for r in self.registry.get_enabled()]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, name: str) -> PluginRecord:
        record = self.registry.get(name)
        if record is None:
            logger.error(f"Plugin not found: {name}")
            raise NotRegisteredError(name)
        return record

    def _require_current(self, record: PluginRecord) -> None:
        # The record may have been deleted while we waited for its lock
        if self.registry.get(record.name) is not record:
            raise NotRegisteredError(record.name)

    def _load(self, record: PluginRecord) -> None:
        if record.manifest.compatibility_range != "*":
            compatible = check_compatibility(record.manifest, self.host_version)
            logger.info(
                f"Plugin {record.name} has compatibility requirements: "
                f"{record.manifest.compatibility_range} (host {self.host_version}, "
                f"{'compatible' if compatible else 'NOT compatible, loading anyway'})"
            )
        if record.manifest.declared_dependencies:
            logger.info(
                f"Plugin {record.name} declares dependencies (not checked): "
                f"{', '.join(record.manifest.declared_dependencies)}"
            )
        self.lifecycle.load(record)

    async def _teardown(self, record: PluginRecord, persist: bool) -> None:
        """Enabled → Disabled: revoke, unregister, persist, then destroy."""
        name = record.name
        if record.lease is not None:
            record.lease.revoke()
            record.lease = None

        self.tracker.unregister_all(name)
        record.owned_resources = ()
        record.state = PluginState.DISABLED

        if persist:
            await self._persist(name, False)

        try:
            await self.lifecycle.destroy(record)
        except SandboxError as e:
            # Externally visible resources are already gone; plugin-local cleanup is best effort
            logger.error(f"Failed to destroy plugin {name}, continuing: {e}")

    async def _persist(self, name: str, enabled: bool) -> None:
        try:
            await asyncio.to_thread(self.state_store.set, name, enabled)
        except StateStoreError as e:
            logger.error(f"Failed to save plugin state for {name} ({enabled}); persisted state may drift: {e}")
