"""Resource ownership tracking - remembers what each plugin registered so it can be undone."""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple

from host.registries import HostRegistries, Registration

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    """Kinds of host resources a plugin can register."""

    COMMAND = "command"
    ROUTE = "route"
    EVENT = "event"
    PAGE = "page"


@dataclass(frozen=True)
class ResourceHandle:
    """A registration made by one plugin, tagged with its owner."""

    kind: ResourceKind
    identifier: str
    owning_plugin: str
    registration: Registration = field(repr=False)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "identifier": self.identifier, "plugin": self.owning_plugin}


class ResourceOwnershipTracker:
    """Wraps host registries so every plugin registration is recorded per owner.

    Unregistration always goes through the Registration token kept in the handle,
    never through the identifier, so two plugins registering the same command or
    route never remove each other's entries.
    """

    def __init__(self, registries: HostRegistries):
        self.registries = registries
        self._owned: Dict[str, List[ResourceHandle]] = {}
        # Sync plugin code registers from sandbox worker threads
        self._lock = threading.Lock()

    def register(
        self,
        plugin_name: str,
        kind: ResourceKind,
        identifier: str,
        handler: Any,
        **metadata: Any,
    ) -> ResourceHandle:
        """Register a resource with the host registry on behalf of a plugin.

        Args:
            plugin_name: Owning plugin
            kind: Resource kind, selects the registry
            identifier: Command name, route path, event name or page path
            handler: Callable (or page component) stored in the registry

        Returns:
            ResourceHandle recorded in the plugin's owned set
        """
        kind = ResourceKind(kind)
        registry = self.registries.get(kind.value)
        registration = registry.register(identifier, handler, plugin=plugin_name, **metadata)
        handle = ResourceHandle(kind, identifier, plugin_name, registration)
        with self._lock:
            self._owned.setdefault(plugin_name, []).append(handle)
        logger.debug(f"Plugin '{plugin_name}' now owns {kind.value} '{identifier}'")
        return handle

    def owned(self, plugin_name: str) -> Tuple[ResourceHandle, ...]:
        """Return the handles currently owned by a plugin."""
        with self._lock:
            return tuple(self._owned.get(plugin_name, ()))

    def unregister_all(self, plugin_name: str) -> int:
        """Remove every resource a plugin owns from the host registries.

        Safe to call for a plugin that owns nothing.

        Returns:
            Number of registrations removed
        """
        with self._lock:
            handles = self._owned.pop(plugin_name, [])

        removed = 0
        # Reverse order so shadowed registrations are restored in order
        for handle in reversed(handles):
            registry = self.registries.get(handle.kind.value)
            try:
                if registry.unregister(handle.registration):
                    removed += 1
            except Exception as e:
                logger.error(
                    f"Failed to unregister {handle.kind.value} '{handle.identifier}' "
                    f"for plugin {plugin_name}: {e}"
                )

        if handles:
            logger.info(f"Unregistered {removed}/{len(handles)} resource(s) for plugin {plugin_name}")
        return removed
