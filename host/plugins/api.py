"""PluginAPI - the capability surface handed to each plugin's init()."""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Iterable, List, Optional, Protocol

from host.errors import CapabilityRevokedError
from host.plugins.ownership import ResourceKind, ResourceOwnershipTracker

logger = logging.getLogger(__name__)

CAPABILITIES = (
    "register_command",
    "register_event",
    "register_route",
    "register_page",
    "get_logger",
    "enable_plugin",
    "disable_plugin",
    "get_plugins",
)


class PluginController(Protocol):
    """The slice of the plugin manager that plugins may drive."""

    async def enable_plugin(self, name: str) -> Any: ...

    async def disable_plugin(self, name: str) -> Any: ...

    def get_plugins(self) -> List[dict]: ...


class PluginAPI:
    """Restricted host API given to a plugin.

    Exposes exactly the callables in CAPABILITIES, each a closure built by
    build_capabilities(); the object has no other attributes and cannot be
    modified. Isolation is language-level only: plugin code runs in the host
    process.
    """

    __slots__ = CAPABILITIES + ("plugin_name",)

    def __init__(self, plugin_name: str, **capabilities: Callable):
        object.__setattr__(self, "plugin_name", plugin_name)
        for name in CAPABILITIES:
            object.__setattr__(self, name, capabilities[name])

    def __setattr__(self, name, value):
        raise AttributeError("PluginAPI is read-only")

    def __delattr__(self, name):
        raise AttributeError("PluginAPI is read-only")

    def __repr__(self) -> str:
        return f"<PluginAPI plugin={self.plugin_name!r}>"


class HostHandle:
    """Argument passed to ``init(host)``; plugins reach the host through ``host.api``."""

    __slots__ = ("api",)

    def __init__(self, api: PluginAPI):
        object.__setattr__(self, "api", api)

    def __setattr__(self, name, value):
        raise AttributeError("HostHandle is read-only")


class CapabilityLease:
    """Host-side control over a HostHandle: revoking it disables every registration."""

    def __init__(self, plugin_name: str, handle: HostHandle, revoked: threading.Event, gate: threading.Lock):
        self.plugin_name = plugin_name
        self.handle = handle
        self._revoked = revoked
        self._gate = gate

    @property
    def revoked(self) -> bool:
        return self._revoked.is_set()

    def revoke(self) -> None:
        # Waits for any registration already in flight to land in the tracker
        with self._gate:
            if self._revoked.is_set():
                return
            self._revoked.set()
            logger.debug(f"Revoked host handle for plugin {self.plugin_name}")


def build_capabilities(
    plugin_name: str,
    tracker: ResourceOwnershipTracker,
    controller: PluginController,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> CapabilityLease:
    """Build the capability surface for one plugin.

    Args:
        plugin_name: Plugin the surface belongs to; every registration is tagged with it
        tracker: Ownership tracker wrapping the host registries
        controller: Plugin manager (only enable/disable/list are reachable)
        loop: Host event loop that plugin-initiated transitions are scheduled on

    Returns:
        CapabilityLease whose ``handle`` is given to the plugin
    """
    loop = loop or asyncio.get_running_loop()
    revoked = threading.Event()
    gate = threading.Lock()
    plugin_logger = logging.getLogger(f"plugin.{plugin_name}")

    def _check_active(capability: str) -> None:
        if revoked.is_set():
            raise CapabilityRevokedError(
                f"Plugin {plugin_name} called {capability}() after its host handle was revoked"
            )

    def _register(capability: str, kind: ResourceKind, identifier: str, handler: Any, **metadata: Any) -> None:
        # Check and record under the gate so revoke() cannot slip in between
        with gate:
            _check_active(capability)
            tracker.register(plugin_name, kind, identifier, handler, **metadata)

    def register_command(name: str, description: str, handler: Callable) -> None:
        if not isinstance(name, str) or not isinstance(description, str) or not callable(handler):
            raise TypeError("Invalid parameters for register_command")
        _register("register_command", ResourceKind.COMMAND, name, handler, description=description)
        plugin_logger.info(f"Registered command: {name}")

    def register_event(event: str, handler: Callable) -> None:
        if not isinstance(event, str) or not callable(handler):
            raise TypeError("Invalid parameters for register_event")
        _register("register_event", ResourceKind.EVENT, event, handler)
        plugin_logger.info(f"Registered event handler for: {event}")

    def register_route(path: str, handler: Callable, methods: Iterable[str] = ("GET",)) -> None:
        if not isinstance(path, str) or not callable(handler):
            raise TypeError("Invalid parameters for register_route")
        if not path.startswith("/"):
            path = "/" + path
        if isinstance(methods, str):
            methods = (methods,)
        methods = tuple(m.upper() for m in methods)
        _register("register_route", ResourceKind.ROUTE, path, handler, methods=methods)
        plugin_logger.info(f"Registered route: {path}")

    def register_page(path: str, component: Any) -> None:
        if not isinstance(path, str):
            raise TypeError("Invalid parameters for register_page")
        _register("register_page", ResourceKind.PAGE, path, component)
        plugin_logger.info(f"Registered page: {path}")

    def get_logger(name: Optional[str] = None) -> logging.Logger:
        if name:
            return logging.getLogger(f"plugin.{plugin_name}.{name}")
        return plugin_logger

    def _schedule(capability: str, coro_factory: Callable[[], Any]) -> Future:
        _check_active(capability)
        return asyncio.run_coroutine_threadsafe(coro_factory(), loop)

    def enable_plugin(name: str) -> Future:
        return _schedule("enable_plugin", lambda: controller.enable_plugin(name))

    def disable_plugin(name: str) -> Future:
        return _schedule("disable_plugin", lambda: controller.disable_plugin(name))

    def get_plugins() -> List[dict]:
        return controller.get_plugins()

    api = PluginAPI(
        plugin_name,
        register_command=register_command,
        register_event=register_event,
        register_route=register_route,
        register_page=register_page,
        get_logger=get_logger,
        enable_plugin=enable_plugin,
        disable_plugin=disable_plugin,
        get_plugins=get_plugins,
    )
    return CapabilityLease(plugin_name, HostHandle(api), revoked, gate)
