"""Plugin system for the host runtime.

Imports are lazy so lightweight tools (the CLI, the state store) do not pull in
the whole lifecycle stack.
"""

__all__ = [
    "PluginManifest",
    "PluginAPI",
    "HostHandle",
    "PluginRegistry",
    "PluginRecord",
    "PluginState",
    "ModuleHandle",
    "PluginDiscovery",
    "PluginLifecycle",
    "PluginManager",
    "PluginStateStore",
    "SandboxedInvoker",
    "ResourceOwnershipTracker",
    "ResourceHandle",
    "ResourceKind",
]


def __getattr__(name):
    if name == "PluginManifest":
        from host.plugins.manifest import PluginManifest
        return PluginManifest
    if name in ("PluginAPI", "HostHandle"):
        from host.plugins import api
        return getattr(api, name)
    if name in ("PluginRegistry", "PluginRecord", "PluginState", "ModuleHandle"):
        from host.plugins import registry
        return getattr(registry, name)
    if name == "PluginDiscovery":
        from host.plugins.discovery import PluginDiscovery
        return PluginDiscovery
    if name == "PluginLifecycle":
        from host.plugins.lifecycle import PluginLifecycle
        return PluginLifecycle
    if name == "PluginManager":
        from host.plugins.manager import PluginManager
        return PluginManager
    if name == "PluginStateStore":
        from host.plugins.state_store import PluginStateStore
        return PluginStateStore
    if name == "SandboxedInvoker":
        from host.plugins.sandbox import SandboxedInvoker
        return SandboxedInvoker
    if name in ("ResourceOwnershipTracker", "ResourceHandle", "ResourceKind"):
        from host.plugins import ownership
        return getattr(ownership, name)
    raise AttributeError(f"module 'host.plugins' has no attribute {name!r}")
