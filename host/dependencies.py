"""Dependency injection container for host services."""

import logging

from host.constants import HOST_VERSION, PLUGIN_CALL_TIMEOUT, PLUGIN_STATE_FILE, PLUGINS_DIR
from host.registries import HostRegistries

logger = logging.getLogger(__name__)

# ============================================================================
# Global service instances (Singleton pattern, but exposed via functions for easier testing/mocking)
# ============================================================================

_registries_instance = None
_plugin_manager_instance = None


def get_host_registries() -> HostRegistries:
    """Get the host's command/route/event/page registries (singleton)."""
    global _registries_instance
    if _registries_instance is None:
        _registries_instance = HostRegistries()
        logger.info("Created HostRegistries instance")
    return _registries_instance


def get_plugin_manager():
    """Get plugin manager (singleton)."""
    global _plugin_manager_instance
    if _plugin_manager_instance is None:
        from host.plugins.manager import PluginManager

        _plugin_manager_instance = PluginManager(
            plugins_dir=PLUGINS_DIR,
            state_file=PLUGIN_STATE_FILE,
            registries=get_host_registries(),
            host_version=HOST_VERSION,
            call_timeout=PLUGIN_CALL_TIMEOUT,
        )
        logger.info(f"Created PluginManager instance (plugins: {PLUGINS_DIR})")
    return _plugin_manager_instance


def set_plugin_manager(manager) -> None:
    """Install a specific manager (and its registries) as the singletons."""
    global _registries_instance, _plugin_manager_instance
    _plugin_manager_instance = manager
    _registries_instance = manager.registries


# Test utility function (for unit testing - resets all singletons)
def reset_services():
    """Reset all service instances (only for testing)."""
    global _registries_instance, _plugin_manager_instance

    _registries_instance = None
    _plugin_manager_instance = None
    logger.info("Reset all service instances")
