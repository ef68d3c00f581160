"""Global constants for the plugin host."""

import os
from pathlib import Path

# Host version, matched against each manifest's compatibility.core (informational)
HOST_VERSION = os.getenv("HOST_VERSION", "1.0.0")

# Deadline for a single plugin lifecycle call (seconds)
PLUGIN_CALL_TIMEOUT = float(os.getenv("PLUGIN_CALL_TIMEOUT", "5"))

# Directory paths
HOST_ROOT = Path(__file__).resolve().parent.parent

# Project root (supports PLUGIN_HOST_ROOT env var, relative paths resolve against HOST_ROOT)
_root_env = os.getenv("PLUGIN_HOST_ROOT", "")
if _root_env:
    _root_path = Path(_root_env)
    PROJECT_ROOT = _root_path if _root_path.is_absolute() else (HOST_ROOT / _root_path).resolve()
else:
    PROJECT_ROOT = HOST_ROOT

PLUGINS_DIR = Path(os.getenv("PLUGINS_DIR", "")) if os.getenv("PLUGINS_DIR") else PROJECT_ROOT / "plugins"
CONFIG_DIR = PROJECT_ROOT / "config"
PLUGIN_STATE_FILE = (
    Path(os.getenv("PLUGIN_STATE_FILE", "")) if os.getenv("PLUGIN_STATE_FILE")
    else CONFIG_DIR / "plugin-states.json"
)
LOGS_DIR = PROJECT_ROOT / "logs"

# On-disk layout
MANIFEST_FILE = "plugin.json"

# Prefix under which plugin-registered HTTP routes are served
PLUGIN_ROUTE_PREFIX = "/p"
