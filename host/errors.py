"""Error taxonomy for the plugin host."""

from enum import Enum
from typing import Optional


class PluginHostError(Exception):
    """Base class for every error raised by the plugin host."""


class ManifestError(PluginHostError):
    """plugin.json is missing, malformed, or names an unusable entry module."""

    def __init__(self, field: str, message: str, plugin: Optional[str] = None):
        self.field = field
        self.plugin = plugin
        prefix = f"[{plugin}] " if plugin else ""
        super().__init__(f"{prefix}Invalid manifest field '{field}': {message}")


class PluginInterfaceError(ManifestError):
    """The entry module does not define the required init/destroy callables."""


class SandboxErrorKind(str, Enum):
    """Why a sandboxed lifecycle call failed."""

    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    THREW = "threw"


class SandboxError(PluginHostError):
    """A sandboxed plugin call produced an error outcome."""

    def __init__(
        self,
        plugin: str,
        method: str,
        kind: SandboxErrorKind,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        self.plugin = plugin
        self.method = method
        self.kind = kind
        self.cause = cause
        super().__init__(f"Plugin {plugin}.{method}() failed ({kind.value}): {message}")


class StateStoreError(PluginHostError):
    """The persisted plugin-state document could not be read or written."""


class NotRegisteredError(PluginHostError, LookupError):
    """An operation referenced a plugin name the host does not know."""

    def __init__(self, plugin: str):
        self.plugin = plugin
        super().__init__(f"Plugin not found: {plugin}")


class PluginExistsError(PluginHostError):
    """Installing a plugin whose name is already taken."""

    def __init__(self, plugin: str):
        self.plugin = plugin
        super().__init__(f"Plugin '{plugin}' already exists")


class CapabilityRevokedError(PluginHostError, PermissionError):
    """A plugin used its host handle after the host withdrew it."""


class LifecycleError(PluginHostError):
    """A lifecycle transition failed; names the plugin and the failing phase."""

    def __init__(self, plugin: str, phase: str, cause: PluginHostError):
        self.plugin = plugin
        self.phase = phase
        self.cause = cause
        super().__init__(f"Plugin '{plugin}' failed during {phase}: {cause}")

    @property
    def kind(self) -> Optional[SandboxErrorKind]:
        if isinstance(self.cause, SandboxError):
            return self.cause.kind
        return None

    def to_dict(self) -> dict:
        """Serialize for API responses."""
        return {
            "plugin": self.plugin,
            "phase": self.phase,
            "kind": self.kind.value if self.kind else type(self.cause).__name__,
            "message": str(self.cause),
        }
