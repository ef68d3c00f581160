"""Plugin lifecycle - loads entry modules and runs init/destroy under the sandbox."""
from __future__ import annotations

import ast
import importlib.util
import logging
import re
from typing import Any, FrozenSet, TYPE_CHECKING

from host.errors import PluginInterfaceError, SandboxError
from host.plugins.registry import ModuleHandle, PluginRecord, PluginState
from host.plugins.sandbox import SandboxedInvoker

if TYPE_CHECKING:
    from host.plugins.api import HostHandle

logger = logging.getLogger(__name__)

REQUIRED_EXPORTS = ("init", "destroy")


def _module_exports(tree: ast.Module) -> FrozenSet[str]:
    """Names bound at module level, found without executing the module."""
    names = set()
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name):
                    names.add(target.id)
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
            names.add(node.target.id)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                names.add((alias.asname or alias.name).split(".")[0])
    return frozenset(names)


class PluginLifecycle:
    """Handles the per-plugin steps: load → init → destroy.

    The plugin manager decides when each step runs and owns the resulting state.
    """

    def __init__(self, invoker: SandboxedInvoker):
        self.invoker = invoker

    def load(self, record: PluginRecord) -> ModuleHandle:
        """Resolve and compile the entry module without executing it.

        Args:
            record: Plugin record in DISCOVERED state

        Returns:
            ModuleHandle stored on the record (state becomes LOADED)

        Raises:
            PluginInterfaceError: entry file missing, not valid Python, or
                lacking module-level init/destroy
        """
        name = record.name
        plugin_dir = record.path.resolve()
        entry_file = (plugin_dir / record.manifest.entry_path).resolve()

        if plugin_dir not in entry_file.parents:
            raise PluginInterfaceError("entry", "entry module escapes the plugin directory", name)
        if not entry_file.is_file():
            raise PluginInterfaceError("entry", f"entry module not found: {entry_file}", name)

        try:
            source = entry_file.read_text(encoding="utf-8")
            tree = ast.parse(source, filename=str(entry_file))
            compile(tree, str(entry_file), "exec")
        except (OSError, UnicodeDecodeError) as e:
            raise PluginInterfaceError("entry", f"cannot read {entry_file}: {e}", name) from e
        except SyntaxError as e:
            raise PluginInterfaceError("entry", f"syntax error in {entry_file.name} line {e.lineno}: {e.msg}", name) from e

        exports = _module_exports(tree)
        missing = [fn for fn in REQUIRED_EXPORTS if fn not in exports]
        if missing:
            raise PluginInterfaceError(
                "entry", f"{entry_file.name} must define {', '.join(missing)}()", name
            )

        safe_name = re.sub(r"\W", "_", name)
        spec = importlib.util.spec_from_file_location(f"plugin_{safe_name}_{entry_file.stem}", entry_file)
        if spec is None or spec.loader is None:
            raise PluginInterfaceError("entry", f"cannot import {entry_file}", name)

        handle = ModuleHandle(module_name=spec.name, path=entry_file, spec=spec, exports=exports)
        record.module_handle = handle
        record.state = PluginState.LOADED
        record.error = None
        logger.info(f"Loaded plugin: {name} ({entry_file.name})")
        return handle

    async def init(self, record: PluginRecord, host: HostHandle) -> Any:
        """Call the plugin's init(host) under the sandbox.

        Raises:
            SandboxError: init is missing, raised, or missed its deadline
        """
        try:
            result = await self.invoker.invoke(record.name, record.module_handle, "init", host)
        except SandboxError as e:
            record.error = str(e)
            raise
        logger.info(f"Initialized plugin: {record.name}")
        return result

    async def destroy(self, record: PluginRecord) -> Any:
        """Call the plugin's destroy() under the sandbox.

        Raises:
            SandboxError: destroy is missing, raised, or missed its deadline
        """
        if record.module_handle is None or not record.module_handle.executed:
            logger.debug(f"Plugin {record.name} never ran, skip destroy")
            return None
        try:
            result = await self.invoker.invoke(record.name, record.module_handle, "destroy")
        except SandboxError as e:
            record.error = str(e)
            raise
        logger.info(f"Destroyed plugin: {record.name}")
        return result
