#!/usr/bin/env python3
"""Plugin management CLI tool.

Edits the on-disk plugin layout and config/plugin-states.json directly. A
running host picks the changes up on its next start; use the REST endpoints
under /api/plugins for live changes.
"""

import argparse
import json
import logging
import shutil
import sys
from datetime import datetime
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

load_dotenv()

from host.constants import HOST_VERSION, LOGS_DIR, PLUGIN_STATE_FILE, PLUGINS_DIR
from host.errors import ManifestError, StateStoreError
from host.plugins.discovery import PluginDiscovery
from host.plugins.lifecycle import PluginLifecycle
from host.plugins.manifest import check_compatibility
from host.plugins.sandbox import SandboxedInvoker
from host.plugins.state_store import PluginStateStore

console = Console()


def setup_logging():
    """Send INFO logs to a file, only warnings to the console."""
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    file_handler = logging.FileHandler(
        LOGS_DIR / f"manage_plugins_{datetime.now().strftime('%Y%m%d')}.log",
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)


def get_discovery() -> PluginDiscovery:
    """Create a PluginDiscovery instance."""
    return PluginDiscovery(PLUGINS_DIR)


def get_state_store() -> PluginStateStore:
    """Create a PluginStateStore instance."""
    return PluginStateStore(PLUGIN_STATE_FILE)


def find_plugin(name: str):
    """Find a discovered plugin by name or exit."""
    plugin = next((p for p in get_discovery().discover_all() if p.name == name), None)
    if not plugin:
        console.print(f"[red]Plugin '{name}' not found.[/red]")
        sys.exit(1)
    return plugin


def cmd_list(args):
    """List all discovered plugins."""
    plugins = get_discovery().discover_all()
    if not plugins:
        console.print("No plugins found.")
        return

    states = get_state_store().load()

    table = Table(title=f"Plugins in {PLUGINS_DIR}")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Enabled")
    table.add_column("Entry")
    table.add_column("Description")

    for p in plugins:
        enabled = states.get(p.name) is not False
        table.add_row(
            p.name,
            p.manifest.version,
            "[green]Yes[/green]" if enabled else "[red]No[/red]",
            p.manifest.entry_path,
            escape(p.manifest.description),
        )
    console.print(table)


def cmd_info(args):
    """Show detailed plugin information."""
    plugin = find_plugin(args.name)
    manifest = plugin.manifest
    persisted = get_state_store().get(plugin.name)

    console.print(f"[bold]Plugin: {manifest.name}[/bold]")
    console.print(f"  Version:       {manifest.version}")
    console.print(f"  Author:        {manifest.author or '-'}")
    console.print(f"  Description:   {manifest.description or '-'}")
    console.print(f"  Path:          {plugin.path}")
    console.print(f"  Entry:         {manifest.entry_path}")
    console.print(f"  Enabled:       {persisted is not False} (persisted: {persisted})")
    console.print(
        f"  Compatibility: {manifest.compatibility_range} "
        f"({'ok' if check_compatibility(manifest, HOST_VERSION) else 'mismatch'} with host {HOST_VERSION})"
    )
    if manifest.declared_dependencies:
        console.print(f"  Dependencies:  {', '.join(manifest.declared_dependencies)}")
    if manifest.permissions:
        console.print(f"  Permissions:   {json.dumps(manifest.permissions)}")


def cmd_enable(args):
    """Enable a plugin."""
    find_plugin(args.name)
    get_state_store().set(args.name, True)
    console.print(f"Plugin '{args.name}' enabled. Restart the service to take effect.")


def cmd_disable(args):
    """Disable a plugin."""
    find_plugin(args.name)
    get_state_store().set(args.name, False)
    console.print(f"Plugin '{args.name}' disabled. Restart the service to take effect.")


def cmd_delete(args):
    """Delete a plugin directory and its persisted state."""
    plugin = find_plugin(args.name)
    if not args.yes:
        answer = input(f"Delete plugin '{plugin.name}' at {plugin.path}? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            console.print("Aborted.")
            return

    shutil.rmtree(plugin.path)
    get_state_store().remove(plugin.name)
    console.print(f"Plugin '{plugin.name}' deleted. Restart the service to take effect.")


def cmd_doctor(args):
    """Run health checks on the plugin system."""
    issues = []

    if not PLUGINS_DIR.exists():
        issues.append(f"Plugins directory missing: {PLUGINS_DIR}")

    store = get_state_store()
    if PLUGIN_STATE_FILE.exists():
        try:
            with open(PLUGIN_STATE_FILE, encoding="utf-8") as f:
                json.load(f)
        except json.JSONDecodeError as e:
            issues.append(f"Plugin state file has invalid JSON: {e}")

    discovery = get_discovery()
    plugins = discovery.discover_all()
    for dir_name, error in discovery.failures.items():
        issues.append(f"Plugin directory '{dir_name}': {error}")

    # Persisted entries for plugins that no longer exist
    discovered = {p.name for p in plugins}
    for name in store.load():
        if name not in discovered:
            issues.append(f"State entry '{name}' has no matching plugin")

    # Entry modules: present, valid Python, defining init/destroy (nothing is executed)
    lifecycle = PluginLifecycle(SandboxedInvoker())
    for p in plugins:
        try:
            lifecycle.load(p)
        except ManifestError as e:
            issues.append(f"Plugin '{p.name}': {e}")
        if not check_compatibility(p.manifest, HOST_VERSION):
            issues.append(
                f"Plugin '{p.name}' targets host {p.manifest.compatibility_range}, host is {HOST_VERSION} (warning only)"
            )

    if issues:
        console.print(f"[yellow]Found {len(issues)} issue(s):[/yellow]")
        for i, issue in enumerate(issues, 1):
            console.print(f"  {i}. {escape(issue)}")
        sys.exit(1)
    else:
        enabled = sum(1 for p in plugins if store.is_enabled(p.name))
        console.print(f"[green]All checks passed.[/green] {len(plugins)} plugin(s) found, {enabled} enabled.")


def main():
    parser = argparse.ArgumentParser(description="Plugin Host Plugin Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List all plugins")

    # info
    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("name", help="Plugin name")

    # enable
    enable_parser = subparsers.add_parser("enable", help="Enable a plugin")
    enable_parser.add_argument("name", help="Plugin name")

    # disable
    disable_parser = subparsers.add_parser("disable", help="Disable a plugin")
    disable_parser.add_argument("name", help="Plugin name")

    # delete
    delete_parser = subparsers.add_parser("delete", help="Delete a plugin and its state")
    delete_parser.add_argument("name", help="Plugin name")
    delete_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging()

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "delete": cmd_delete,
        "doctor": cmd_doctor,
    }

    try:
        commands[args.command](args)
    except StateStoreError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
