"""Shared fixtures: throwaway plugin directories and managers."""

import json
import textwrap

import pytest

from host.plugins.manager import PluginManager
from host.registries import HostRegistries


@pytest.fixture
def plugins_dir(tmp_path):
    path = tmp_path / "plugins"
    path.mkdir()
    return path


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "config" / "plugin-states.json"


@pytest.fixture
def write_plugin(plugins_dir):
    """Create plugins/<name>/plugin.json and main.py; returns the plugin directory."""

    def _write(name, source, manifest=None, entry="main.py"):
        plugin_dir = plugins_dir / name
        plugin_dir.mkdir(parents=True, exist_ok=True)
        data = {"name": name, "version": "1.0.0", "entry": entry}
        if manifest is not None:
            data = manifest
        (plugin_dir / "plugin.json").write_text(json.dumps(data), encoding="utf-8")
        if source is not None:
            (plugin_dir / entry).write_text(textwrap.dedent(source), encoding="utf-8")
        return plugin_dir

    return _write


@pytest.fixture
def make_manager(plugins_dir, state_file):
    """Build a PluginManager over the temp directories with a short deadline."""

    def _make(timeout=1.0, registries=None):
        return PluginManager(
            plugins_dir=plugins_dir,
            state_file=state_file,
            registries=registries or HostRegistries(),
            call_timeout=timeout,
        )

    return _make
