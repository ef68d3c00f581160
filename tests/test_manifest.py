"""Tests for plugin manifest validation."""

import json

import pytest
from pydantic import ValidationError

from host.errors import ManifestError
from host.plugins.manifest import PluginManifest, check_compatibility, load_manifest, parse_manifest


class TestParseManifest:
    """Tests for parse_manifest."""

    def test_minimal_manifest_gets_defaults(self):
        """Only name and entry are required; the rest defaults."""
        manifest = parse_manifest(b'{"name": "p", "entry": "main.py"}')

        assert manifest.name == "p"
        assert manifest.entry_path == "main.py"
        assert manifest.declared_dependencies == []
        assert manifest.compatibility_range == "*"
        assert manifest.permissions == []

    def test_full_manifest(self):
        raw = json.dumps({
            "name": "example-plugin",
            "version": "1.2.3",
            "entry": "main.py",
            "author": "Someone",
            "description": "Demo",
            "compatibility": {"core": ">=1.0.0"},
            "permissions": ["commands"],
            "dependencies": ["other-plugin"],
        })

        manifest = parse_manifest(raw)

        assert manifest.version == "1.2.3"
        assert manifest.compatibility_range == ">=1.0.0"
        assert manifest.declared_dependencies == ["other-plugin"]
        assert manifest.permissions == ["commands"]

    def test_missing_entry_names_the_field(self):
        with pytest.raises(ManifestError) as exc:
            parse_manifest(b'{"name": "p"}')
        assert exc.value.field == "entry"

    def test_missing_name_names_the_field(self):
        with pytest.raises(ManifestError) as exc:
            parse_manifest(b'{"entry": "main.py"}')
        assert exc.value.field == "name"

    def test_blank_name_rejected(self):
        with pytest.raises(ManifestError) as exc:
            parse_manifest(b'{"name": "   ", "entry": "main.py"}')
        assert exc.value.field == "name"

    def test_entry_outside_plugin_dir_rejected(self):
        with pytest.raises(ManifestError) as exc:
            parse_manifest(b'{"name": "p", "entry": "../evil.py"}')
        assert exc.value.field == "entry"

        with pytest.raises(ManifestError):
            parse_manifest(b'{"name": "p", "entry": "/etc/passwd"}')

    def test_invalid_json(self):
        with pytest.raises(ManifestError) as exc:
            parse_manifest(b"{not json")
        assert exc.value.field == "<json>"

    def test_non_object_document(self):
        with pytest.raises(ManifestError):
            parse_manifest(b'["name", "entry"]')

    def test_unknown_keys_kept_for_display(self):
        manifest = parse_manifest(b'{"name": "p", "entry": "main.py", "homepage": "https://example.com"}')
        assert manifest.to_dict()["homepage"] == "https://example.com"

    def test_to_dict_uses_plugin_json_keys(self):
        manifest = parse_manifest(b'{"name": "p", "entry": "main.py", "compatibility": {"core": "^1.0"}}')
        data = manifest.to_dict()
        assert data["entry"] == "main.py"
        assert data["compatibility"] == {"core": "^1.0"}
        assert data["dependencies"] == []

    def test_manifest_is_immutable(self):
        manifest = parse_manifest(b'{"name": "p", "entry": "main.py"}')
        with pytest.raises(ValidationError):
            manifest.name = "other"

    def test_load_manifest_labels_errors_with_directory(self, tmp_path):
        plugin_dir = tmp_path / "broken"
        plugin_dir.mkdir()
        (plugin_dir / "plugin.json").write_text('{"name": "broken"}')

        with pytest.raises(ManifestError) as exc:
            load_manifest(plugin_dir / "plugin.json")
        assert exc.value.plugin == "broken"


class TestCheckCompatibility:
    """Tests for the informational compatibility check."""

    def _manifest(self, core):
        return PluginManifest(name="p", entry="main.py", compatibility_range=core)

    def test_star_always_matches(self):
        assert check_compatibility(self._manifest("*"), "0.1.0")

    def test_comparators(self):
        assert check_compatibility(self._manifest(">=1.0.0"), "1.2.0")
        assert not check_compatibility(self._manifest(">=2.0.0"), "1.2.0")
        assert check_compatibility(self._manifest(">=1.0.0 <2.0.0"), "1.9.9")
        assert not check_compatibility(self._manifest(">=1.0.0, <2.0.0"), "2.0.0")
        assert check_compatibility(self._manifest(">= 1.0"), "1.0.0")

    def test_caret_and_tilde(self):
        assert check_compatibility(self._manifest("^1.2.0"), "1.9.0")
        assert not check_compatibility(self._manifest("^1.2.0"), "2.0.0")
        assert check_compatibility(self._manifest("~1.2.0"), "1.2.5")
        assert not check_compatibility(self._manifest("~1.2.0"), "1.3.0")

    def test_bare_version_compares_written_components(self):
        assert check_compatibility(self._manifest("1"), "1.4.2")
        assert not check_compatibility(self._manifest("1.3"), "1.4.2")

    def test_unparseable_range_counts_as_compatible(self):
        assert check_compatibility(self._manifest("latest"), "1.0.0")

    def test_prerelease_sorts_before_release(self):
        assert not check_compatibility(self._manifest(">=1.0.0"), "1.0.0-rc.1")
        assert check_compatibility(self._manifest(">=1.0.0-rc.1"), "1.0.0")

    def test_leading_v_is_accepted(self):
        assert check_compatibility(self._manifest(">=v1.2"), "v1.2.0")

    def test_unparseable_host_version_counts_as_compatible(self):
        assert check_compatibility(self._manifest(">=2.0.0"), "dev-build")
