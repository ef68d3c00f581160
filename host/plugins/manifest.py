"""Plugin manifest model - describes a plugin's metadata, loaded from plugin.json."""

import json
import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Union

import semver
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from host.errors import ManifestError

logger = logging.getLogger(__name__)


class PluginManifest(BaseModel):
    """Plugin manifest loaded from plugin.json.

    Only ``name`` and ``entry`` are required. Everything else is informational:
    dependencies are recorded but never resolved, and the compatibility range is
    logged but never used as a gate.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    name: str = Field(..., description="Unique plugin identifier")
    entry_path: str = Field(
        ...,
        alias="entry",
        description="Entry module path relative to the plugin directory, e.g. 'main.py'",
    )
    version: str = Field(default="0.0.0", description="Plugin version")
    author: str = Field(default="", description="Plugin author")
    description: str = Field(default="", description="Plugin description")
    declared_dependencies: List[str] = Field(
        default_factory=list,
        alias="dependencies",
        description="Names of plugins this one expects (not enforced)",
    )
    compatibility_range: str = Field(
        default="*",
        description="Supported host version range from compatibility.core (not enforced)",
    )
    permissions: List[str] = Field(default_factory=list, description="Requested permissions (not enforced)")

    @model_validator(mode="before")
    @classmethod
    def _flatten_compatibility(cls, data: Any) -> Any:
        if isinstance(data, dict) and "compatibility" in data:
            data = dict(data)
            compatibility = data.pop("compatibility")
            if isinstance(compatibility, dict) and compatibility.get("core"):
                data.setdefault("compatibility_range", compatibility["core"])
        return data

    @field_validator("name", "entry_path")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("entry_path")
    @classmethod
    def _relative_entry(cls, value: str) -> str:
        entry = PurePosixPath(value.replace("\\", "/"))
        if entry.is_absolute() or ".." in entry.parts:
            raise ValueError("must be a relative path inside the plugin directory")
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the plugin.json shape."""
        data = {
            "name": self.name,
            "version": self.version,
            "entry": self.entry_path,
            "author": self.author,
            "description": self.description,
            "dependencies": list(self.declared_dependencies),
            "compatibility": {"core": self.compatibility_range},
            "permissions": list(self.permissions),
        }
        if self.model_extra:
            data.update(self.model_extra)
        return data


def parse_manifest(raw: Union[bytes, str], plugin: Optional[str] = None) -> PluginManifest:
    """Validate raw plugin.json content.

    Args:
        raw: Manifest document as bytes or text
        plugin: Directory name, used only to label errors

    Returns:
        Validated PluginManifest

    Raises:
        ManifestError: naming the first missing or malformed field
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestError("<json>", f"not valid JSON ({e})", plugin) from e

    if not isinstance(data, dict):
        raise ManifestError("<json>", "top-level value must be an object", plugin)

    try:
        return PluginManifest(**data)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "<manifest>"
        raise ManifestError(field, error["msg"], plugin) from e


def load_manifest(manifest_file: Path) -> PluginManifest:
    """Read and validate a plugin.json file."""
    plugin = manifest_file.parent.name
    try:
        raw = manifest_file.read_bytes()
    except OSError as e:
        raise ManifestError("<file>", f"cannot read {manifest_file}: {e}", plugin) from e
    return parse_manifest(raw, plugin)


_COMPARATOR = re.compile(r"^(>=|<=|==|=|>|<|\^|~)?v?(\S+)$")


def _parse_version(text: str) -> semver.Version:
    """Parse a possibly partial version ("1", "1.2", "1.2.3-rc.1")."""
    return semver.Version.parse(text, optional_minor_and_patch=True)


def _satisfies(current: semver.Version, op: str, text: str) -> bool:
    target = _parse_version(text)
    if op == "^":
        # Same leftmost non-zero component
        if target.major:
            upper = target.bump_major()
        elif target.minor:
            upper = target.bump_minor()
        else:
            upper = target.bump_patch()
        return target <= current < upper
    if op == "~":
        return target <= current < target.bump_minor()
    if op in ("", "=", "=="):
        # A partial version matches every release under it: "1.3" is 1.3.x
        depth = len(text.split("-")[0].split("+")[0].split("."))
        if depth == 1:
            return target <= current < target.bump_major()
        if depth == 2:
            return target <= current < target.bump_minor()
        return current.match(f"=={target}")
    return current.match(f"{op}{target}")


def check_compatibility(manifest: PluginManifest, host_version: str) -> bool:
    """Check the manifest's compatibility range against the host version.

    The answer is informational only. Ranges that cannot be parsed count as
    compatible so that an odd manifest never blocks a plugin.
    """
    try:
        current = _parse_version(host_version.strip().lstrip("v"))
    except ValueError:
        logger.debug(f"Host version '{host_version}' is not semver, skipping compatibility check")
        return True

    ranges = re.sub(r"(>=|<=|==|=|>|<|\^|~)\s+", r"\1", manifest.compatibility_range.strip())
    for token in re.split(r"[\s,]+", ranges):
        if not token or token in ("*", "x", "X"):
            continue
        match = _COMPARATOR.match(token)
        try:
            if not _satisfies(current, match.group(1) or "", match.group(2)):
                return False
        except ValueError:
            logger.debug(f"Unparseable compatibility token '{token}' in {manifest.name}, ignoring")
    return True
