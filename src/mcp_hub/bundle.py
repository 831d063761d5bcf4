"""Installing MCPB bundles that have already been extracted.

Reads the bundle's ``manifest.json``, checks it against the current platform,
derives a stdio server config from it and registers that config.
"""

import json
import os
import re
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any, NamedTuple

from pydantic import ValidationError

from mcp_hub.config import add_server
from mcp_hub.logging import get_logger
from mcp_hub.models.bundle_manifest import (
    ManifestMcpConfig,
    McpbManifest,
    UserConfigField,
    UserConfigValues,
)
from mcp_hub.models.mcp_server_config import StdioServerConfig

logger = get_logger("bundle")

MANIFEST_FILE = "manifest.json"

_USER_CONFIG_PATTERN = re.compile(r"\$\{user_config\.([^}]+)\}")


class BundleError(ValueError):
    """Raised when a bundle cannot be installed."""

    pass


class CompatibilityResult(NamedTuple):
    is_compatible: bool
    issues: list[str]


class UserConfigValidation(NamedTuple):
    valid: bool
    errors: dict[str, str]


class InstalledBundle(NamedTuple):
    name: str
    server_config: StdioServerConfig


def current_platform() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def get_mcpb_install_dir() -> Path:
    return Path.home() / ".mcp-hub" / "mcps"


def get_bundle_install_path(bundle_name: str) -> Path:
    return get_mcpb_install_dir() / bundle_name


def parse_manifest(data: Any) -> McpbManifest:
    """Validate manifest JSON data.

    Raises:
        pydantic.ValidationError: If required fields are missing or malformed.
    """
    return McpbManifest.model_validate(data)


def check_compatibility(manifest: McpbManifest) -> CompatibilityResult:
    issues: list[str] = []
    platform = current_platform()

    compatibility = manifest.compatibility
    if compatibility and compatibility.platforms and platform not in compatibility.platforms:
        issues.append(
            f"This bundle only supports: {', '.join(compatibility.platforms)}. "
            f"Current platform: {platform}"
        )

    return CompatibilityResult(is_compatible=not issues, issues=issues)


def _user_config_value(values: UserConfigValues, key: str) -> str:
    value = values.get(key)
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def expand_mcpb_variables(
    value: str, bundle_path: str | Path, user_config: UserConfigValues | None = None
) -> str:
    """Expand manifest variables.

    Supported: ``${__dirname}``, ``${HOME}``, ``${DESKTOP}``, ``${DOCUMENTS}``,
    ``${DOWNLOADS}``, ``${pathSeparator}``, ``${/}`` and ``${user_config.KEY}``.
    """
    home = Path.home()
    values = user_config or {}

    expanded = (
        value.replace("${__dirname}", str(bundle_path))
        .replace("${HOME}", str(home))
        .replace("${DESKTOP}", str(home / "Desktop"))
        .replace("${DOCUMENTS}", str(home / "Documents"))
        .replace("${DOWNLOADS}", str(home / "Downloads"))
        .replace("${pathSeparator}", os.sep)
        .replace("${/}", os.sep)
    )
    return _USER_CONFIG_PATTERN.sub(lambda m: _user_config_value(values, m.group(1)), expanded)


def _default_mcp_config(manifest: McpbManifest, bundle_path: Path) -> ManifestMcpConfig:
    entry_point = manifest.server.entry_point
    windows = current_platform() == "win32"

    server_type = manifest.server.type

    if server_type == "node":
        return ManifestMcpConfig(command="node", args=[str(bundle_path / entry_point)])

    if server_type == "python":
        return ManifestMcpConfig(
            command="python" if windows else "python3",
            args=[str(bundle_path / entry_point)],
            env={"PYTHONPATH": str(bundle_path / "server" / "lib")},
        )

    if server_type == "uv":
        return ManifestMcpConfig(command="uv", args=["run", str(bundle_path / entry_point)])

    # binary
    command = f"{entry_point}.exe" if windows else entry_point
    return ManifestMcpConfig(command=str(bundle_path / command), args=[])


def generate_server_config(
    manifest: McpbManifest,
    bundle_path: str | Path,
    user_config: UserConfigValues | None = None,
) -> StdioServerConfig:
    """Derive the stdio server config for an extracted bundle."""
    bundle_path = Path(bundle_path)
    mcp_config = manifest.server.mcp_config

    if mcp_config is not None and mcp_config.platform_overrides:
        override = mcp_config.platform_overrides.get(current_platform())
        if override is not None:
            mcp_config = ManifestMcpConfig(
                command=override.command or mcp_config.command,
                args=override.args if override.args is not None else mcp_config.args,
                env={**(mcp_config.env or {}), **(override.env or {})},
            )

    if mcp_config is None:
        mcp_config = _default_mcp_config(manifest, bundle_path)

    def expand(value: str) -> str:
        return expand_mcpb_variables(value, bundle_path, user_config)

    return StdioServerConfig(
        command=expand(mcp_config.command),
        args=[expand(arg) for arg in mcp_config.args] if mcp_config.args is not None else None,
        env=(
            {key: expand(value) for key, value in mcp_config.env.items()}
            if mcp_config.env is not None
            else None
        ),
        cwd=str(bundle_path),
    )


def load_manifest(bundle_path: str | Path) -> McpbManifest:
    """Read and validate ``manifest.json`` from an extracted bundle.

    Raises:
        BundleError: If the manifest is missing, unreadable or invalid.
    """
    manifest_path = Path(bundle_path) / MANIFEST_FILE
    if not manifest_path.exists():
        raise BundleError(f"{MANIFEST_FILE} not found in {bundle_path}")

    try:
        return parse_manifest(json.loads(manifest_path.read_text(encoding="utf-8")))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise BundleError(f"Could not parse {manifest_path}: {e}") from e
    except ValidationError as e:
        raise BundleError(f"Invalid bundle manifest: {e}") from e


def install_bundle_from_extracted(
    extracted_path: str | Path,
    user_config: UserConfigValues | None = None,
    config_path: str | Path | None = None,
) -> InstalledBundle:
    """Register an extracted bundle as a server.

    Declared user config defaults are filled in for keys not given in
    ``user_config`` and the merged values are validated before anything is
    written.

    Raises:
        BundleError: If the manifest is missing or invalid, the bundle does not
            support this platform, or the user config is invalid.
    """
    extracted_path = Path(extracted_path)
    manifest = load_manifest(extracted_path)

    compatibility = check_compatibility(manifest)
    if not compatibility.is_compatible:
        raise BundleError(f"Bundle is not compatible: {', '.join(compatibility.issues)}")

    fields = manifest.user_config or {}
    values = {**get_default_user_config_values(fields), **(user_config or {})}
    validation = validate_user_config(fields, values)
    if not validation.valid:
        raise BundleError(f"Invalid user config: {'; '.join(validation.errors.values())}")

    server_config = generate_server_config(manifest, extracted_path, values)
    add_server(manifest.name, server_config, config_path)
    logger.info(f"Installed MCP bundle '{manifest.name}' from {extracted_path}")

    return InstalledBundle(name=manifest.name, server_config=server_config)


def is_bundle_installed(bundle_name: str) -> bool:
    return (get_bundle_install_path(bundle_name) / MANIFEST_FILE).exists()


def read_installed_manifest(bundle_name: str) -> McpbManifest | None:
    manifest_path = get_bundle_install_path(bundle_name) / MANIFEST_FILE
    if not manifest_path.exists():
        return None

    try:
        return parse_manifest(json.loads(manifest_path.read_text(encoding="utf-8")))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Could not read manifest for bundle '{bundle_name}': {e}")
        return None


def get_default_user_config_values(fields: dict[str, UserConfigField]) -> UserConfigValues:
    """Collect declared defaults, expanding ``${HOME}`` in string values."""
    home = str(Path.home())
    values: UserConfigValues = {}

    for key, field in fields.items():
        default = field.default
        if default is None:
            continue
        if isinstance(default, str):
            values[key] = default.replace("${HOME}", home)
        elif isinstance(default, list):
            values[key] = [v.replace("${HOME}", home) for v in default]
        else:
            values[key] = default

    return values


def validate_user_config(
    fields: dict[str, UserConfigField], values: UserConfigValues
) -> UserConfigValidation:
    errors: dict[str, str] = {}

    for key, field in fields.items():
        value = values.get(key)

        if field.required and (value is None or value == ""):
            errors[key] = f"{field.title} is required"
            continue

        if value is None or value == "":
            continue

        if field.type == "number":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors[key] = f"{field.title} must be a number"
            elif field.min is not None and value < field.min:
                errors[key] = f"{field.title} must be at least {field.min:g}"
            elif field.max is not None and value > field.max:
                errors[key] = f"{field.title} must be at most {field.max:g}"
        elif field.type == "boolean":
            if not isinstance(value, bool):
                errors[key] = f"{field.title} must be a boolean"
        elif field.type in ("directory", "file"):
            if field.multiple:
                if not isinstance(value, list):
                    errors[key] = f"{field.title} must be a list of paths"
            elif not isinstance(value, str):
                errors[key] = f"{field.title} must be a path"

    return UserConfigValidation(valid=not errors, errors=errors)


def _coerce_value(field: UserConfigField, raw: str) -> str | int | float | bool | list[str]:
    if field.type == "number":
        try:
            return int(raw)
        except ValueError:
            pass
        try:
            return float(raw)
        except ValueError:
            return raw
    if field.type == "boolean":
        lowered = raw.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
        return raw
    if field.type in ("directory", "file") and field.multiple:
        return [part for part in raw.split(",") if part]
    return raw


def coerce_user_config_values(
    fields: dict[str, UserConfigField], raw: Mapping[str, str]
) -> UserConfigValues:
    """Convert command line strings to the types the manifest declares.

    Numbers and booleans are parsed, multiple paths are split on commas.
    Values that do not parse are kept as strings so validation reports them.
    Keys the manifest does not declare are passed through unchanged.
    """
    values: UserConfigValues = {}
    for key, value in raw.items():
        field = fields.get(key)
        values[key] = _coerce_value(field, value) if field is not None else value
    return values
