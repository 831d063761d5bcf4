"""Loading, saving and editing the MCP server registry file."""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from mcp_hub.logging import get_logger
from mcp_hub.models.config import McpConfig
from mcp_hub.models.mcp_server_config import (
    HttpServerConfig,
    McpServerConfig,
    SseServerConfig,
    StdioServerConfig,
)

logger = get_logger("config")

CONFIG_PATH_ENV = "MCP_HUB_CONFIG"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def get_default_config_path() -> Path:
    """Return the registry path, honouring ``MCP_HUB_CONFIG`` when set."""
    override = os.getenv(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".mcp-hub" / "config" / "mcp.json"


def _resolve_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return get_default_config_path()
    return Path(config_path)


def load_config(config_path: str | Path | None = None) -> McpConfig:
    """Load the registry.

    A missing file gives an empty registry. An unreadable or invalid file is
    logged and also gives an empty registry.
    """
    path = _resolve_path(config_path)

    if not path.exists():
        return McpConfig()

    try:
        return McpConfig.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as e:
        logger.error(f"Failed to load MCP config from {path}: {e}")
        return McpConfig()


def save_config(
    config: McpConfig | Mapping[str, Any], config_path: str | Path | None = None
) -> None:
    """Validate and write the registry, creating parent directories as needed.

    Raises:
        pydantic.ValidationError: If the registry is structurally invalid.
    """
    path = _resolve_path(config_path)

    if isinstance(config, McpConfig):
        data = config.model_dump(by_alias=True, exclude_none=True)
    else:
        data = dict(config)
    validated = McpConfig.model_validate(data)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        validated.model_dump_json(by_alias=True, exclude_none=True, indent=2),
        encoding="utf-8",
    )


def add_server(
    name: str, server_config: McpServerConfig, config_path: str | Path | None = None
) -> McpConfig:
    """Add or replace a server entry and return the updated registry."""
    config = load_config(config_path)
    config.mcp_servers[name] = server_config
    save_config(config, config_path)
    return config


def remove_server(name: str, config_path: str | Path | None = None) -> McpConfig:
    config = load_config(config_path)
    config.mcp_servers.pop(name, None)
    save_config(config, config_path)
    return config


def get_server(name: str, config_path: str | Path | None = None) -> McpServerConfig | None:
    return load_config(config_path).mcp_servers.get(name)


def list_servers(config_path: str | Path | None = None) -> dict[str, McpServerConfig]:
    return load_config(config_path).mcp_servers


def expand_env_vars(value: str) -> str:
    """Replace every ``${NAME}`` with the environment value, or ``""`` if unset."""
    return _ENV_VAR_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


def _expand_values(values: dict[str, str] | None) -> dict[str, str] | None:
    if values is None:
        return None
    return {key: expand_env_vars(value) for key, value in values.items()}


def expand_server_config(config: McpServerConfig) -> McpServerConfig:
    """Return a copy of ``config`` with environment placeholders expanded.

    Only values are expanded, never env or header keys.
    """
    if isinstance(config, StdioServerConfig):
        return config.model_copy(
            update={
                "command": expand_env_vars(config.command),
                "args": (
                    [expand_env_vars(arg) for arg in config.args]
                    if config.args is not None
                    else None
                ),
                "cwd": expand_env_vars(config.cwd) if config.cwd is not None else None,
                "env": _expand_values(config.env),
            }
        )

    if isinstance(config, (HttpServerConfig, SseServerConfig)):
        return config.model_copy(
            update={
                "url": expand_env_vars(config.url),
                "headers": _expand_values(config.headers),
            }
        )

    return config
