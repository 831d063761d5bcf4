from . import models
from .bundle import install_bundle_from_extracted, parse_manifest
from .client import (
    McpClientManager,
    ServerNotConnectedError,
    get_default_manager,
    reset_default_manager,
)
from .config import (
    add_server,
    expand_env_vars,
    expand_server_config,
    get_server,
    list_servers,
    load_config,
    remove_server,
    save_config,
)
from .convert_tools import build_validator, describe_parameters
from .paths import get_augmented_path, resolve_executable_path
from .tools import McpTool, describe_all, execute_tool_call, wrap_all, wrap_tool
from .transport import UnknownTransportError, build_transport

__all__ = [
    "McpClientManager",
    "ServerNotConnectedError",
    "get_default_manager",
    "reset_default_manager",
    "load_config",
    "save_config",
    "add_server",
    "remove_server",
    "get_server",
    "list_servers",
    "expand_env_vars",
    "expand_server_config",
    "build_validator",
    "describe_parameters",
    "resolve_executable_path",
    "get_augmented_path",
    "build_transport",
    "UnknownTransportError",
    "McpTool",
    "wrap_tool",
    "wrap_all",
    "describe_all",
    "execute_tool_call",
    "install_bundle_from_extracted",
    "parse_manifest",
    "models",
]
