"""Conversion of MCP tool input schemas into runtime validators.

The protocol requires a tool's ``inputSchema`` to be an object schema, but some
servers publish malformed ones. Unknown shapes degrade to a validator that
only accepts an empty object instead of failing the whole server.
"""

import keyword
import re
from collections.abc import Mapping
from typing import Any, Literal

from casual_llm import Tool
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    create_model,
)

from mcp_hub.models.server_info import McpToolInfo


def _model_name(name: str) -> str:
    cleaned = re.sub(r"\W", "_", name)
    return cleaned if cleaned and not cleaned[0].isdigit() else f"Model_{cleaned}"


def _usable_field_name(key: str) -> bool:
    return (
        key.isidentifier()
        and not keyword.iskeyword(key)
        and not key.startswith("_")
        and not key.startswith("model_")
        and not hasattr(BaseModel, key)
    )


def _alias_field_name(properties: Mapping[str, Any], fields: Mapping[str, Any]) -> str:
    """Pick a field name that no property or generated field already uses."""
    index = 0
    while f"field_{index}" in properties or f"field_{index}" in fields:
        index += 1
    return f"field_{index}"


def _empty_object_model(name: str) -> type[BaseModel]:
    return create_model(_model_name(name), __config__=ConfigDict(extra="forbid"))


def _object_model(schema: Mapping[str, Any], name: str) -> type[BaseModel]:
    properties = schema.get("properties")
    if not isinstance(properties, Mapping) or not properties:
        return _empty_object_model(name)

    required = schema.get("required")
    required_names = set(required) if isinstance(required, list) else set()

    fields: dict[str, Any] = {}
    for key, prop_schema in properties.items():
        if not isinstance(prop_schema, Mapping):
            prop_schema = {}
        annotation = schema_to_type(prop_schema, f"{name}_{key}")
        description = prop_schema.get("description")
        if not isinstance(description, str):
            description = None

        field_name = key if _usable_field_name(key) else _alias_field_name(properties, fields)
        if key in required_names:
            field = Field(..., alias=key, description=description)
        else:
            # Default is not validated, so an explicit null is still rejected
            field = Field(default=None, alias=key, description=description)
        fields[field_name] = (annotation, field)

    return create_model(
        _model_name(name),
        __config__=ConfigDict(extra="ignore", populate_by_name=True),
        **fields,
    )


def schema_to_type(schema: Mapping[str, Any], name: str = "Input") -> Any:
    """Translate a JSON schema fragment into a pydantic-compatible type.

    Objects become generated models, enums become ``Literal`` types and
    primitives map onto pydantic's strict types. Missing or unknown types
    produce a model that only accepts ``{}``.
    """
    schema_type = schema.get("type")

    if schema_type == "object" or (not schema_type and schema.get("properties")):
        return _object_model(schema, name)

    if schema_type == "string":
        values = schema.get("enum")
        if isinstance(values, list) and values:
            return Literal[tuple(values)]
        return StrictStr

    if schema_type in ("number", "integer"):
        return StrictInt | StrictFloat

    if schema_type == "boolean":
        return StrictBool

    if schema_type == "array":
        items = schema.get("items")
        if isinstance(items, Mapping):
            return list[schema_to_type(items, f"{name}_item")]
        return list[Any]

    if schema_type == "null":
        return None

    return _empty_object_model(name)


def build_validator(schema: Mapping[str, Any] | None, name: str = "Input") -> TypeAdapter[Any]:
    """Build a validator for a tool's input schema."""
    if not isinstance(schema, Mapping):
        schema = {}
    return TypeAdapter(schema_to_type(schema, name))


def validate_arguments(validator: TypeAdapter[Any], args: Any) -> Any:
    """Validate ``args`` and return them in wire form.

    Raises:
        pydantic.ValidationError: If the arguments do not match the schema.
    """
    value = validator.validate_python(args)
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_unset=True)
    return value


def _type_label(schema: Mapping[str, Any]) -> str:
    schema_type = schema.get("type")
    if schema_type == "array":
        items = schema.get("items")
        if isinstance(items, Mapping):
            return f"array of {_type_label(items)}"
        return "array"
    if isinstance(schema_type, str):
        return schema_type
    if schema.get("properties"):
        return "object"
    return "any"


def describe_parameters(schema: Mapping[str, Any] | None) -> str:
    """Render a human-readable parameter contract, one line per property."""
    if not isinstance(schema, Mapping):
        return "No parameters."
    properties = schema.get("properties")
    if not isinstance(properties, Mapping) or not properties:
        return "No parameters."

    required = schema.get("required")
    required_names = set(required) if isinstance(required, list) else set()

    lines = []
    for key, prop_schema in properties.items():
        if not isinstance(prop_schema, Mapping):
            prop_schema = {}
        label = _type_label(prop_schema)
        values = prop_schema.get("enum")
        if isinstance(values, list) and values:
            label += ", one of: " + ", ".join(str(v) for v in values)
        status = "required" if key in required_names else "optional"
        line = f"- {key} ({label}, {status})"
        description = prop_schema.get("description")
        if description:
            line += f": {description}"
        lines.append(line)

    return "\n".join(lines)


def tool_from_mcp(tool_info: McpToolInfo, name: str | None = None) -> Tool:
    """Build a casual-llm Tool definition for an MCP tool.

    Args:
        tool_info: The discovered tool.
        name: Name to expose the tool under. Defaults to the tool's own name.
    """
    description = tool_info.description or f"Tool from MCP server: {tool_info.server_name}"
    input_schema = tool_info.input_schema if isinstance(tool_info.input_schema, dict) else {}

    return Tool.from_input_schema(
        name=name or tool_info.name,
        description=description,
        input_schema=input_schema,
    )
