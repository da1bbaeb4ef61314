"""Argument decoding and lazy result encoding for tool calls."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from pydantic import ConfigDict, TypeAdapter, ValidationError, create_model

from pr_agent_tools.structural import (
    ListSchema,
    ObjectSchema,
    StructuralSchema,
    is_value_schema,
)

VALUE_FIELD = "value"

OutputT = TypeVar("OutputT")

RawPayload = str | bytes | bytearray | Mapping[str, Any]


class ToolArgumentsError(ValueError):
    """Raised when a serialized payload does not match a tool's input shape."""

    def __init__(self, message: str, *, tool_name: str, errors: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.errors = errors


@dataclass(frozen=True, slots=True)
class SerializedCall:
    """Raw call request sent by the host agent."""

    tool_name: str
    payload: RawPayload


class TextFormat(Protocol):
    """Turns a typed value into text using its type adapter."""

    def encode(self, adapter: TypeAdapter[Any], value: Any) -> str:
        """Encode the value."""


@dataclass(frozen=True, slots=True)
class JsonFormat:
    """JSON text format backed by pydantic serialization."""

    indent: int | None = None
    by_alias: bool = True

    def encode(self, adapter: TypeAdapter[Any], value: Any) -> str:
        return adapter.dump_json(value, indent=self.indent, by_alias=self.by_alias).decode("utf-8")


class SerializedResult(Generic[OutputT]):
    """Typed tool output whose text form is produced only on request."""

    __slots__ = ("_adapter", "_format", "_value")

    def __init__(
        self,
        value: OutputT,
        text_format: TextFormat,
        adapter: TypeAdapter[OutputT],
    ) -> None:
        self._value = value
        self._format = text_format
        self._adapter = adapter

    @property
    def value(self) -> OutputT:
        return self._value

    def to_text(self, text_format: TextFormat | None = None) -> str:
        """Encode the value with the bound format or an explicit override."""
        return (text_format or self._format).encode(self._adapter, self._value)

    def __str__(self) -> str:
        return self.to_text()

    def __repr__(self) -> str:
        return f"SerializedResult(value={self._value!r})"


class ArgumentCodec:
    """Decode raw call payloads into a tool's input type.

    Scalar and list inputs travel wrapped in a single ``value`` field because
    the host always sends a named-field object. Object inputs are decoded from
    the payload's own fields with no extra level.
    """

    def __init__(self, input_type: Any, input_schema: StructuralSchema, *, tool_name: str) -> None:
        self._tool_name = tool_name
        self._wrapped = is_value_schema(input_schema)
        if self._wrapped:
            self._payload_schema: StructuralSchema = ObjectSchema(
                properties={VALUE_FIELD: input_schema},
                required=(VALUE_FIELD,),
            )
            wrapper_model = create_model(
                f"{_title(tool_name)}Arguments",
                __config__=ConfigDict(extra="forbid"),
                **{VALUE_FIELD: (input_type, ...)},
            )
            self._adapter: TypeAdapter[Any] = TypeAdapter(wrapper_model)
        else:
            self._payload_schema = input_schema
            self._adapter = TypeAdapter(input_type)

    @property
    def wrapped(self) -> bool:
        return self._wrapped

    def decode(self, payload: RawPayload) -> Any:
        """Decode a raw payload into the typed input value."""
        data = self._load(payload)
        unknown = unknown_field_paths(self._payload_schema, data)
        if unknown:
            raise ToolArgumentsError(
                f"Unknown argument field(s) for tool '{self._tool_name}': {', '.join(unknown)}.",
                tool_name=self._tool_name,
                errors=tuple(f"{path}: unknown field" for path in unknown),
            )

        try:
            document = json.dumps(data)
        except (TypeError, ValueError) as error:
            raise ToolArgumentsError(
                f"Arguments for tool '{self._tool_name}' are not JSON-encodable: {error}.",
                tool_name=self._tool_name,
            ) from error

        try:
            decoded = self._adapter.validate_json(document, strict=True)
        except ValidationError as error:
            details = tuple(_format_error(item) for item in error.errors())
            raise ToolArgumentsError(
                f"Invalid arguments for tool '{self._tool_name}': {'; '.join(details)}.",
                tool_name=self._tool_name,
                errors=details,
            ) from error

        if self._wrapped:
            return getattr(decoded, VALUE_FIELD)
        return decoded

    def _load(self, payload: RawPayload) -> dict[str, Any]:
        """Parse the payload into a JSON object."""
        if isinstance(payload, str | bytes | bytearray):
            try:
                data = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as error:
                raise ToolArgumentsError(
                    f"Arguments for tool '{self._tool_name}' are not valid JSON: {error}.",
                    tool_name=self._tool_name,
                ) from error
        elif isinstance(payload, Mapping):
            data = dict(payload)
        else:
            raise ToolArgumentsError(
                f"Unsupported argument payload type '{type(payload).__name__}' "
                f"for tool '{self._tool_name}'.",
                tool_name=self._tool_name,
            )

        if not isinstance(data, dict):
            raise ToolArgumentsError(
                f"Arguments for tool '{self._tool_name}' must be a JSON object.",
                tool_name=self._tool_name,
            )
        return data


def unknown_field_paths(schema: StructuralSchema, data: Any, *, path: str = "") -> list[str]:
    """List dotted paths of payload fields the schema does not declare."""
    unknown: list[str] = []
    if isinstance(schema, ObjectSchema) and isinstance(data, Mapping):
        for key, value in data.items():
            child_path = f"{path}.{key}" if path else str(key)
            property_schema = schema.properties.get(key)
            if property_schema is None:
                unknown.append(child_path)
                continue
            unknown.extend(unknown_field_paths(property_schema, value, path=child_path))
    elif isinstance(schema, ListSchema) and isinstance(data, list):
        for index, item in enumerate(data):
            unknown.extend(unknown_field_paths(schema.items, item, path=f"{path}[{index}]"))
    return unknown


def _format_error(error: Mapping[str, Any]) -> str:
    """Render one pydantic error entry as ``loc: message``."""
    location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
    return f"{location}: {error.get('msg', 'invalid value')}"


def _title(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_")) or "Tool"
