"""Tool contracts: typed specs and the agent-facing wrapper."""

from __future__ import annotations

import asyncio
import collections.abc
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, get_args, get_origin, get_type_hints

import structlog
from pydantic import TypeAdapter

from pr_agent_tools.codec import (
    VALUE_FIELD,
    ArgumentCodec,
    JsonFormat,
    RawPayload,
    SerializedResult,
    TextFormat,
)
from pr_agent_tools.naming import canonical_name
from pr_agent_tools.observability import ToolCallTelemetry
from pr_agent_tools.parameters import (
    ParameterDescriptor,
    ToolDescriptor,
    parameter_descriptors,
    to_parameter_type,
)
from pr_agent_tools.structural import ObjectSchema, StructuralSchema, generate_schema

logger = structlog.get_logger()

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

ToolFunction = Callable[[InputT], OutputT | Awaitable[OutputT]]


class ToolDefinitionError(TypeError):
    """Raised when a tool's input or output type cannot be determined."""


@dataclass(frozen=True, slots=True)
class ToolSpec(Generic[InputT, OutputT]):
    """Typed function bound to a tool name, description, and schemas."""

    name: str
    description: str
    input_type: Any
    output_type: Any
    input_schema: StructuralSchema
    output_schema: StructuralSchema
    invoke: ToolFunction[InputT, OutputT]


def define_tool(
    name: str,
    description: str,
    invoke: ToolFunction[InputT, OutputT],
    *,
    input_type: Any = None,
    output_type: Any = None,
) -> ToolSpec[InputT, OutputT]:
    """Build a tool spec, reading missing types from ``invoke``'s annotations."""
    tool_name = canonical_name(name)
    if input_type is None or output_type is None:
        annotated_input, annotated_output = _annotated_types(invoke, tool_name=tool_name)
        input_type = annotated_input if input_type is None else input_type
        output_type = annotated_output if output_type is None else output_type

    return ToolSpec(
        name=tool_name,
        description=description,
        input_type=input_type,
        output_type=output_type,
        input_schema=generate_schema(input_type),
        output_schema=generate_schema(output_type),
        invoke=invoke,
    )


def _annotated_types(invoke: Callable[..., Any], *, tool_name: str) -> tuple[Any, Any]:
    """Return the single parameter type and the return type of ``invoke``."""
    try:
        hints = get_type_hints(invoke, include_extras=True)
    except (NameError, TypeError) as error:
        raise ToolDefinitionError(
            f"Could not resolve type annotations for tool '{tool_name}': {error}"
        ) from error

    parameters = [
        parameter
        for parameter in inspect.signature(invoke).parameters.values()
        if parameter.kind
        in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    if len(parameters) != 1:
        raise ToolDefinitionError(
            f"Tool '{tool_name}' must take exactly one positional argument, "
            f"found {len(parameters)}."
        )
    input_type = hints.get(parameters[0].name)
    if input_type is None:
        raise ToolDefinitionError(
            f"Tool '{tool_name}' input parameter '{parameters[0].name}' has no annotation."
        )

    if "return" not in hints:
        raise ToolDefinitionError(f"Tool '{tool_name}' has no return annotation.")
    output_type = hints["return"]
    if get_origin(output_type) in (collections.abc.Awaitable, collections.abc.Coroutine):
        output_type = get_args(output_type)[-1]
    return input_type, output_type


class AgentTool(Generic[InputT, OutputT]):
    """Agent-facing wrapper exposing a descriptor and serialized execution."""

    def __init__(self, spec: ToolSpec[InputT, OutputT], *, text_format: TextFormat | None = None):
        self._spec = spec
        self._format: TextFormat = text_format or JsonFormat()
        self._codec = ArgumentCodec(spec.input_type, spec.input_schema, tool_name=spec.name)
        self._output_adapter: TypeAdapter[OutputT] = TypeAdapter(spec.output_type)
        self._descriptor = build_descriptor(spec)

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def spec(self) -> ToolSpec[InputT, OutputT]:
        return self._spec

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    def decode(self, payload: RawPayload) -> InputT:
        """Decode a raw payload into the tool's input type."""
        return self._codec.decode(payload)

    async def execute(self, payload: RawPayload) -> SerializedResult[OutputT]:
        """Decode arguments, run the bound function, and wrap its output."""
        value = self._codec.decode(payload)
        started = time.perf_counter()
        logger.debug("tool_call_started", tool_name=self.name)
        try:
            output = await self._invoke(value)
        except BaseException as error:
            telemetry = ToolCallTelemetry(
                tool_name=self.name,
                duration_seconds=time.perf_counter() - started,
                succeeded=False,
                error_type=type(error).__name__,
            )
            logger.warning("tool_call_failed", **telemetry.as_log_fields())
            raise

        telemetry = ToolCallTelemetry(
            tool_name=self.name,
            duration_seconds=time.perf_counter() - started,
            succeeded=True,
        )
        logger.info("tool_call_finished", **telemetry.as_log_fields())
        return SerializedResult(output, self._format, self._output_adapter)

    async def _invoke(self, value: InputT) -> OutputT:
        """Await coroutine functions; run plain functions in a worker thread."""
        invoke = self._spec.invoke
        if inspect.iscoroutinefunction(invoke):
            return await invoke(value)
        result = await asyncio.to_thread(invoke, value)
        if inspect.isawaitable(result):
            return await result
        return result


def build_descriptor(spec: ToolSpec[Any, Any]) -> ToolDescriptor:
    """Derive the agent-facing descriptor from a spec's input schema."""
    schema = spec.input_schema
    if isinstance(schema, ObjectSchema):
        return ToolDescriptor(
            name=spec.name,
            description=spec.description,
            parameters=parameter_descriptors(schema),
            required=schema.required,
        )

    value_parameter = ParameterDescriptor(
        name=VALUE_FIELD,
        description=schema.description or "",
        type=to_parameter_type(schema),
    )
    return ToolDescriptor(
        name=spec.name,
        description=spec.description,
        parameters=(value_parameter,),
        required=(VALUE_FIELD,),
    )
