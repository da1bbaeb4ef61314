"""Tool parameter vocabulary exposed to the calling agent."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pr_agent_tools.structural import (
    ListSchema,
    ObjectSchema,
    ReferenceSchema,
    ScalarKind,
    ScalarSchema,
    StructuralSchema,
)


class UnsupportedSchemaError(NotImplementedError):
    """Raised when an unresolved schema reference reaches parameter translation."""

    def __init__(self, reference: ReferenceSchema) -> None:
        super().__init__(
            f"Schema reference to '{reference.name}' cannot be translated; "
            "recursive tool input types are not supported."
        )
        self.reference = reference


class BooleanType(BaseModel):
    """Boolean parameter."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["boolean"] = "boolean"

    @property
    def label(self) -> str:
        return "boolean"

    def to_json_schema(self) -> dict[str, Any]:
        return {"type": "boolean"}


class IntegerType(BaseModel):
    """Integer parameter."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["integer"] = "integer"

    @property
    def label(self) -> str:
        return "integer"

    def to_json_schema(self) -> dict[str, Any]:
        return {"type": "integer"}


class FloatType(BaseModel):
    """Floating point parameter."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["float"] = "float"

    @property
    def label(self) -> str:
        return "float"

    def to_json_schema(self) -> dict[str, Any]:
        return {"type": "number"}


class StringType(BaseModel):
    """String parameter."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["string"] = "string"

    @property
    def label(self) -> str:
        return "string"

    def to_json_schema(self) -> dict[str, Any]:
        return {"type": "string"}


class ListType(BaseModel):
    """List parameter with one item type."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["list"] = "list"
    items: ParameterType

    @property
    def label(self) -> str:
        return f"list<{self.items.label}>"

    def to_json_schema(self) -> dict[str, Any]:
        return {"type": "array", "items": self.items.to_json_schema()}


class ObjectType(BaseModel):
    """Object parameter. Unknown properties are never accepted."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["object"] = "object"
    properties: tuple[ParameterDescriptor, ...] = ()
    required: tuple[str, ...] = ()
    additional_properties: Literal[False] = False

    @property
    def label(self) -> str:
        return "object"

    def to_json_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {prop.name: prop.to_json_schema() for prop in self.properties},
            "required": list(self.required),
            "additionalProperties": self.additional_properties,
        }


ParameterType = Annotated[
    BooleanType | IntegerType | FloatType | StringType | ListType | ObjectType,
    Field(discriminator="kind"),
]


class ParameterDescriptor(BaseModel):
    """One named parameter of a tool."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    type: ParameterType

    def to_json_schema(self) -> dict[str, Any]:
        """Render the parameter as a JSON schema property."""
        schema = self.type.to_json_schema()
        if self.description:
            return {"description": self.description, **schema}
        return schema


class ToolDescriptor(BaseModel):
    """Advertised contract a host uses to build valid tool calls."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    parameters: tuple[ParameterDescriptor, ...] = ()
    required: tuple[str, ...] = ()

    @property
    def optional_parameters(self) -> tuple[ParameterDescriptor, ...]:
        return tuple(param for param in self.parameters if param.name not in self.required)

    def to_function_schema(self) -> dict[str, Any]:
        """Render the descriptor in function-calling format."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {param.name: param.to_json_schema() for param in self.parameters},
                "required": list(self.required),
                "additionalProperties": False,
            },
        }


ListType.model_rebuild()
ObjectType.model_rebuild()
ParameterDescriptor.model_rebuild()
ToolDescriptor.model_rebuild()


SCALAR_PARAMETER_TYPES: dict[ScalarKind, type[BaseModel]] = {
    ScalarKind.BOOLEAN: BooleanType,
    ScalarKind.INTEGER: IntegerType,
    ScalarKind.NUMBER: FloatType,
    ScalarKind.STRING: StringType,
    ScalarKind.CONST: StringType,
}


def to_parameter_type(schema: StructuralSchema) -> ParameterType:
    """Translate a structural schema into the agent parameter vocabulary."""
    if isinstance(schema, ScalarSchema):
        return SCALAR_PARAMETER_TYPES[schema.kind]()
    if isinstance(schema, ListSchema):
        return ListType(items=to_parameter_type(schema.items))
    if isinstance(schema, ObjectSchema):
        return ObjectType(
            properties=parameter_descriptors(schema),
            required=schema.required,
        )
    if isinstance(schema, ReferenceSchema):
        raise UnsupportedSchemaError(schema)
    raise TypeError(f"Unknown structural schema node {schema!r}.")


def parameter_descriptors(schema: ObjectSchema) -> tuple[ParameterDescriptor, ...]:
    """Describe each property of an object shape, in declaration order."""
    return tuple(
        ParameterDescriptor(
            name=name,
            description=property_schema.description or "",
            type=to_parameter_type(property_schema),
        )
        for name, property_schema in schema.properties.items()
    )
