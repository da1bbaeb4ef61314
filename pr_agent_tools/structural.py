"""Structural schema model and its generator for typed tool inputs and outputs."""

from __future__ import annotations

import collections.abc
import datetime as dt
import enum
import inspect
import types
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Annotated, Any, Literal, Union, get_args, get_origin
from uuid import UUID

from pydantic import BaseModel
from pydantic.fields import FieldInfo

STRING_LIKE_TYPES: tuple[type, ...] = (str, dt.datetime, dt.date, dt.time, UUID)
LIST_ORIGINS: tuple[Any, ...] = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
)


class UnsupportedTypeError(TypeError):
    """Raised when a Python type has no structural schema shape."""


class ScalarKind(StrEnum):
    """Scalar shape kinds."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMBER = "number"
    STRING = "string"
    CONST = "const"


@dataclass(frozen=True, slots=True)
class ScalarSchema:
    """Single primitive value. ``value`` is only set for ``CONST``."""

    kind: ScalarKind
    description: str | None = None
    value: Any = None


@dataclass(frozen=True, slots=True)
class ListSchema:
    """Homogeneous list of one item shape."""

    items: StructuralSchema
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ObjectSchema:
    """Object with named properties in declaration order."""

    properties: collections.abc.Mapping[str, StructuralSchema] = field(
        default_factory=dict, hash=False
    )
    required: tuple[str, ...] = ()
    name: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", types.MappingProxyType(dict(self.properties)))


@dataclass(frozen=True, slots=True)
class ReferenceSchema:
    """Unresolved reference to a model that is already being expanded."""

    name: str
    description: str | None = None


StructuralSchema = ScalarSchema | ListSchema | ObjectSchema | ReferenceSchema


def is_value_schema(schema: StructuralSchema) -> bool:
    """Return whether a top-level input shape has no natural field names."""
    return isinstance(schema, ScalarSchema | ListSchema)


def generate_schema(tp: Any) -> StructuralSchema:
    """Derive the structural schema for a supported Python type."""
    return _generate(tp, description=None, path=())


def _generate(tp: Any, *, description: str | None, path: tuple[type, ...]) -> StructuralSchema:
    """Generate one shape, tracking models expanded on the current path."""
    tp, description = _unwrap(tp, description)

    origin = get_origin(tp)
    if origin is Literal:
        values = list(get_args(tp))
        if len(values) == 1 and isinstance(values[0], str):
            return ScalarSchema(kind=ScalarKind.CONST, description=description, value=values[0])
        return ScalarSchema(kind=_kind_for_values(values, tp=tp), description=description)

    if origin in LIST_ORIGINS:
        args = get_args(tp)
        if origin is tuple and (len(args) != 2 or args[1] is not Ellipsis):
            raise UnsupportedTypeError(
                f"Unsupported tuple type {tp!r}. Only variadic tuple[T, ...] is supported."
            )
        if not args:
            raise UnsupportedTypeError(f"Unsupported collection type {tp!r} without item type.")
        return ListSchema(
            items=_generate(args[0], description=None, path=path),
            description=description,
        )

    if origin is not None or not isinstance(tp, type):
        raise UnsupportedTypeError(f"Unsupported type {tp!r} for tool schema generation.")

    if tp is bool:
        return ScalarSchema(kind=ScalarKind.BOOLEAN, description=description)
    if tp is int:
        return ScalarSchema(kind=ScalarKind.INTEGER, description=description)
    if tp is float:
        return ScalarSchema(kind=ScalarKind.NUMBER, description=description)
    if issubclass(tp, STRING_LIKE_TYPES):
        return ScalarSchema(kind=ScalarKind.STRING, description=description)
    if issubclass(tp, enum.Enum):
        values = [member.value for member in tp]
        return ScalarSchema(kind=_kind_for_values(values, tp=tp), description=description)
    if issubclass(tp, BaseModel):
        return _generate_object(tp, description=description, path=path)

    raise UnsupportedTypeError(f"Unsupported type {tp!r} for tool schema generation.")


def _generate_object(
    model: type[BaseModel],
    *,
    description: str | None,
    path: tuple[type, ...],
) -> StructuralSchema:
    """Generate an object shape from a pydantic model's declared fields."""
    if model in path:
        return ReferenceSchema(name=model.__name__, description=description)

    nested_path = (*path, model)
    properties: dict[str, StructuralSchema] = {}
    required: list[str] = []
    for field_name, field_info in model.model_fields.items():
        key = field_info.alias or field_name
        properties[key] = _generate(
            field_info.annotation,
            description=field_info.description,
            path=nested_path,
        )
        if field_info.is_required():
            required.append(key)

    return ObjectSchema(
        properties=properties,
        required=tuple(required),
        name=model.__name__,
        description=description or _docstring(model),
    )


def _unwrap(tp: Any, description: str | None) -> tuple[Any, str | None]:
    """Strip ``Annotated`` and ``Optional`` wrappers, collecting a field description."""
    while True:
        origin = get_origin(tp)
        if origin is Annotated:
            tp, *metadata = get_args(tp)
            for item in metadata:
                if isinstance(item, FieldInfo) and item.description and description is None:
                    description = item.description
            continue
        if origin is Union or origin is types.UnionType:
            members = [arg for arg in get_args(tp) if arg is not type(None)]
            if len(members) != 1:
                raise UnsupportedTypeError(
                    f"Unsupported union type {tp!r}. Only Optional[T] is supported."
                )
            tp = members[0]
            continue
        return tp, description


def _kind_for_values(values: list[Any], *, tp: Any) -> ScalarKind:
    """Pick the scalar kind shared by enum or literal values."""
    if values and all(isinstance(value, bool) for value in values):
        return ScalarKind.BOOLEAN
    if any(isinstance(value, bool) for value in values):
        raise UnsupportedTypeError(f"Mixed boolean values are not supported in {tp!r}.")
    if values and all(isinstance(value, int) for value in values):
        return ScalarKind.INTEGER
    if values and all(isinstance(value, int | float) for value in values):
        return ScalarKind.NUMBER
    if values and all(isinstance(value, str) for value in values):
        return ScalarKind.STRING
    raise UnsupportedTypeError(f"Values of {tp!r} do not share one scalar kind.")


def _docstring(model: type[BaseModel]) -> str | None:
    doc = model.__doc__
    if not doc:
        return None
    return inspect.cleandoc(doc)
