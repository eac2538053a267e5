"""lms_agent/schema.py

Tool parameter schemas and their two consumers.

Parameters are described with a small tagged variant (string, number,
boolean, enum, object, optional-wrapper, default-wrapper). From that single
description we derive:

* the JSON-Schema ``parameters`` object Ollama's native tool-calling
  interface expects (``to_json_schema`` / ``tool_descriptor``), and
* a pydantic model that validates and coerces the raw arguments a model
  emits (``build_argument_model`` / ``validate_arguments``).

Both transforms are pure: the same node always yields the same output.
"""

from __future__ import annotations

# Standard Library
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Optional, Union

# Third-Party Libraries
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

if TYPE_CHECKING:
    from lms_agent.registry import ToolDefinition

# Case-insensitive; the store lowercases addresses.
EMAIL_PATTERN = r"^[\w.+'-]+@[\w-]+(\.[\w-]+)+$"


# ---------------------------------------------------------------------------
# Schema nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StringNode:
    description: str = ""
    format: str | None = None


@dataclass(frozen=True)
class NumberNode:
    description: str = ""
    integer: bool = False
    minimum: float | None = None
    maximum: float | None = None


@dataclass(frozen=True)
class BooleanNode:
    description: str = ""


@dataclass(frozen=True)
class EnumNode:
    values: tuple[str, ...]
    description: str = ""


@dataclass(frozen=True)
class ObjectNode:
    properties: dict[str, SchemaNode] = field(default_factory=dict)
    description: str = ""


@dataclass(frozen=True)
class OptionalNode:
    """Field may be omitted; it validates to ``None`` when absent."""

    inner: SchemaNode


@dataclass(frozen=True)
class DefaultNode:
    """Field may be omitted; ``value`` is filled in when absent."""

    inner: SchemaNode
    value: Any


SchemaNode = Union[
    StringNode, NumberNode, BooleanNode, EnumNode, ObjectNode, OptionalNode, DefaultNode
]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def string(description: str = "", *, format: str | None = None) -> StringNode:
    return StringNode(description=description, format=format)


def email(description: str = "") -> StringNode:
    return StringNode(description=description, format="email")


def number(
    description: str = "",
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> NumberNode:
    return NumberNode(description=description, minimum=minimum, maximum=maximum)


def integer(
    description: str = "",
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> NumberNode:
    return NumberNode(
        description=description, integer=True, minimum=minimum, maximum=maximum
    )


def boolean(description: str = "") -> BooleanNode:
    return BooleanNode(description=description)


def enum(*values: str, description: str = "") -> EnumNode:
    if not values:
        raise ValueError("enum() requires at least one value")
    return EnumNode(values=tuple(values), description=description)


def obj(_description: str = "", /, **properties: SchemaNode) -> ObjectNode:
    """Build an object node. The description is positional-only so any
    keyword, ``description`` included, names a property."""
    return ObjectNode(properties=dict(properties), description=_description)


def optional(node: SchemaNode) -> OptionalNode:
    return OptionalNode(inner=node)


def default(node: SchemaNode, value: Any) -> DefaultNode:
    return DefaultNode(inner=node, value=value)


# ---------------------------------------------------------------------------
# JSON-Schema bridge
# ---------------------------------------------------------------------------


def is_required(node: SchemaNode) -> bool:
    """Return whether a property must be supplied by the caller."""
    return not isinstance(node, (OptionalNode, DefaultNode))


def to_json_schema(node: SchemaNode) -> dict[str, Any]:
    """Convert a schema node into an inline JSON-Schema fragment.

    Nested objects are expanded in place; no ``$ref`` is ever produced.

    Args:
        node: Any schema node.

    Returns:
        A fresh JSON-Schema dict.

    Raises:
        TypeError: If ``node`` is not a known schema node.
    """
    if isinstance(node, OptionalNode):
        return to_json_schema(node.inner)

    if isinstance(node, DefaultNode):
        schema = to_json_schema(node.inner)
        schema["default"] = node.value
        return schema

    if isinstance(node, StringNode):
        schema = {"type": "string"}
        if node.format:
            schema["format"] = node.format
    elif isinstance(node, NumberNode):
        schema = {"type": "integer" if node.integer else "number"}
        if node.minimum is not None:
            schema["minimum"] = node.minimum
        if node.maximum is not None:
            schema["maximum"] = node.maximum
    elif isinstance(node, BooleanNode):
        schema = {"type": "boolean"}
    elif isinstance(node, EnumNode):
        schema = {"type": "string", "enum": list(node.values)}
    elif isinstance(node, ObjectNode):
        schema = {
            "type": "object",
            "properties": {
                name: to_json_schema(child) for name, child in node.properties.items()
            },
            "required": [
                name for name, child in node.properties.items() if is_required(child)
            ],
            "additionalProperties": False,
        }
    else:
        raise TypeError(f"Unsupported schema node: {node!r}")

    if node.description:
        schema["description"] = node.description
    return schema


def tool_descriptor(tool: ToolDefinition) -> dict[str, Any]:
    """Build the ``{"type": "function", ...}`` entry Ollama expects for a tool."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": to_json_schema(tool.parameters),
        },
    }


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationFailure:
    """Structured result of a rejected argument set."""

    tool_name: str
    errors: tuple[str, ...]

    @property
    def message(self) -> str:
        return "; ".join(self.errors)


_ARGUMENT_CONFIG = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


def _model_name(tool_name: str) -> str:
    return f"{tool_name[:1].upper()}{tool_name[1:]}Arguments"


def _field_spec(name: str, node: SchemaNode) -> tuple[Any, Any]:
    """Return the ``(annotation, FieldInfo)`` pair for one property."""
    if isinstance(node, OptionalNode):
        annotation, _ = _field_spec(name, node.inner)
        fallback = node.inner.value if isinstance(node.inner, DefaultNode) else None
        return Optional[annotation], Field(fallback, **_constraints(node.inner))

    if isinstance(node, DefaultNode):
        annotation, _ = _field_spec(name, node.inner)
        return annotation, Field(node.value, **_constraints(node.inner))

    return _annotation(name, node), Field(..., **_constraints(node))


def _constraints(node: SchemaNode) -> dict[str, Any]:
    """Field keyword arguments carrying the node's description and bounds."""
    if isinstance(node, (OptionalNode, DefaultNode)):
        return _constraints(node.inner)

    kwargs: dict[str, Any] = {}
    if node.description:
        kwargs["description"] = node.description
    if isinstance(node, StringNode) and node.format == "email":
        kwargs["pattern"] = EMAIL_PATTERN
    if isinstance(node, NumberNode):
        if node.minimum is not None:
            kwargs["ge"] = node.minimum
        if node.maximum is not None:
            kwargs["le"] = node.maximum
    return kwargs


def _annotation(name: str, node: SchemaNode) -> Any:
    if isinstance(node, StringNode):
        return str
    if isinstance(node, NumberNode):
        return int if node.integer else float
    if isinstance(node, BooleanNode):
        return bool
    if isinstance(node, EnumNode):
        return Literal[node.values]
    if isinstance(node, ObjectNode):
        return build_argument_model(name, node)
    raise TypeError(f"Unsupported schema node: {node!r}")


def build_argument_model(tool_name: str, node: ObjectNode) -> type[BaseModel]:
    """Compile an object node into a pydantic model for argument validation.

    Unknown keys are dropped rather than rejected, numbers are accepted where
    a string is declared, and pydantic's lax mode turns ``"10"`` into ``10``
    and ``"true"`` into ``True``.
    """
    fields = {
        name: _field_spec(name, child) for name, child in node.properties.items()
    }
    return create_model(
        _model_name(tool_name),
        __config__=_ARGUMENT_CONFIG,
        **fields,
    )


def _decode_raw(raw: Any) -> Mapping[str, Any] | str:
    """Turn raw tool-call arguments into a mapping, or an error string."""
    if raw is None:
        return {}
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            return f"arguments: not valid JSON ({exc.msg})"
    if not isinstance(raw, Mapping):
        return f"arguments: expected an object, got {type(raw).__name__}"
    return raw


def validate_arguments(
    tool_name: str,
    model: type[BaseModel],
    raw: Any,
) -> dict[str, Any] | ValidationFailure:
    """Validate and coerce raw tool-call arguments.

    Args:
        tool_name: Tool the arguments are meant for (used in the failure).
        model: Model produced by :func:`build_argument_model`.
        raw: Arguments as emitted by the model: a mapping, a JSON string,
            or ``None``.

    Returns:
        The coerced arguments with defaults applied, or a
        :class:`ValidationFailure` listing every problem found.
    """
    decoded = _decode_raw(raw)
    if isinstance(decoded, str):
        return ValidationFailure(tool_name=tool_name, errors=(decoded,))

    try:
        parsed = model.model_validate(dict(decoded))
    except ValidationError as exc:
        errors = tuple(
            f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: "
            f"{error['msg']}"
            for error in exc.errors()
        )
        return ValidationFailure(tool_name=tool_name, errors=errors)

    return parsed.model_dump()
