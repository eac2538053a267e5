"""lms_agent/registry.py

Declarative catalog of the operations the assistant may perform.

Each :class:`ToolDefinition` pairs a description and a parameter schema with
an ``execute`` callable. The registry is filled once at start-up and only
read afterwards.
"""

from __future__ import annotations

# Standard Library
import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

# Third-Party Libraries
from pydantic import BaseModel

# Local Modules
from lms_agent.schema import (
    ObjectNode,
    ValidationFailure,
    build_argument_model,
    tool_descriptor,
    validate_arguments,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDefinition:
    """A named, schema-described operation.

    Attributes:
        name: Unique key the model uses to invoke the tool.
        description: What the tool does. The model reads this to pick tools.
        parameters: Object schema describing every keyword ``execute`` takes.
        execute: Called with validated keyword arguments. Returns a plain
            sentence for the model; recoverable domain failures are returned
            as ``"Error: ..."`` strings, never raised.
    """

    name: str
    description: str
    parameters: ObjectNode
    execute: Callable[..., str]


class ToolRegistry:
    """Ordered, name-keyed collection of tool definitions."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._models: dict[str, type[BaseModel]] = {}
        self.register_all(tools)

    def register(self, tool: ToolDefinition) -> None:
        """Add a tool and compile its argument validator.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._models[tool.name] = build_argument_model(tool.name, tool.parameters)
        self._tools[tool.name] = tool
        logger.info("Registered tool: %s", tool.name)

    def register_all(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def catalog(self) -> list[dict[str, Any]]:
        """Return the tool descriptors offered to the model in the decide round."""
        return [tool_descriptor(tool) for tool in self._tools.values()]

    def validate(self, name: str, raw_arguments: Any) -> dict[str, Any] | ValidationFailure:
        """Validate raw arguments for a registered tool.

        Raises:
            KeyError: If ``name`` is not registered. Callers check membership
                first so unknown tools are reported, not raised.
        """
        return validate_arguments(name, self._models[name], raw_arguments)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
