"""tests/test_registry.py

Tests for the tool registry.
"""

from __future__ import annotations

# Standard Library
import json

# Third-Party Libraries
import pytest

# Local Modules
from lms_agent.registry import ToolDefinition, ToolRegistry
from lms_agent.schema import ValidationFailure, obj, string

EXPECTED_TOOLS = [
    "getCourseCount",
    "createCourse",
    "listCourses",
    "createSection",
    "listSections",
    "createUser",
    "getStudentCount",
    "createEvent",
]


def _echo_tool(name: str = "echo") -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description="Echo the given text",
        parameters=obj(text=string("Text to echo")),
        execute=lambda text: text,
    )


class TestToolRegistry:
    """Test suite for ToolRegistry."""

    def test_register_and_lookup(self) -> None:
        registry = ToolRegistry([_echo_tool()])

        assert "echo" in registry
        assert len(registry) == 1
        assert registry.get("echo").description == "Echo the given text"
        assert registry.get("missing") is None
        assert "missing" not in registry

    def test_duplicate_name_rejected(self) -> None:
        registry = ToolRegistry([_echo_tool()])

        with pytest.raises(ValueError, match="already registered"):
            registry.register(_echo_tool())

    def test_catalog_preserves_registration_order(self) -> None:
        registry = ToolRegistry([_echo_tool("b"), _echo_tool("a")])

        assert registry.names() == ["b", "a"]
        assert [entry["function"]["name"] for entry in registry.catalog()] == ["b", "a"]
        assert [tool.name for tool in registry] == ["b", "a"]

    def test_validate_uses_compiled_model(self) -> None:
        registry = ToolRegistry([_echo_tool()])

        assert registry.validate("echo", {"text": "hi"}) == {"text": "hi"}
        assert isinstance(registry.validate("echo", {}), ValidationFailure)

    def test_validate_unknown_tool_raises(self) -> None:
        with pytest.raises(KeyError):
            ToolRegistry().validate("nope", {})

    def test_lms_registry_contents(self, registry: ToolRegistry) -> None:
        assert registry.names() == EXPECTED_TOOLS
        for entry in registry.catalog():
            assert entry["type"] == "function"
            assert entry["function"]["parameters"]["type"] == "object"

    def test_course_catalog_keeps_description_property(self, registry: ToolRegistry) -> None:
        (entry,) = [e for e in registry.catalog() if e["function"]["name"] == "createCourse"]
        parameters = entry["function"]["parameters"]

        assert parameters["properties"]["description"] == {
            "type": "string",
            "description": "Course description",
        }
        assert "description" not in parameters
        assert json.loads(json.dumps(registry.catalog())) == registry.catalog()

    def test_course_description_survives_validation(self, registry: ToolRegistry) -> None:
        validated = registry.validate(
            "createCourse",
            {
                "title": "Java",
                "courseCode": "CS301",
                "instructorEmail": "prof1@college.edu",
                "description": "Intro to Java",
            },
        )

        assert validated["description"] == "Intro to Java"
