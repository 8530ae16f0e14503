from types import SimpleNamespace
from typing import List

import pytest
from pydantic import BaseModel

from agent_orchestrator.workflow_engine import (
    ErrorKind,
    NotFoundError,
    StepCancelledError,
    StepKind,
    StepOutcome,
    StepStatus,
    ToolDescriptor,
    WorkflowConfig,
    WorkflowResult,
)


def get_weather(city: str, units: List[str], days: int = 3) -> str:
    """Get the weather forecast.

    Args:
        city: Name of the city
        days: Number of days
    """
    return city


class TestToolDescriptor:
    """Unit tests for ToolDescriptor construction."""

    def test_from_function(self):
        tool = ToolDescriptor.from_function(get_weather)

        assert tool.name == "get_weather"
        assert tool.description.startswith("Get the weather forecast.")
        assert tool.parameters["required"] == ["city", "units"]
        assert tool.parameters["properties"]["city"] == {
            "type": "string",
            "description": "Name of the city",
        }
        assert tool.parameters["properties"]["days"] == {
            "type": "integer",
            "default": 3,
            "description": "Number of days",
        }
        assert tool.parameters["properties"]["units"]["type"] == "array"

    def test_from_function_overrides(self):
        tool = ToolDescriptor.from_function(lambda x: x, name="identity", description="Echo")

        assert tool.name == "identity"
        assert tool.description == "Echo"

    def test_coerce_name(self):
        assert ToolDescriptor.coerce("search") == ToolDescriptor(name="search")

    def test_coerce_flat_mapping(self):
        tool = ToolDescriptor.coerce(
            {"name": "search", "description": "Search the web", "input_schema": {"type": "object"}}
        )

        assert tool.description == "Search the web"
        assert tool.parameters == {"type": "object"}

    def test_coerce_function_wire_shape(self):
        tool = ToolDescriptor.coerce(
            {
                "type": "function",
                "function": {
                    "name": "search",
                    "description": "Search the web",
                    "parameters": {"type": "object", "properties": {"query": {"type": "string"}}},
                },
            }
        )

        assert tool.name == "search"
        assert "query" in tool.parameters["properties"]

    def test_coerce_sdk_tool_object(self):
        sdk_tool = SimpleNamespace(
            name="web_search",
            description="Search the web",
            params_json_schema={"type": "object", "properties": {}},
        )

        tool = ToolDescriptor.coerce(sdk_tool)

        assert tool.name == "web_search"
        assert tool.parameters == {"type": "object", "properties": {}}
        assert tool.parameters is not sdk_tool.params_json_schema

    def test_coerce_rejects_nameless_tools(self):
        with pytest.raises(ValueError):
            ToolDescriptor.coerce({"description": "no name"})
        with pytest.raises(ValueError):
            ToolDescriptor.coerce(object())

    def test_descriptor_is_frozen(self):
        tool = ToolDescriptor(name="search")
        with pytest.raises(Exception):
            tool.name = "other"


class TestWorkflowConfig:
    def test_defaults(self):
        config = WorkflowConfig()

        assert config.prompt_key == "prompt"
        assert config.result_key == "dispatch_result"
        assert config.dispatch_threshold == 1.0
        assert config.halt_on_failure is True
        assert config.strict_registration is False
        assert config.max_concurrency is None
        assert config.agent_timeout is None

    @pytest.mark.parametrize(
        "raw",
        [
            {"prompt_key": ""},
            {"result_key": " padded"},
            {"dispatch_threshold": 0},
            {"agent_timeout": -1},
            {"no_such_option": 1},
        ],
    )
    def test_invalid_values(self, raw):
        with pytest.raises(ValueError):
            WorkflowConfig.from_dict(raw)

    def test_merged(self):
        config = WorkflowConfig(max_concurrency=4)
        merged = config.merged({"halt_on_failure": False})

        assert merged.max_concurrency == 4
        assert merged.halt_on_failure is False
        assert config.halt_on_failure is True


class TestOutcomes:
    def test_failure_kinds(self):
        generic = StepOutcome.failure(StepKind.AGENT, RuntimeError("boom"))
        typed = StepOutcome.failure(StepKind.AGENT, NotFoundError("ghost"))
        empty = StepOutcome.failure(StepKind.AGENT, RuntimeError())

        assert generic.error_kind == ErrorKind.EXECUTION
        assert generic.detail == "boom"
        assert typed.error_kind == ErrorKind.NOT_FOUND
        assert empty.detail == "RuntimeError"

    def test_status_helpers(self):
        assert StepOutcome.success(StepKind.AGENT, "x").succeeded
        assert StepOutcome.failure(StepKind.AGENT, RuntimeError("x")).failed
        cancelled = StepOutcome.cancelled(StepKind.ITERATE)
        assert cancelled.was_cancelled
        assert cancelled.error_kind == ErrorKind.CANCELLED
        assert StepOutcome.skipped(StepKind.AGENT, "not run").status == StepStatus.SKIPPED

    def test_cancelled_kind_comes_from_error(self):
        cancelled = StepOutcome.cancelled(StepKind.PARALLEL, detail="Stopped early")

        assert cancelled.error_kind == StepCancelledError.kind
        assert cancelled.detail == "Stopped early"

    def test_to_dict(self):
        class Draft(BaseModel):
            title: str

        outcome = StepOutcome.success(
            StepKind.ITERATE,
            [Draft(title="a")],
            agent="writer",
            children=[StepOutcome.success(StepKind.AGENT, Draft(title="a"), index=0)],
        )

        assert outcome.to_dict() == {
            "step_kind": "iterate",
            "status": "success",
            "value": [{"title": "a"}],
            "agent": "writer",
            "children": [
                {"step_kind": "agent", "status": "success", "value": {"title": "a"}, "index": 0}
            ],
        }

    def test_workflow_result(self):
        ok = StepOutcome.success(StepKind.AGENT, "x")
        bad = StepOutcome.failure(StepKind.DISPATCH, RuntimeError("no"))
        result = WorkflowResult(store={"k": object}, steps=[ok, bad], final_output="x")

        assert not result.succeeded
        assert result.failures() == [bad]
        data = result.to_dict()
        assert data["store"]["k"] == str(object)
        assert [step["status"] for step in data["steps"]] == ["success", "failure"]
        assert "metadata" not in data
