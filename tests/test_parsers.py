import textwrap

import pytest
import yaml

from agent_orchestrator.parsers import YAMLParser
from agent_orchestrator.workflow_engine import (
    InvalidStepError,
    NotFoundError,
    StepKind,
    StoreRef,
)


@pytest.fixture
def parser():
    return YAMLParser()


@pytest.fixture
def agents(registry, make_agent):
    for name in ("planner", "writer", "notify"):
        registry.register(make_agent(name))
    return registry


class TestParseStep:
    def test_agent_name_shorthand(self, parser, agents):
        step = parser.parse_step("planner", agents)

        assert step.kind == StepKind.AGENT
        assert step.agent is agents.lookup("planner")

    def test_agent_mapping(self, parser, agents):
        step = parser.parse_step(
            {"agent": {"name": "writer", "prompt": "${draft}", "output_key": "final"}},
            agents,
        )

        assert step.prompt == StoreRef(key="draft")
        assert step.output_key == "final"

    def test_composites_and_handlers(self, parser, agents):
        step = parser.parse_step(
            {
                "description": "fan out",
                "parallel": ["planner", {"sequence": ["writer", "planner"]}],
                "on_success": "notify",
                "on_fail": "notify",
            },
            agents,
        )

        assert step.kind == StepKind.PARALLEL
        assert step.description == "fan out"
        assert step.steps[1].kind == StepKind.SEQUENCE
        assert step.on_success is agents.lookup("notify")
        assert step.on_fail is agents.lookup("notify")

    def test_iterate(self, parser, agents):
        literal = parser.parse_step({"iterate": {"items": [1, 2], "agent": "writer"}}, agents)
        stored = parser.parse_step(
            {"iterate": {"items": "${topics}", "agent": "writer", "output_key": "drafts"}},
            agents,
        )

        assert literal.items == (1, 2)
        assert stored.items == StoreRef(key="topics")
        assert stored.output_key == "drafts"

    @pytest.mark.parametrize(
        "body, prompt",
        [(None, None), ("Route me", "Route me"), ({"prompt": "${q}"}, StoreRef(key="q"))],
    )
    def test_dispatch_forms(self, parser, body, prompt):
        step = parser.parse_step({"dispatch": body})

        assert step.kind == StepKind.DISPATCH
        assert step.prompt == prompt

    @pytest.mark.parametrize(
        "entry",
        [
            42,
            {},
            {"agent": "planner", "dispatch": None},
            {"agent": "planner", "retries": 3},
            {"sequence": "planner"},
            {"sequence": []},
            {"iterate": ["planner"]},
            {"iterate": {"items": [], "agent": "planner"}},
            {"dispatch": 5},
            {"agent": {"name": "planner", "model": "gpt-4o"}},
        ],
    )
    def test_invalid_steps(self, parser, agents, entry):
        with pytest.raises(InvalidStepError):
            parser.parse_step(entry, agents)

    def test_unknown_agent(self, parser, agents):
        with pytest.raises(NotFoundError):
            parser.parse_step({"sequence": ["planner", "ghost"]}, agents)


class TestParsePlan:
    def test_parse_plan_str(self, parser, agents):
        document = parser.parse_plan_str(
            textwrap.dedent(
                """
                name: demo
                description: Demo plan
                prompt: Start here
                config:
                  max_concurrency: 2
                store:
                  topics: [a, b]
                steps:
                  - planner
                  - dispatch: ${plan}
                """
            ),
            agents,
        )

        assert document.name == "demo"
        assert document.description == "Demo plan"
        assert document.prompt == "Start here"
        assert document.config == {"max_concurrency": 2}
        assert document.store == {"topics": ["a", "b"]}
        assert [s.kind for s in document.steps] == [StepKind.AGENT, StepKind.DISPATCH]

    def test_invalid_documents(self, parser):
        with pytest.raises(InvalidStepError):
            parser.parse_plan_str("- just\n- a list\n")
        with pytest.raises(InvalidStepError):
            parser.parse_plan({"steps": {"not": "a list"}})
        with pytest.raises(InvalidStepError):
            parser.parse_plan({"stages": []})
        with pytest.raises(yaml.YAMLError):
            parser.parse_plan_str("steps: [unclosed")

    def test_file_references(self, parser, agents, tmp_path):
        (tmp_path / "shared").mkdir()
        (tmp_path / "shared" / "base.yaml").write_text(
            "name: base\nprompt: From base\nstore:\n  tone: dry\n"
        )
        plan_path = tmp_path / "plan.yaml"
        plan_path.write_text("ref: shared/base.yaml\nname: override\nsteps:\n  - writer\n")

        document = parser.parse_plan_file(str(plan_path), agents)

        assert document.name == "override"
        assert document.prompt == "From base"
        assert document.store == {"tone": "dry"}
        assert len(document.steps) == 1

    def test_missing_reference(self, parser, tmp_path):
        plan_path = tmp_path / "plan.yaml"
        plan_path.write_text("ref: missing.yaml\nsteps: []\n")

        with pytest.raises(FileNotFoundError):
            parser.parse_plan_file(str(plan_path))
