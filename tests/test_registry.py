import pytest

from agent_orchestrator.workflow_engine import (
    AgentRegistry,
    DuplicateAgentError,
    FunctionAgent,
    NotFoundError,
    ToolDescriptor,
)


class PlainAgent:
    """Duck-typed agent exposing name and tools as methods."""

    def __init__(self, name, tools):
        self._name = name
        self._tools = tools

    def name(self):
        return self._name

    def tools(self):
        return self._tools

    def run(self, prompt, context):
        return prompt.upper()


class TestAgentRegistry:
    """Unit tests for the AgentRegistry."""

    def test_register_and_lookup(self, registry, make_agent):
        agent = make_agent("writer")
        registry.register(agent)

        assert registry.lookup("writer") is agent
        assert "writer" in registry
        assert len(registry) == 1
        assert registry.names() == ["writer"]

    def test_lookup_unknown_raises_not_found(self, registry):
        with pytest.raises(NotFoundError) as exc_info:
            registry.lookup("ghost")
        assert exc_info.value.name == "ghost"
        assert "ghost" in str(exc_info.value)

    def test_register_none_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register(None)

    def test_reregister_overwrites_by_default(self, registry, make_agent):
        first = make_agent("writer", tools=["draft"])
        second = make_agent("writer", tools=["edit", "publish"])

        registry.register(first)
        registry.register(second)

        assert registry.lookup("writer") is second
        assert [t.name for t in registry.list_tools()["writer"]] == ["edit", "publish"]
        assert len(registry) == 1

    def test_strict_registry_rejects_duplicates(self, make_agent):
        registry = AgentRegistry(strict=True)
        registry.register(make_agent("writer"))

        with pytest.raises(DuplicateAgentError):
            registry.register(make_agent("writer"))

    def test_strict_override_per_call(self, registry, make_agent):
        registry.register(make_agent("writer"))

        with pytest.raises(DuplicateAgentError):
            registry.register(make_agent("writer"), strict=True)

    def test_list_tools_is_snapshot(self, registry):
        """Mutating the agent's live tool list does not change the registry entry."""
        agent = FunctionAgent("x", lambda prompt, ctx: prompt, tools=["t1", "t2"])
        registry.register(agent)

        agent.tools.append(ToolDescriptor(name="t3"))
        agent.tools[0] = ToolDescriptor(name="replaced")

        assert [t.name for t in registry.list_tools()["x"]] == ["t1", "t2"]

    def test_list_tools_snapshot_of_dict_schema(self, registry):
        schema = {"type": "object", "properties": {"city": {"type": "string"}}}
        agent = PlainAgent("weather", [{"name": "get_weather", "parameters": schema}])
        registry.register(agent)

        schema["properties"]["country"] = {"type": "string"}

        params = registry.list_tools()["weather"][0].parameters
        assert list(params["properties"]) == ["city"]

    def test_list_tools_returns_copies(self, registry, make_agent):
        registry.register(make_agent("writer", tools=["draft"]))

        tools = registry.list_tools()
        tools["writer"].clear()

        assert len(registry.list_tools()["writer"]) == 1

    def test_duck_typed_agent_with_methods(self, registry):
        agent = PlainAgent("shouter", ["shout"])
        registry.register(agent)

        assert registry.lookup("shouter") is agent
        assert registry.list_tools()["shouter"][0].name == "shout"

    def test_unregister(self, registry, make_agent):
        registry.register(make_agent("writer"))
        registry.unregister("writer")

        assert "writer" not in registry
        with pytest.raises(NotFoundError):
            registry.unregister("writer")
