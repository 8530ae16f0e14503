"""
Adapter running OpenAI Agents SDK agents as workflow agents.

The SDK is imported lazily so the rest of the package works without it.
"""

import logging
from typing import Any, List, Optional

from agent_orchestrator.workflow_engine.agents import Agent
from agent_orchestrator.workflow_engine.models import ToolDescriptor
from agent_orchestrator.workflow_engine.store import SharedStoreView

logger = logging.getLogger("workflow-engine.providers.openai_agents")


def _load_runner() -> Any:
    try:
        from agents import Runner
    except ImportError:
        logger.error(
            "OpenAI Agents SDK not installed. Install it with: pip install openai-agents"
        )
        raise
    return Runner


class OpenAIAgentsAgent(Agent):
    """
    Wrap an ``agents.Agent`` so it can be registered and run in a workflow.

    The SDK agent's tools (name, description and JSON parameter schema) are
    exposed as ToolDescriptors for dispatch routing.
    """

    def __init__(self, sdk_agent: Any, runner: Optional[Any] = None, max_turns: Optional[int] = None):
        """
        Args:
            sdk_agent: An OpenAI Agents SDK ``Agent``
            runner: Object with an async ``run(agent, input, context=...)``,
                defaults to ``agents.Runner``
            max_turns: Optional turn limit passed to the runner
        """
        self.sdk_agent = sdk_agent
        self._runner = runner
        self.max_turns = max_turns

    @property
    def name(self) -> str:
        return self.sdk_agent.name

    @property
    def tools(self) -> List[ToolDescriptor]:
        return [ToolDescriptor.coerce(tool) for tool in (getattr(self.sdk_agent, "tools", None) or [])]

    @property
    def runner(self) -> Any:
        if self._runner is None:
            self._runner = _load_runner()
        return self._runner

    async def run(self, prompt: str, context: SharedStoreView) -> Any:
        kwargs = {"context": context}
        if self.max_turns is not None:
            kwargs["max_turns"] = self.max_turns

        logger.info(f"Running OpenAI Agents SDK agent {self.name}")
        result = await self.runner.run(self.sdk_agent, prompt, **kwargs)
        return getattr(result, "final_output", result)
