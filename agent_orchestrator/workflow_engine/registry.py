import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agent_orchestrator.workflow_engine.agents import get_agent_name, get_agent_tools
from agent_orchestrator.workflow_engine.errors import DuplicateAgentError, NotFoundError
from agent_orchestrator.workflow_engine.models import ToolDescriptor

logger = logging.getLogger("workflow-engine.registry")


@dataclass(frozen=True)
class AgentEntry:
    """A registered agent handle and the tools it declared at registration time."""

    name: str
    agent: Any
    tools: List[ToolDescriptor] = field(default_factory=list)


class AgentRegistry:
    """
    Mapping from agent name to agent handle and a snapshot of its tools.

    Re-registering a name overwrites the previous entry unless strict mode is
    on, in which case DuplicateAgentError is raised.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._entries: Dict[str, AgentEntry] = {}

    def register(self, agent: Any, strict: Optional[bool] = None) -> None:
        """
        Register an agent and snapshot its declared tools.

        Args:
            agent: Any object exposing ``name``, ``tools`` and ``run``
            strict: Override the registry's strict mode for this call

        Raises:
            ValueError: If the agent is None or has no usable name
            DuplicateAgentError: If strict and the name is already taken
        """
        if agent is None:
            raise ValueError("Cannot register a None agent")

        name = get_agent_name(agent)
        strict = self.strict if strict is None else strict

        if name in self._entries:
            if strict:
                raise DuplicateAgentError(f"Agent '{name}' is already registered")
            logger.warning(f"Overwriting registered agent: {name}")

        tools = [ToolDescriptor.coerce(tool) for tool in get_agent_tools(agent)]
        self._entries[name] = AgentEntry(name=name, agent=agent, tools=tools)
        logger.info(f"Registered agent: {name} with {len(tools)} tools")

    def unregister(self, name: str) -> None:
        """Remove an agent. Raises NotFoundError if it is not registered."""
        if name not in self._entries:
            raise NotFoundError(name)
        del self._entries[name]
        logger.info(f"Unregistered agent: {name}")

    def lookup(self, name: str) -> Any:
        """Return the agent handle registered under ``name``."""
        entry = self._entries.get(name)
        if entry is None:
            raise NotFoundError(name)
        return entry.agent

    def list_tools(self) -> Dict[str, List[ToolDescriptor]]:
        """
        Tool snapshots per agent, in registration order.

        The lists are copies; the descriptors themselves are immutable.
        """
        return {name: list(entry.tools) for name, entry in self._entries.items()}

    def names(self) -> List[str]:
        return list(self._entries.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"AgentRegistry(agents={self.names()!r})"
