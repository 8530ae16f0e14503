import inspect
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, Sequence, Union

from agent_orchestrator.expressions import ExpressionEvaluator, create_evaluation_context
from agent_orchestrator.workflow_engine.models import ToolDescriptor
from agent_orchestrator.workflow_engine.store import SharedStoreView

if TYPE_CHECKING:
    from agent_orchestrator.providers.providers import LLMServiceProvider

logger = logging.getLogger("workflow-engine.agents")

ToolLike = Union[ToolDescriptor, dict, str, Callable[..., Any]]


class Agent(ABC):
    """
    Capability interface for anything the workflow can run.

    The registry and engine only rely on ``name``, ``tools`` and ``run``, so
    any object exposing those is accepted; subclassing is a convenience.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name of the agent."""
        pass

    @property
    def tools(self) -> List[ToolDescriptor]:
        """Tools the agent declares, used for dispatch routing."""
        return []

    @abstractmethod
    async def run(self, prompt: str, context: SharedStoreView) -> Any:
        """Execute the agent.

        Args:
            prompt: The prompt for this invocation
            context: View of the run's shared store

        Returns:
            The agent's output
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def get_agent_name(agent: Any) -> str:
    """Read an agent's name from an attribute, property or zero-argument method."""
    name = getattr(agent, "name", None)
    if callable(name):
        name = name()
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Agent {agent!r} does not expose a usable name")
    return name


def get_agent_tools(agent: Any) -> List[Any]:
    """Read an agent's declared tools from an attribute, property or method."""
    tools = getattr(agent, "tools", None)
    if callable(tools):
        tools = tools()
    return list(tools or [])


def is_agent(agent: Any) -> bool:
    """Check whether an object satisfies the agent capability interface."""
    if agent is None or isinstance(agent, (str, bytes)):
        return False
    return callable(getattr(agent, "run", None)) and getattr(agent, "name", None) is not None


def _to_descriptor(tool: ToolLike) -> ToolDescriptor:
    if callable(tool) and not isinstance(tool, (ToolDescriptor, dict, str)):
        return ToolDescriptor.from_function(tool)
    return ToolDescriptor.coerce(tool)


class FunctionAgent(Agent):
    """Agent backed by a plain sync or async callable ``func(prompt, context)``."""

    def __init__(
        self,
        name: str,
        func: Callable[[str, SharedStoreView], Union[Any, Awaitable[Any]]],
        tools: Optional[Sequence[ToolLike]] = None,
        description: Optional[str] = None,
    ):
        if not name:
            raise ValueError("FunctionAgent requires a name")
        self._name = name
        self._func = func
        self._tools = [_to_descriptor(t) for t in (tools or [])]
        self.description = description or inspect.getdoc(func) or ""

    @property
    def name(self) -> str:
        return self._name

    @property
    def tools(self) -> List[ToolDescriptor]:
        return self._tools

    @tools.setter
    def tools(self, tools: Sequence[ToolLike]) -> None:
        self._tools = [_to_descriptor(t) for t in tools]

    async def run(self, prompt: str, context: SharedStoreView) -> Any:
        result = self._func(prompt, context)
        if inspect.isawaitable(result):
            return await result
        return result


class LLMAgent(Agent):
    """Agent that sends its prompt to an LLM service provider."""

    def __init__(
        self,
        name: str,
        provider: "LLMServiceProvider",
        model: str,
        system_prompt: Optional[str] = None,
        prompt_template: Optional[str] = None,
        tools: Optional[Sequence[ToolLike]] = None,
        max_tokens: int = 4096,
    ):
        """
        Initialize an LLM agent.

        Args:
            name: Unique agent name
            provider: Provider used to generate responses
            model: Model name passed to the provider
            system_prompt: Optional system prompt, defaults to a generic one
            prompt_template: Optional Jinja2 template for the user prompt. The
                incoming prompt is available as ``prompt`` and store values by key.
            tools: Declared tools, used for dispatch routing
            max_tokens: Maximum tokens in the response
        """
        self._name = name
        self.provider = provider
        self.model = model
        self.system_prompt = system_prompt or f"You are {name}, an assistant."
        self.prompt_template = prompt_template
        self.max_tokens = max_tokens
        self._tools = [_to_descriptor(t) for t in (tools or [])]

    @property
    def name(self) -> str:
        return self._name

    @property
    def tools(self) -> List[ToolDescriptor]:
        return self._tools

    def build_prompt(self, prompt: str, context: SharedStoreView) -> str:
        """Render the user prompt for one invocation."""
        if not self.prompt_template:
            return prompt
        eval_context = create_evaluation_context(context.snapshot(), prompt)
        return ExpressionEvaluator.evaluate_template(self.prompt_template, eval_context)

    async def run(self, prompt: str, context: SharedStoreView) -> Any:
        user_prompt = self.build_prompt(prompt, context)
        logger.debug(f"Agent {self.name} calling model {self.model}")
        return await self.provider.generate_response(
            system_prompt=self.system_prompt,
            user_prompt=user_prompt,
            model_name=self.model,
            max_tokens=self.max_tokens,
        )
