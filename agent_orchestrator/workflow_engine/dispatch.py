"""
Routing of dispatch-step prompts to registered agents.

A resolver is a pure function of the prompt and the registry's tool
snapshots: it returns exactly one agent name or raises NoMatchError. It never
breaks a tie arbitrarily.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set

from agent_orchestrator.workflow_engine.errors import NoMatchError
from agent_orchestrator.workflow_engine.models import ToolDescriptor

logger = logging.getLogger("workflow-engine.dispatch")

_WORD = re.compile(r"[a-z0-9]+")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")

STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "does",
        "for", "from", "get", "give", "has", "have", "how", "i", "in", "is",
        "it", "its", "me", "my", "of", "on", "or", "please", "show", "so",
        "some", "tell", "that", "the", "this", "to", "use", "using", "what",
        "when", "where", "which", "who", "why", "will", "with", "you", "your",
    }
)


def tokenize(text: str) -> Set[str]:
    """Split text into lowercase keyword tokens, breaking up snake_case and camelCase."""
    if not text:
        return set()
    text = _CAMEL_BOUNDARY.sub(r"\1 \2", text)
    return {word for word in _WORD.findall(text.lower()) if word not in STOP_WORDS}


def tool_vocabulary(tools: Iterable[ToolDescriptor]) -> Set[str]:
    """All keyword tokens from tool names, descriptions and parameter schemas."""
    words: Set[str] = set()
    for tool in tools:
        words |= tokenize(tool.name)
        words |= tokenize(tool.description)
        properties = (tool.parameters or {}).get("properties") or {}
        if isinstance(properties, Mapping):
            for param_name, schema in properties.items():
                words |= tokenize(str(param_name))
                if isinstance(schema, Mapping):
                    words |= tokenize(str(schema.get("description") or ""))
    return words


def mentions_name(text: str, name: str) -> bool:
    """True if ``name`` appears in ``text`` as a whole word, ignoring case."""
    if not name:
        return False
    pattern = rf"(?<!\w){re.escape(name.lower())}(?!\w)"
    return re.search(pattern, text.lower()) is not None


class DispatchResolver(ABC):
    """Strategy that picks the agent a dispatch step routes its prompt to."""

    @abstractmethod
    def resolve(
        self, prompt: str, tools: Mapping[str, Sequence[ToolDescriptor]]
    ) -> str:
        """
        Pick exactly one agent for a prompt.

        Args:
            prompt: The resolved dispatch prompt
            tools: Tool snapshots per registered agent name

        Returns:
            The name of the selected agent

        Raises:
            NoMatchError: If no single agent can be selected
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class KeywordDispatchResolver(DispatchResolver):
    """
    Keyword-overlap routing.

    An agent's score is the number of distinct prompt keywords found in its
    tool vocabulary, plus ``name_bonus`` for every tool whose full name
    appears in the prompt as a whole word. The single best agent wins if it reaches
    ``threshold``; a shared top score is ambiguous.
    """

    def __init__(self, threshold: float = 1.0, name_bonus: float = 2.0):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.threshold = threshold
        self.name_bonus = name_bonus

    def score(self, prompt: str, tools: Sequence[ToolDescriptor]) -> float:
        """Relevance of one agent's tools to a prompt."""
        prompt_words = tokenize(prompt)
        overlap = len(prompt_words & tool_vocabulary(tools))
        named = sum(1 for tool in tools if mentions_name(prompt, tool.name))
        return overlap + self.name_bonus * named

    def resolve(
        self, prompt: str, tools: Mapping[str, Sequence[ToolDescriptor]]
    ) -> str:
        if not tools:
            raise NoMatchError("No agents are registered")

        if len(tools) == 1:
            name = next(iter(tools))
            logger.debug(f"Single registered agent, routing to {name}")
            return name

        scores: Dict[str, float] = {
            name: self.score(prompt, agent_tools) for name, agent_tools in tools.items()
        }
        logger.debug(f"Dispatch scores: {scores}")

        candidates = [name for name, value in scores.items() if value >= self.threshold]
        if not candidates:
            raise NoMatchError(
                f"No agent scored at or above threshold {self.threshold}"
            )

        best = max(scores[name] for name in candidates)
        top: List[str] = [name for name in candidates if scores[name] == best]
        if len(top) > 1:
            raise NoMatchError(
                f"Ambiguous dispatch: agents {top} tie with score {best}",
                candidates=top,
            )

        logger.info(f"Dispatch resolved to {top[0]} (score {best})")
        return top[0]

    def __repr__(self) -> str:
        return (
            f"KeywordDispatchResolver(threshold={self.threshold}, "
            f"name_bonus={self.name_bonus})"
        )
