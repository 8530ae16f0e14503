"""
Step constructors and the append-only plan builder.

All validation happens here, when a step is built, so a malformed plan never
reaches the engine.
"""

import logging
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple, Type, TypeVar, Union

import jinja2
from pydantic import BaseModel, ValidationError
from typing_extensions import Self

from agent_orchestrator.expressions import ExpressionEvaluator
from agent_orchestrator.workflow_engine.agents import get_agent_name, is_agent
from agent_orchestrator.workflow_engine.errors import InvalidStepError, PlanStateError
from agent_orchestrator.workflow_engine.models import (
    AgentStep,
    DispatchStep,
    ExecutionPlan,
    IterateStep,
    ParallelStep,
    PromptSource,
    SequenceStep,
    Step,
    StoreRef,
)

if TYPE_CHECKING:
    from agent_orchestrator.workflow_engine.registry import AgentRegistry

logger = logging.getLogger("workflow-engine.plan")

STEP_TYPES: Tuple[type, ...] = (AgentStep, SequenceStep, ParallelStep, IterateStep, DispatchStep)

# An agent handle or the name of a registered agent
AgentRef = Union[str, Any]
# A step, or an agent reference that becomes an AgentStep
StepLike = Union[Step, AgentRef]

M = TypeVar("M", bound=BaseModel)


def _build(model: Type[M], **fields: Any) -> M:
    try:
        return model(**fields)
    except ValidationError as e:
        raise InvalidStepError(f"Invalid {model.__name__}: {e}") from e


def resolve_agent(
    agent: AgentRef, registry: Optional["AgentRegistry"] = None, role: str = "agent"
) -> Any:
    """
    Turn an agent reference into an agent handle.

    Names are looked up in the registry, which raises NotFoundError for an
    unknown name.
    """
    if agent is None:
        raise InvalidStepError(f"A step {role} is required")
    if isinstance(agent, str):
        if registry is None:
            raise InvalidStepError(
                f"Agent name '{agent}' cannot be resolved without a registry"
            )
        return registry.lookup(agent)
    if not is_agent(agent):
        raise InvalidStepError(
            f"{type(agent).__name__} is not an agent: it needs a name and a run method"
        )
    try:
        get_agent_name(agent)
    except ValueError as e:
        raise InvalidStepError(str(e)) from e
    return agent


def parse_prompt_source(prompt: Any) -> Optional[PromptSource]:
    """Normalise a prompt argument: None, a StoreRef, a ``${key}`` reference or literal text."""
    if prompt is None or isinstance(prompt, StoreRef):
        return prompt
    if isinstance(prompt, str):
        key = ExpressionEvaluator.parse_reference(prompt)
        if key is not None:
            return _build(StoreRef, key=key)
        if "{{" in prompt:
            try:
                ExpressionEvaluator.check_template(prompt)
            except jinja2.TemplateSyntaxError as e:
                raise InvalidStepError(f"Prompt template is malformed: {e}") from e
        return prompt
    raise InvalidStepError(
        f"Prompt must be text or a store reference, got {type(prompt).__name__}"
    )


def _output_key(key: Optional[str]) -> Optional[str]:
    if key is None:
        return None
    if not isinstance(key, str) or not key.strip():
        raise InvalidStepError(f"output_key must be a non-empty string, got {key!r}")
    return key.strip()


def _child_steps(
    steps: Sequence[StepLike], kind: str, registry: Optional["AgentRegistry"]
) -> Tuple[Step, ...]:
    if isinstance(steps, (str, bytes)) or not isinstance(steps, (list, tuple)):
        raise InvalidStepError(f"{kind} steps must be given as a list")
    if not steps:
        raise InvalidStepError(f"A {kind} step needs at least one child step")
    return tuple(
        child if isinstance(child, STEP_TYPES) else agent_step(child, registry=registry)
        for child in steps
    )


def agent_step(
    agent: AgentRef,
    prompt: Any = None,
    output_key: Optional[str] = None,
    description: Optional[str] = None,
    registry: Optional["AgentRegistry"] = None,
) -> AgentStep:
    """Build a step that runs one agent."""
    return _build(
        AgentStep,
        agent=resolve_agent(agent, registry),
        prompt=parse_prompt_source(prompt),
        output_key=_output_key(output_key),
        description=description,
    )


def sequence_step(
    steps: Sequence[StepLike],
    description: Optional[str] = None,
    registry: Optional["AgentRegistry"] = None,
) -> SequenceStep:
    """Build a step whose children run one after another."""
    return _build(
        SequenceStep,
        steps=_child_steps(steps, "sequence", registry),
        description=description,
    )


def parallel_step(
    steps: Sequence[StepLike],
    description: Optional[str] = None,
    registry: Optional["AgentRegistry"] = None,
) -> ParallelStep:
    """Build a step whose children run concurrently."""
    return _build(
        ParallelStep,
        steps=_child_steps(steps, "parallel", registry),
        description=description,
    )


def iterate_step(
    items: Union[Sequence[Any], StoreRef, str],
    agent: AgentRef,
    output_key: Optional[str] = None,
    description: Optional[str] = None,
    registry: Optional["AgentRegistry"] = None,
) -> IterateStep:
    """
    Build a step that runs ``agent`` once per item.

    Args:
        items: A non-empty list of literal items, a StoreRef, or a store key
            (plain or ``${key}``) that must hold a list when the step runs
        agent: Agent handle or registered agent name
        output_key: Optional store key receiving the list of item results

    Raises:
        InvalidStepError: If the items are empty or the agent is missing
    """
    if isinstance(items, StoreRef):
        source: Union[StoreRef, Tuple[Any, ...]] = items
    elif isinstance(items, str):
        key = ExpressionEvaluator.parse_reference(items)
        key = (key if key is not None else items).strip()
        if not key:
            raise InvalidStepError("Iterate store key may not be empty")
        source = _build(StoreRef, key=key)
    elif isinstance(items, (list, tuple)):
        if not items:
            raise InvalidStepError("Iterate needs a non-empty item list or a store key")
        source = tuple(items)
    else:
        raise InvalidStepError(
            f"Iterate items must be a list or a store key, got {type(items).__name__}"
        )

    return _build(
        IterateStep,
        items=source,
        agent=resolve_agent(agent, registry),
        output_key=_output_key(output_key),
        description=description,
    )


def dispatch_step(
    prompt: Any = None,
    output_key: Optional[str] = None,
    description: Optional[str] = None,
) -> DispatchStep:
    """Build a step that routes its prompt to a registered agent at run time."""
    return _build(
        DispatchStep,
        prompt=parse_prompt_source(prompt),
        output_key=_output_key(output_key),
        description=description,
    )


class PlanBuilder:
    """
    Append-only builder for an ExecutionPlan.

    Every ``append_*`` method validates its step and returns the builder for
    chaining. ``freeze`` produces the immutable plan; afterwards the builder
    rejects further changes.
    """

    def __init__(self, name: Optional[str] = None, registry: Optional["AgentRegistry"] = None):
        self.name = name
        self.registry = registry
        self._steps: List[Step] = []
        self._plan: Optional[ExecutionPlan] = None

    @property
    def is_frozen(self) -> bool:
        return self._plan is not None

    @property
    def steps(self) -> Tuple[Step, ...]:
        return tuple(self._steps)

    def _check_open(self) -> None:
        if self._plan is not None:
            raise PlanStateError("The plan is frozen and can no longer be changed")

    def append(self, step: Step) -> Self:
        """Append an already-built step."""
        self._check_open()
        if not isinstance(step, STEP_TYPES):
            raise InvalidStepError(f"{type(step).__name__} is not a step")
        self._steps.append(step)
        logger.debug(f"Appended {step.kind.value} step #{len(self._steps)}")
        return self

    def append_agent(
        self,
        agent: AgentRef,
        prompt: Any = None,
        output_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Self:
        self._check_open()
        return self.append(
            agent_step(agent, prompt, output_key, description, registry=self.registry)
        )

    def append_sequence(
        self, steps: Sequence[StepLike], description: Optional[str] = None
    ) -> Self:
        self._check_open()
        return self.append(sequence_step(steps, description, registry=self.registry))

    def append_parallel(
        self, steps: Sequence[StepLike], description: Optional[str] = None
    ) -> Self:
        self._check_open()
        return self.append(parallel_step(steps, description, registry=self.registry))

    def append_iterate(
        self,
        items: Union[Sequence[Any], StoreRef, str],
        agent: AgentRef,
        output_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Self:
        self._check_open()
        return self.append(
            iterate_step(items, agent, output_key, description, registry=self.registry)
        )

    def append_dispatch(
        self,
        prompt: Any = None,
        output_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Self:
        self._check_open()
        return self.append(dispatch_step(prompt, output_key, description))

    def _attach_handler(self, field_name: str, agent: AgentRef) -> Self:
        self._check_open()
        if not self._steps:
            raise InvalidStepError(f"{field_name} needs a step to attach to")
        handler = resolve_agent(agent, self.registry, role=field_name)
        self._steps[-1] = self._steps[-1].model_copy(update={field_name: handler})
        return self

    def on_success(self, agent: AgentRef) -> Self:
        """Run ``agent`` with the output of the last appended step when it succeeds."""
        return self._attach_handler("on_success", agent)

    def on_fail(self, agent: AgentRef) -> Self:
        """Run ``agent`` with the error detail of the last appended step when it fails."""
        return self._attach_handler("on_fail", agent)

    def freeze(self) -> ExecutionPlan:
        """Return the immutable plan. Calling it again returns the same plan."""
        if self._plan is None:
            self._plan = ExecutionPlan(name=self.name, steps=tuple(self._steps))
            logger.info(f"Froze plan {self.name or '<unnamed>'} with {len(self._steps)} steps")
        return self._plan

    def __len__(self) -> int:
        return len(self._steps)
