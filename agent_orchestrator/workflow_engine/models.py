# workflow_engine/models.py
import copy
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Union, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agent_orchestrator.workflow_engine.errors import ErrorKind, StepCancelledError, WorkflowError


def _safe_serialize(obj: Any) -> Any:
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, BaseModel):
        return _safe_serialize(obj.model_dump())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): _safe_serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_safe_serialize(v) for v in obj]
    return str(obj)


# Tool descriptors


class ToolDescriptor(BaseModel):
    """Declared tool of an agent, used only for dispatch-time matching."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    parameters: Optional[Dict[str, Any]] = None

    @classmethod
    def coerce(cls, tool: Any) -> "ToolDescriptor":
        """
        Build a detached descriptor from any supported tool representation.

        Accepts a ToolDescriptor, a tool name, a mapping (either flat or in the
        ``{"type": "function", "function": {...}}`` wire shape) or any object
        exposing ``name`` and ``description`` attributes (SDK tool objects).
        The parameter schema is deep-copied so later changes to the source do
        not leak into the descriptor.
        """
        if isinstance(tool, ToolDescriptor):
            return tool.model_copy(deep=True)

        if isinstance(tool, str):
            return cls(name=tool)

        if isinstance(tool, dict):
            data = tool.get("function", tool) if tool.get("type") == "function" else tool
            if not isinstance(data, dict) or not data.get("name"):
                raise ValueError(f"Tool definition is missing a name: {tool!r}")
            parameters = (
                data.get("parameters")
                or data.get("input_schema")
                or data.get("params_json_schema")
            )
            return cls(
                name=data["name"],
                description=data.get("description") or "",
                parameters=copy.deepcopy(parameters),
            )

        name = getattr(tool, "name", None)
        if not name:
            raise ValueError(
                f"Cannot build a tool descriptor from {type(tool).__name__}"
            )
        parameters = getattr(tool, "params_json_schema", None)
        if parameters is None:
            try:
                parameters = getattr(tool, "parameters", None)
            except NotImplementedError:
                parameters = None
        return cls(
            name=str(name),
            description=getattr(tool, "description", None) or "",
            parameters=copy.deepcopy(parameters) if isinstance(parameters, dict) else None,
        )

    @classmethod
    def from_function(
        cls,
        func: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> "ToolDescriptor":
        """
        Describe a Python function as a tool.

        Args:
            func: The function to describe
            name: Optional name, defaults to the function name
            description: Optional description, defaults to the docstring
        """
        tool_name = name or func.__name__
        return cls(
            name=tool_name,
            description=description
            or inspect.getdoc(func)
            or f"Execute the {tool_name} function",
            parameters=_build_parameters_schema(func),
        )


def _build_parameters_schema(func: Callable[..., Any]) -> Dict[str, Any]:
    """Build JSON schema for function parameters."""
    schema: Dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    sig = inspect.signature(func)
    try:
        type_hints = get_type_hints(func)
    except (NameError, TypeError):
        type_hints = {}
    docstring = inspect.getdoc(func)

    for param_name, param in sig.parameters.items():
        if param_name == "self" or param.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        ):
            continue

        param_schema = _type_to_schema(type_hints.get(param_name, str))

        if param.default is not inspect.Parameter.empty:
            param_schema["default"] = param.default
        else:
            schema["required"].append(param_name)

        if docstring:
            param_desc = _extract_param_description(docstring, param_name)
            if param_desc:
                param_schema["description"] = param_desc

        schema["properties"][param_name] = param_schema

    return schema


def _type_to_schema(typ: Any) -> Dict[str, Any]:
    """Convert Python type to JSON schema."""
    if typ is str:
        return {"type": "string"}
    elif typ is bool:
        return {"type": "boolean"}
    elif typ is int:
        return {"type": "integer"}
    elif typ is float:
        return {"type": "number"}
    elif typ is list or getattr(typ, "__origin__", None) is list:
        item_type = {"type": "string"}
        if getattr(typ, "__args__", None):
            item_type = _type_to_schema(typ.__args__[0])
        return {"type": "array", "items": item_type}
    elif typ is dict or getattr(typ, "__origin__", None) is dict:
        return {"type": "object"}
    else:
        return {"type": "string"}


def _extract_param_description(docstring: str, param_name: str) -> Optional[str]:
    """Extract parameter description from a Google-style docstring."""
    for line in docstring.split("\n"):
        stripped = line.strip()
        if stripped.startswith(f"{param_name}:"):
            desc = stripped.split(":", 1)[1].strip()
            return desc or None
    return None


# Plan representation


class StepKind(str, Enum):
    """Kinds of steps an execution plan can contain"""

    AGENT = "agent"
    SEQUENCE = "sequence"
    PARALLEL = "parallel"
    ITERATE = "iterate"
    DISPATCH = "dispatch"


class StoreRef(BaseModel):
    """Reference to a value held in the shared store."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)

    def __str__(self) -> str:
        return f"${{{self.key}}}"


PromptSource = Union[StoreRef, str]


class BaseStep(BaseModel):
    """Fields shared by every step variant."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    description: Optional[str] = None
    on_success: Optional[Any] = None
    on_fail: Optional[Any] = None


class AgentStep(BaseStep):
    """Run a single agent."""

    kind: Literal[StepKind.AGENT] = StepKind.AGENT
    agent: Any
    prompt: Optional[PromptSource] = None
    output_key: Optional[str] = None


class SequenceStep(BaseStep):
    """Run children strictly one after another."""

    kind: Literal[StepKind.SEQUENCE] = StepKind.SEQUENCE
    steps: Tuple["Step", ...]


class ParallelStep(BaseStep):
    """Run children concurrently and join on all of them."""

    kind: Literal[StepKind.PARALLEL] = StepKind.PARALLEL
    steps: Tuple["Step", ...]


class IterateStep(BaseStep):
    """Run one agent per item, in item order."""

    kind: Literal[StepKind.ITERATE] = StepKind.ITERATE
    items: Union[StoreRef, Tuple[Any, ...]]
    agent: Any
    output_key: Optional[str] = None


class DispatchStep(BaseStep):
    """Route a prompt to the one registered agent whose tools match it."""

    kind: Literal[StepKind.DISPATCH] = StepKind.DISPATCH
    prompt: Optional[PromptSource] = None
    output_key: Optional[str] = None


Step = Union[AgentStep, SequenceStep, ParallelStep, IterateStep, DispatchStep]

SequenceStep.model_rebuild()
ParallelStep.model_rebuild()


class ExecutionPlan(BaseModel):
    """
    Immutable, ordered list of top-level steps.

    Instances are only produced by ``PlanBuilder.freeze``; the engine refuses
    to run anything else.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: Optional[str] = None
    steps: Tuple[Step, ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    def outline(self) -> List[Dict[str, Any]]:
        """Summarise the plan for debugging and logging."""
        return [_outline_step(step) for step in self.steps]


def _agent_label(agent: Any) -> Optional[str]:
    if agent is None:
        return None
    name = getattr(agent, "name", None)
    if callable(name):
        name = name()
    return str(name) if name else type(agent).__name__


def _outline_step(step: Step) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"type": step.kind.value}
    if step.description:
        entry["description"] = step.description
    if isinstance(step, (SequenceStep, ParallelStep)):
        entry["steps"] = [_outline_step(child) for child in step.steps]
    elif isinstance(step, (AgentStep, IterateStep)):
        entry["agent"] = _agent_label(step.agent)
    if isinstance(step, IterateStep):
        entry["items"] = (
            str(step.items) if isinstance(step.items, StoreRef) else len(step.items)
        )
    if step.on_success is not None:
        entry["on_success"] = _agent_label(step.on_success)
    if step.on_fail is not None:
        entry["on_fail"] = _agent_label(step.on_fail)
    return entry


# Configuration


class WorkflowConfig(BaseModel):
    """Runtime configuration for a workflow."""

    model_config = ConfigDict(extra="forbid")

    # Raise DuplicateAgentError instead of overwriting on re-registration
    strict_registration: bool = False

    # Store key seeded with the initial prompt
    prompt_key: str = Field(default="prompt", min_length=1)

    # Store key written by dispatch steps
    result_key: str = Field(default="dispatch_result", min_length=1)

    # Minimum relevance score a dispatch candidate needs
    dispatch_threshold: float = Field(default=1.0, gt=0)

    # Stop draining top-level steps after the first unrecovered failure
    halt_on_failure: bool = True

    max_concurrency: Optional[int] = Field(default=None, gt=0)
    agent_timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("prompt_key", "result_key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        if value != value.strip():
            raise ValueError("store keys may not have surrounding whitespace")
        return value

    @classmethod
    def from_dict(cls, raw_config: Dict[str, Any]) -> "WorkflowConfig":
        """Validate a raw mapping into a WorkflowConfig."""
        try:
            return cls.model_validate(raw_config or {})
        except ValidationError as e:
            raise ValueError(f"Invalid configuration provided: {e}") from e

    def merged(self, overrides: Dict[str, Any]) -> "WorkflowConfig":
        """Return a copy with ``overrides`` applied and validated."""
        return WorkflowConfig.from_dict({**self.model_dump(), **(overrides or {})})


# Results


class StepStatus(str, Enum):
    """Terminal state of a step, child or iteration item"""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


@dataclass
class StepOutcome:
    """
    Outcome of one step, child step or iteration item.

    Composite steps keep their children's outcomes in ``children`` in
    declaration (or item) order.
    """

    step_kind: StepKind
    status: StepStatus
    value: Any = None
    error_kind: Optional[ErrorKind] = None
    detail: Optional[str] = None
    agent: Optional[str] = None  # Agent that produced the value, if any
    index: Optional[int] = None  # Item index for iterate children
    description: Optional[str] = None
    children: List["StepOutcome"] = field(default_factory=list)
    handler: Optional["StepOutcome"] = None  # on_success / on_fail handler outcome
    recovered: bool = False  # on_fail handler produced a replacement value
    duration_ms: Optional[int] = None

    @classmethod
    def success(cls, step_kind: StepKind, value: Any = None, **kwargs: Any) -> "StepOutcome":
        return cls(step_kind=step_kind, status=StepStatus.SUCCESS, value=value, **kwargs)

    @classmethod
    def failure(
        cls, step_kind: StepKind, error: BaseException, **kwargs: Any
    ) -> "StepOutcome":
        kind = error.kind if isinstance(error, WorkflowError) else ErrorKind.EXECUTION
        return cls(
            step_kind=step_kind,
            status=StepStatus.FAILURE,
            error_kind=kind,
            detail=str(error) or type(error).__name__,
            **kwargs,
        )

    @classmethod
    def cancelled(
        cls, step_kind: StepKind, detail: str = "Run was cancelled", **kwargs: Any
    ) -> "StepOutcome":
        error = StepCancelledError(detail)
        return cls(
            step_kind=step_kind,
            status=StepStatus.CANCELLED,
            error_kind=error.kind,
            detail=str(error),
            **kwargs,
        )

    @classmethod
    def skipped(cls, step_kind: StepKind, detail: str, **kwargs: Any) -> "StepOutcome":
        return cls(step_kind=step_kind, status=StepStatus.SKIPPED, detail=detail, **kwargs)

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status is StepStatus.FAILURE

    @property
    def was_cancelled(self) -> bool:
        return self.status is StepStatus.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        """Convert the outcome to a JSON-friendly dictionary."""
        result: Dict[str, Any] = {
            "step_kind": self.step_kind.value,
            "status": self.status.value,
        }
        if self.value is not None:
            result["value"] = _safe_serialize(self.value)
        if self.error_kind:
            result["error_kind"] = self.error_kind.value
        if self.detail:
            result["detail"] = self.detail
        if self.agent:
            result["agent"] = self.agent
        if self.index is not None:
            result["index"] = self.index
        if self.description:
            result["description"] = self.description
        if self.children:
            result["children"] = [child.to_dict() for child in self.children]
        if self.handler:
            result["handler"] = self.handler.to_dict()
        if self.recovered:
            result["recovered"] = True
        if self.duration_ms is not None:
            result["duration_ms"] = self.duration_ms
        return result


@dataclass
class WorkflowResult:
    """
    Result of one workflow run: the final store snapshot and the ordered
    outcome of every top-level step.
    """

    store: Dict[str, Any]
    steps: List[StepOutcome]
    final_output: Any = None  # Output of the last step that produced a value
    metadata: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return all(step.succeeded for step in self.steps)

    def failures(self) -> List[StepOutcome]:
        """Top-level outcomes that did not succeed."""
        return [step for step in self.steps if not step.succeeded]

    def to_dict(self) -> Dict[str, Any]:
        """Convert the workflow result to a dictionary format."""
        result = {
            "store": _safe_serialize(self.store),
            "steps": [step.to_dict() for step in self.steps],
            "final_output": _safe_serialize(self.final_output),
        }
        if self.metadata:
            result["metadata"] = _safe_serialize(self.metadata)
        return result
