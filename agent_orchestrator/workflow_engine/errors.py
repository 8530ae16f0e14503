"""
Error taxonomy for plan construction and workflow execution.

Build-time errors are raised to the caller immediately. Run-time errors are
captured into the StepOutcome log by the engine; only PlanStateError escapes
``run`` because it always signals misuse of the API.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Error kinds recorded on failed or cancelled step outcomes."""

    INVALID_STEP = "InvalidStepError"
    DUPLICATE_AGENT = "DuplicateAgentError"
    NOT_FOUND = "NotFoundError"
    INVALID_ITERATION_SOURCE = "InvalidIterationSourceError"
    INVALID_PROMPT_SOURCE = "InvalidPromptSourceError"
    NO_MATCH = "NoMatchError"
    DISPATCH_RESOLUTION = "DispatchResolutionError"
    EXECUTION = "ExecutionError"
    CANCELLED = "CancelledError"
    PLAN_STATE = "PlanStateError"


class WorkflowError(Exception):
    """Base class for all workflow errors."""

    kind: ErrorKind = ErrorKind.EXECUTION


class InvalidStepError(WorkflowError, ValueError):
    """A step definition is malformed."""

    kind = ErrorKind.INVALID_STEP


class DuplicateAgentError(WorkflowError):
    """An agent name is already registered and strict registration is on."""

    kind = ErrorKind.DUPLICATE_AGENT


class NotFoundError(WorkflowError, LookupError):
    """No agent is registered under the requested name."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Agent '{name}' is not registered")
        self.name = name


class InvalidIterationSourceError(WorkflowError):
    """An iterate step's store key is missing or does not hold a sequence."""

    kind = ErrorKind.INVALID_ITERATION_SOURCE


class InvalidPromptSourceError(WorkflowError):
    """A prompt references a store key that is absent."""

    kind = ErrorKind.INVALID_PROMPT_SOURCE


class NoMatchError(WorkflowError):
    """The dispatch resolver found no unique target agent."""

    kind = ErrorKind.NO_MATCH

    def __init__(self, message: str, candidates: Optional[list] = None):
        super().__init__(message)
        self.candidates = list(candidates or [])


class DispatchResolutionError(WorkflowError):
    """A dispatch step could not route its prompt to an agent."""

    kind = ErrorKind.DISPATCH_RESOLUTION


class ExecutionError(WorkflowError):
    """An agent invocation failed."""

    kind = ErrorKind.EXECUTION

    def __init__(self, message: str, agent: Optional[str] = None):
        super().__init__(message)
        self.agent = agent


class StepCancelledError(WorkflowError):
    """A step or item was not run because the run was cancelled."""

    kind = ErrorKind.CANCELLED


class PlanStateError(WorkflowError, RuntimeError):
    """The plan or run is used in a state that does not allow the operation."""

    kind = ErrorKind.PLAN_STATE
