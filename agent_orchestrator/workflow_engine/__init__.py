"""
Workflow Engine Package.

This package holds the plan model, the shared store, the agent registry,
dispatch routing and the engine that executes frozen plans.
"""

from agent_orchestrator.workflow_engine.agents import Agent, FunctionAgent, LLMAgent
from agent_orchestrator.workflow_engine.dispatch import DispatchResolver, KeywordDispatchResolver
from agent_orchestrator.workflow_engine.errors import (
    DispatchResolutionError,
    DuplicateAgentError,
    ErrorKind,
    ExecutionError,
    InvalidIterationSourceError,
    InvalidPromptSourceError,
    InvalidStepError,
    NoMatchError,
    NotFoundError,
    PlanStateError,
    StepCancelledError,
    WorkflowError,
)
from agent_orchestrator.workflow_engine.execution_engines import (
    ExecutionEngine,
    ExecutionEngineFactory,
    RunContext,
    WorkflowEngine,
)
from agent_orchestrator.workflow_engine.models import (
    AgentStep,
    DispatchStep,
    ExecutionPlan,
    IterateStep,
    ParallelStep,
    SequenceStep,
    Step,
    StepKind,
    StepOutcome,
    StepStatus,
    StoreRef,
    ToolDescriptor,
    WorkflowConfig,
    WorkflowResult,
)
from agent_orchestrator.workflow_engine.plan import PlanBuilder
from agent_orchestrator.workflow_engine.registry import AgentRegistry
from agent_orchestrator.workflow_engine.store import SharedStore, SharedStoreView
from agent_orchestrator.workflow_engine.workflow import Workflow

__all__ = [
    # Agents
    "Agent",
    "FunctionAgent",
    "LLMAgent",
    "AgentRegistry",
    "ToolDescriptor",
    # Plan
    "AgentStep",
    "DispatchStep",
    "ExecutionPlan",
    "IterateStep",
    "ParallelStep",
    "PlanBuilder",
    "SequenceStep",
    "Step",
    "StepKind",
    "StoreRef",
    # State and results
    "SharedStore",
    "SharedStoreView",
    "StepOutcome",
    "StepStatus",
    "WorkflowConfig",
    "WorkflowResult",
    # Dispatch
    "DispatchResolver",
    "KeywordDispatchResolver",
    # Engines
    "ExecutionEngine",
    "ExecutionEngineFactory",
    "RunContext",
    "WorkflowEngine",
    "Workflow",
    # Errors
    "DispatchResolutionError",
    "DuplicateAgentError",
    "ErrorKind",
    "ExecutionError",
    "InvalidIterationSourceError",
    "InvalidPromptSourceError",
    "InvalidStepError",
    "NoMatchError",
    "NotFoundError",
    "PlanStateError",
    "StepCancelledError",
    "WorkflowError",
]
