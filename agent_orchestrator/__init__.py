"""
Agent Orchestrator: compose registered agents into sequence, parallel,
iterate and dispatch workflows that share one key/value store per run.
"""

# The workflow engine must be imported before the parsers package
from agent_orchestrator.expressions import ExpressionEvaluator, create_evaluation_context
from agent_orchestrator.workflow_engine import (
    Agent,
    AgentRegistry,
    DispatchResolver,
    ExecutionEngine,
    ExecutionEngineFactory,
    ExecutionPlan,
    FunctionAgent,
    KeywordDispatchResolver,
    LLMAgent,
    PlanBuilder,
    SharedStore,
    SharedStoreView,
    StepOutcome,
    StepStatus,
    StoreRef,
    ToolDescriptor,
    Workflow,
    WorkflowConfig,
    WorkflowEngine,
    WorkflowResult,
)
from agent_orchestrator.parsers import YAMLParser
from agent_orchestrator.providers.callbacks import (
    ConsoleProgressCallback,
    LoggingProgressCallback,
    ProgressCallback,
)
from agent_orchestrator.providers.observability import (
    ObservabilityProvider,
    configure_observability,
    get_observability_provider,
)

__version__ = "0.1.0"

__all__ = [
    # Workflow
    "Workflow",
    "WorkflowConfig",
    "WorkflowResult",
    "StepOutcome",
    "StepStatus",

    # Agents
    "Agent",
    "FunctionAgent",
    "LLMAgent",
    "AgentRegistry",
    "ToolDescriptor",

    # Plan and state
    "ExecutionPlan",
    "PlanBuilder",
    "StoreRef",
    "SharedStore",
    "SharedStoreView",

    # Dispatch
    "DispatchResolver",
    "KeywordDispatchResolver",

    # Engines
    "ExecutionEngine",
    "ExecutionEngineFactory",
    "WorkflowEngine",

    # Observability
    "ObservabilityProvider",
    "configure_observability",
    "get_observability_provider",

    # Progress callbacks
    "ConsoleProgressCallback",
    "LoggingProgressCallback",
    "ProgressCallback",

    # Expression evaluation
    "ExpressionEvaluator",
    "create_evaluation_context",

    # Parsers
    "YAMLParser",
]
