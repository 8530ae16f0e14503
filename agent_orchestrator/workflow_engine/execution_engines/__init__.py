"""
Execution engine implementations.
"""

from agent_orchestrator.workflow_engine.execution_engines.base import (
    ExecutionEngine,
    ExecutionEngineFactory,
)
from agent_orchestrator.workflow_engine.execution_engines.engine import (
    RunContext,
    WorkflowEngine,
    create_run_context,
)

__all__ = [
    "ExecutionEngine",
    "ExecutionEngineFactory",
    "RunContext",
    "WorkflowEngine",
    "create_run_context",
]
