"""
Execution engine abstraction so alternative schedulers can be plugged in.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Type, Union

from agent_orchestrator.workflow_engine.models import ExecutionPlan, WorkflowResult
from agent_orchestrator.workflow_engine.registry import AgentRegistry
from agent_orchestrator.workflow_engine.store import SharedStore

logger = logging.getLogger("workflow-engine.execution_engine")


class ExecutionEngine(ABC):
    """Abstract base class for workflow execution engines."""

    @abstractmethod
    async def run(
        self,
        plan: ExecutionPlan,
        registry: AgentRegistry,
        store: Optional[Union[SharedStore, Mapping[str, Any]]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        initial_input: Any = None,
    ) -> WorkflowResult:
        """
        Drain a frozen plan against a registry and a shared store.

        Args:
            plan: The frozen execution plan
            registry: Registry used by dispatch steps
            store: A SharedStore used by reference, or a mapping copied into a
                fresh store. A new empty store when omitted.
            cancel_event: Cooperative cancellation signal
            initial_input: Input of the first step, defaults to the store's
                prompt key

        Returns:
            The final store snapshot and the outcome of every top-level step

        Raises:
            PlanStateError: If ``plan`` is not a frozen ExecutionPlan
        """
        pass


class ExecutionEngineFactory:
    """Factory for creating execution engines."""

    _engines: Dict[str, Type[ExecutionEngine]] = {}

    @classmethod
    def register_engine(
        cls, engine_type: str, engine_class: Type[ExecutionEngine]
    ) -> None:
        """Register a new execution engine type."""
        cls._engines[engine_type] = engine_class

    @classmethod
    def create_engine(cls, engine_type: str = "default", **kwargs: Any) -> ExecutionEngine:
        """Create an execution engine instance based on type."""
        if engine_type not in cls._engines:
            raise ValueError(f"Unknown execution engine type: {engine_type}")

        return cls._engines[engine_type](**kwargs)

    @classmethod
    def engine_types(cls) -> list:
        return list(cls._engines.keys())
