"""
Workflow facade: register agents, build a plan, freeze it and run it.
"""

import asyncio
import copy
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Union, overload

from typing_extensions import Self

from agent_orchestrator.parsers import (
    ConfigParser,
    PlanDocument,
    PlanSource,
    PlanSourceDict,
    PlanSourceFile,
    PlanSourceYAML,
    YAMLParser,
)
from agent_orchestrator.providers.callbacks import ProgressCallback
from agent_orchestrator.providers.observability import ObservabilityProvider
from agent_orchestrator.workflow_engine.dispatch import DispatchResolver
from agent_orchestrator.workflow_engine.errors import PlanStateError
from agent_orchestrator.workflow_engine.execution_engines import (
    ExecutionEngine,
    ExecutionEngineFactory,
)
from agent_orchestrator.workflow_engine.models import (
    ExecutionPlan,
    StoreRef,
    WorkflowConfig,
    WorkflowResult,
)
from agent_orchestrator.workflow_engine.plan import AgentRef, PlanBuilder, StepLike
from agent_orchestrator.workflow_engine.registry import AgentRegistry
from agent_orchestrator.workflow_engine.store import SharedStore

logger = logging.getLogger("workflow-engine.workflow")


class Workflow:
    """
    Chainable builder and runner for one workflow.

    Agents are registered and steps appended during the build phase.
    ``freeze`` ends it; ``run`` then drains the frozen plan against a fresh
    shared store seeded with ``seed_store`` values and the initial prompt.
    """

    def __init__(
        self,
        name: str = "workflow",
        config: Optional[Union[WorkflowConfig, Dict[str, Any]]] = None,
        registry: Optional[AgentRegistry] = None,
        engine: Optional[ExecutionEngine] = None,
        resolver: Optional[DispatchResolver] = None,
        progress_callback: Optional[ProgressCallback] = None,
        observability_provider: Optional[ObservabilityProvider] = None,
        config_parser: Optional[ConfigParser] = None,
    ) -> None:
        """
        Initialize the workflow.

        Args:
            name: Workflow name, used in logs, traces and results
            config: WorkflowConfig or a mapping validated into one
            registry: Agent registry, a new one when omitted
            engine: Execution engine; by default one is created per run from
                the current config, resolver, callback and observability provider
            resolver: Dispatch strategy, keyword matching when omitted
            progress_callback: Optional callback for reporting execution progress
            observability_provider: Optional tracing provider
            config_parser: Parser used by ``load_plan``
        """
        if isinstance(config, dict):
            config = WorkflowConfig.from_dict(config)
        self.name = name
        self.config = config or WorkflowConfig()
        self.registry = (
            registry if registry is not None else AgentRegistry(strict=self.config.strict_registration)
        )
        self.resolver = resolver
        self.progress_callback = progress_callback
        self.observability_provider = observability_provider
        self.config_parser = config_parser or YAMLParser()
        self._engine = engine
        self._builder = PlanBuilder(name, self.registry)
        self._initial_prompt: Optional[str] = None
        self._seed: Dict[str, Any] = {}
        self._plan: Optional[ExecutionPlan] = None

    # --- Build phase ---

    def register_agent(self, agent: Any) -> Self:
        """Register an agent so dispatch steps and name references can find it."""
        self.registry.register(agent)
        return self

    def set_initial_prompt(self, text: str) -> Self:
        """Set the prompt the first step receives; it is also seeded under ``prompt_key``."""
        if not isinstance(text, str):
            raise TypeError(f"The initial prompt must be a string, got {type(text).__name__}")
        self._initial_prompt = text
        return self

    def seed_store(self, key: str, value: Any) -> Self:
        """Add a value that every run's fresh store starts with."""
        if not isinstance(key, str) or not key:
            raise ValueError(f"Store keys must be non-empty strings, got {key!r}")
        self._seed[key] = value
        return self

    def dispatcher(self, resolver: DispatchResolver) -> Self:
        """Use ``resolver`` to route dispatch steps."""
        if not isinstance(resolver, DispatchResolver):
            raise TypeError(f"Expected a DispatchResolver, got {type(resolver).__name__}")
        self.resolver = resolver
        return self

    def append_agent(
        self,
        agent: AgentRef,
        prompt: Any = None,
        output_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Self:
        self._builder.append_agent(agent, prompt, output_key, description)
        return self

    def append_sequence(
        self, steps: Sequence[StepLike], description: Optional[str] = None
    ) -> Self:
        self._builder.append_sequence(steps, description)
        return self

    def append_parallel(
        self, steps: Sequence[StepLike], description: Optional[str] = None
    ) -> Self:
        self._builder.append_parallel(steps, description)
        return self

    def append_iterate(
        self,
        items: Union[Sequence[Any], StoreRef, str],
        agent: AgentRef,
        output_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Self:
        self._builder.append_iterate(items, agent, output_key, description)
        return self

    def append_dispatch(
        self,
        prompt: Any = None,
        output_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Self:
        self._builder.append_dispatch(prompt, output_key, description)
        return self

    def on_success(self, agent: AgentRef) -> Self:
        self._builder.on_success(agent)
        return self

    def on_fail(self, agent: AgentRef) -> Self:
        self._builder.on_fail(agent)
        return self

    def freeze(self) -> ExecutionPlan:
        """Freeze the plan. Required before ``run``."""
        self._plan = self._builder.freeze()
        return self._plan

    @property
    def is_frozen(self) -> bool:
        return self._plan is not None

    @property
    def plan(self) -> Optional[ExecutionPlan]:
        return self._plan

    # --- Declarative plans ---

    @overload
    def load_plan(self, plan_source: PlanSourceDict) -> Self: ...

    @overload
    def load_plan(self, plan_source: PlanSourceFile) -> Self: ...

    @overload
    def load_plan(self, plan_source: PlanSourceYAML) -> Self: ...

    def load_plan(self, plan_source: PlanSource) -> Self:
        """
        Append the steps of a declarative plan from:
          - a Python dict (PlanSourceDict),
          - a file path (PlanSourceFile), or
          - a raw YAML string (PlanSourceYAML).

        The document's prompt, store seeds and config are applied as well.
        Agents it names must already be registered.
        """
        if self._builder.is_frozen:
            raise PlanStateError("Cannot load a plan into a frozen workflow")

        if isinstance(plan_source, dict):
            document = self.config_parser.parse_plan(plan_source, self.registry)
        elif isinstance(plan_source, (str, os.PathLike)) and os.path.exists(plan_source):
            document = self.config_parser.parse_plan_file(str(plan_source), self.registry)
        elif isinstance(plan_source, str):
            document = self.config_parser.parse_plan_str(plan_source, self.registry)
        else:
            raise TypeError(f"Unsupported plan_source type: {type(plan_source).__name__}")

        self._apply_document(document)
        return self

    def _apply_document(self, document: PlanDocument) -> None:
        if document.config:
            self.config = self.config.merged(document.config)
            self.registry.strict = self.config.strict_registration
        if document.name:
            self.name = document.name
            self._builder.name = document.name
        if document.prompt is not None:
            self.set_initial_prompt(document.prompt)
        for key, value in document.store.items():
            self.seed_store(key, value)
        for step in document.steps:
            self._builder.append(step)

    # --- Run phase ---

    def create_store(self) -> SharedStore:
        """A fresh store holding the seeds and the initial prompt."""
        store = SharedStore(copy.deepcopy(self._seed))
        if self._initial_prompt is not None:
            store.set(self.config.prompt_key, self._initial_prompt)
        return store

    def create_engine(self) -> ExecutionEngine:
        if self._engine is not None:
            return self._engine
        return ExecutionEngineFactory.create_engine(
            "default",
            config=self.config,
            resolver=self.resolver,
            progress_callback=self.progress_callback,
            observability_provider=self.observability_provider,
        )

    async def run(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        store: Optional[Union[SharedStore, Dict[str, Any]]] = None,
    ) -> WorkflowResult:
        """
        Run the frozen plan once.

        Args:
            cancel_event: Set it to cancel the run cooperatively
            store: Optional store to run against instead of a fresh one. A
                SharedStore is used by reference; a mapping is copied.

        Raises:
            PlanStateError: If the workflow has not been frozen
        """
        if self._plan is None:
            raise PlanStateError("Call freeze() before run()")

        run_store = store if store is not None else self.create_store()
        return await self.create_engine().run(
            self._plan,
            self.registry,
            store=run_store,
            cancel_event=cancel_event,
            initial_input=self._initial_prompt,
        )

    async def loop(
        self,
        delay: float = 0,
        max_iterations: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[WorkflowResult]:
        """
        Run the frozen plan repeatedly, each time with a fresh store.

        Stops after ``max_iterations`` runs or once ``cancel_event`` is set;
        without either it runs until the task is cancelled.

        Args:
            delay: Seconds to wait between runs
            max_iterations: Optional maximum number of runs
            cancel_event: Optional signal stopping the loop and the current run

        Returns:
            The result of every completed run
        """
        if self._plan is None:
            raise PlanStateError("Call freeze() before loop()")
        if max_iterations is not None and max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        results: List[WorkflowResult] = []
        iteration = 0
        while max_iterations is None or iteration < max_iterations:
            if cancel_event is not None and cancel_event.is_set():
                break
            iteration += 1
            logger.info(f"Workflow {self.name} loop iteration {iteration}")

            result = await self.run(cancel_event=cancel_event)
            results.append(result)
            if not result.succeeded:
                logger.error(
                    f"Workflow {self.name} loop iteration {iteration} failed: "
                    f"{[outcome.detail for outcome in result.failures()]}"
                )

            if delay and (max_iterations is None or iteration < max_iterations):
                await asyncio.sleep(delay)

        return results

    # --- Debugging ---

    def describe(self) -> Dict[str, Any]:
        """Summarise the workflow's configuration and plan."""
        steps = self._plan.outline() if self._plan else ExecutionPlan(
            name=self.name, steps=self._builder.steps
        ).outline()
        return {
            "name": self.name,
            "prompt": self._initial_prompt,
            "resolver": repr(self.resolver) if self.resolver else "KeywordDispatchResolver (default)",
            "agents": self.registry.names(),
            "store_keys": list(self._seed.keys()),
            "frozen": self.is_frozen,
            "config": self.config.model_dump(),
            "steps": steps,
        }

    def debug(self) -> Self:
        """Log the workflow's configuration and plan."""
        info = self.describe()
        logger.info(f"Workflow debug: {info['name']}")
        logger.info(f"  Prompt: {info['prompt']}")
        logger.info(f"  Dispatcher: {info['resolver']}")
        logger.info(f"  Agents: {info['agents']}")
        logger.info(f"  Store keys: {info['store_keys']}")
        logger.info(f"  Frozen: {info['frozen']}")
        for i, step in enumerate(info["steps"]):
            logger.info(f"  Step {i + 1}: {step}")
        return self

    def __repr__(self) -> str:
        return f"Workflow(name={self.name!r}, steps={len(self._builder)}, frozen={self.is_frozen})"
