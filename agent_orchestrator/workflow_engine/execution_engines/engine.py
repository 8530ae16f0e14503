"""
Default workflow execution engine.

Written in a functional style around a typed run context: every step
function receives the context, the step and its current input, and returns a
StepOutcome. Run-time failures never escape as exceptions; they become
outcomes. Only PlanStateError (API misuse), exceptions raised by progress
callbacks and outside task cancellation propagate.
"""

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

import jinja2

from agent_orchestrator.expressions import ExpressionEvaluator, create_evaluation_context
from agent_orchestrator.providers.callbacks import ProgressCallback
from agent_orchestrator.providers.observability import (
    ObservabilityProvider,
    get_observability_provider,
)
from agent_orchestrator.workflow_engine.agents import get_agent_name
from agent_orchestrator.workflow_engine.dispatch import DispatchResolver, KeywordDispatchResolver
from agent_orchestrator.workflow_engine.errors import (
    DispatchResolutionError,
    ExecutionError,
    InvalidIterationSourceError,
    InvalidPromptSourceError,
    NoMatchError,
    NotFoundError,
    PlanStateError,
)
from agent_orchestrator.workflow_engine.execution_engines.base import (
    ExecutionEngine,
    ExecutionEngineFactory,
)
from agent_orchestrator.workflow_engine.models import (
    AgentStep,
    DispatchStep,
    ExecutionPlan,
    IterateStep,
    ParallelStep,
    PromptSource,
    SequenceStep,
    Step,
    StepKind,
    StepOutcome,
    StepStatus,
    StoreRef,
    WorkflowConfig,
    WorkflowResult,
)
from agent_orchestrator.workflow_engine.registry import AgentRegistry
from agent_orchestrator.workflow_engine.store import SharedStore, SharedStoreView

logger = logging.getLogger("workflow-engine.engine")

_MISSING = object()


# ----------------------------------------------------------------------------
# Run context
# ----------------------------------------------------------------------------
@dataclass
class RunContext:
    """Everything one run needs, threaded explicitly through every step."""

    plan: ExecutionPlan
    registry: AgentRegistry
    store: SharedStore
    config: WorkflowConfig
    resolver: DispatchResolver
    cancel_event: asyncio.Event
    observability: ObservabilityProvider
    progress_callback: Optional[ProgressCallback] = None
    initial_input: Any = None
    run_id: str = ""
    workflow_name: str = "workflow"
    trace_id: Optional[str] = None
    completed: bool = False

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


def create_run_context(
    plan: Any,
    registry: AgentRegistry,
    store: Optional[Union[SharedStore, Mapping[str, Any]]] = None,
    cancel_event: Optional[asyncio.Event] = None,
    initial_input: Any = None,
    config: Optional[WorkflowConfig] = None,
    resolver: Optional[DispatchResolver] = None,
    progress_callback: Optional[ProgressCallback] = None,
    observability: Optional[ObservabilityProvider] = None,
) -> RunContext:
    if not isinstance(plan, ExecutionPlan):
        raise PlanStateError(
            f"Only a frozen ExecutionPlan can be run, got {type(plan).__name__}; "
            "call freeze() first"
        )

    config = config or WorkflowConfig()
    if isinstance(store, SharedStore):
        run_store = store
    else:
        run_store = SharedStore(dict(store) if store else None)

    if initial_input is None:
        initial_input = run_store.get(config.prompt_key)

    return RunContext(
        plan=plan,
        registry=registry,
        store=run_store,
        config=config,
        resolver=resolver or KeywordDispatchResolver(threshold=config.dispatch_threshold),
        cancel_event=cancel_event or asyncio.Event(),
        observability=observability or get_observability_provider(),
        progress_callback=progress_callback,
        initial_input=initial_input,
        run_id=str(uuid.uuid4()),
        workflow_name=plan.name or "workflow",
    )


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------
def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def _remaining_cancelled(steps: Tuple[Step, ...]) -> List[StepOutcome]:
    return [StepOutcome.cancelled(s.kind, description=s.description) for s in steps]


def _aggregate_status(children: List[StepOutcome]) -> StepStatus:
    if any(child.was_cancelled for child in children):
        return StepStatus.CANCELLED
    if any(child.failed and not child.recovered for child in children):
        return StepStatus.FAILURE
    return StepStatus.SUCCESS


def resolve_prompt(ctx: RunContext, source: Optional[PromptSource], input_value: Any) -> str:
    """
    Turn a step's prompt source into prompt text.

    No source means the step's current input. A StoreRef must name a key
    holding a value. Literal text containing ``{{`` is rendered as a Jinja2
    template over the store and the current input.
    """
    if source is None:
        return ExpressionEvaluator.render_prompt(input_value)

    if isinstance(source, StoreRef):
        value = ctx.store.resolve(source.key, _MISSING)
        if value is _MISSING or value is None:
            raise InvalidPromptSourceError(f"Prompt store key '{source.key}' is not set")
        return ExpressionEvaluator.render_prompt(value)

    if "{{" in source:
        context = create_evaluation_context(
            ctx.store.snapshot(), ExpressionEvaluator.render_prompt(input_value)
        )
        try:
            return ExpressionEvaluator.evaluate_template(source, context)
        except jinja2.TemplateError as e:
            raise InvalidPromptSourceError(f"Prompt template could not be rendered: {e}") from e
    return source


def resolve_items(ctx: RunContext, step: IterateStep) -> List[Any]:
    """Resolve an iterate step's items, literal or from the store."""
    if not isinstance(step.items, StoreRef):
        return list(step.items)

    key = step.items.key
    value = ctx.store.resolve(key, _MISSING)
    if value is _MISSING:
        raise InvalidIterationSourceError(f"Iteration store key '{key}' is not set")
    if not isinstance(value, (list, tuple)):
        raise InvalidIterationSourceError(
            f"Iteration store key '{key}' holds {type(value).__name__}, not a list"
        )
    return list(value)


async def invoke_agent(
    ctx: RunContext, agent: Any, prompt: str, view: SharedStoreView
) -> Any:
    """
    Run one agent invocation.

    Sync and async ``run`` methods are both supported. Any exception raised by
    the agent, and a timeout, is re-raised as ExecutionError.
    """
    name = get_agent_name(agent)
    callback = ctx.progress_callback
    if callback:
        await callback.on_agent_start(name, prompt)

    logger.debug(f"Invoking agent {name}")
    error: Optional[ExecutionError] = None
    try:
        result = agent.run(prompt, view)
        if inspect.isawaitable(result):
            if ctx.config.agent_timeout:
                result = await asyncio.wait_for(result, ctx.config.agent_timeout)
            else:
                result = await result
    except asyncio.TimeoutError as e:
        error = ExecutionError(
            f"Agent '{name}' timed out after {ctx.config.agent_timeout}s", agent=name
        )
        error.__cause__ = e
    except Exception as e:
        logger.error(f"Agent {name} failed: {e}")
        error = ExecutionError(f"Agent '{name}' failed: {e}", agent=name)
        error.__cause__ = e

    if error is not None:
        if callback:
            await callback.on_agent_fail(name, str(error))
        raise error

    if callback:
        await callback.on_agent_complete(name, result)
    return result


async def _run_handler(
    ctx: RunContext, agent: Any, input_value: Any, role: str
) -> StepOutcome:
    name = get_agent_name(agent)
    view = SharedStoreView(ctx.store, ctx.workflow_name, role)
    try:
        value = await invoke_agent(ctx, agent, ExpressionEvaluator.render_prompt(input_value), view)
    except ExecutionError as e:
        return StepOutcome.failure(StepKind.AGENT, e, agent=name, description=role)
    return StepOutcome.success(StepKind.AGENT, value, agent=name, description=role)


async def apply_handlers(ctx: RunContext, step: Step, outcome: StepOutcome) -> StepOutcome:
    """Run the step's on_success or on_fail handler against its outcome."""
    if outcome.succeeded and step.on_success is not None:
        handler = await _run_handler(ctx, step.on_success, outcome.value, "on_success")
        outcome.handler = handler
        if handler.succeeded:
            outcome.value = handler.value
        else:
            outcome.status = StepStatus.FAILURE
            outcome.error_kind = handler.error_kind
            outcome.detail = f"on_success handler failed: {handler.detail}"

    elif outcome.failed and step.on_fail is not None:
        handler = await _run_handler(ctx, step.on_fail, outcome.detail, "on_fail")
        outcome.handler = handler
        if handler.succeeded:
            outcome.recovered = True
            outcome.value = handler.value
            logger.info(f"Failed {step.kind.value} step recovered by on_fail handler")

    return outcome


# ----------------------------------------------------------------------------
# Step execution
# ----------------------------------------------------------------------------
async def execute_agent_step(ctx: RunContext, step: AgentStep, input_value: Any) -> StepOutcome:
    name = get_agent_name(step.agent)
    try:
        prompt = resolve_prompt(ctx, step.prompt, input_value)
    except InvalidPromptSourceError as e:
        return StepOutcome.failure(StepKind.AGENT, e, agent=name)

    view = SharedStoreView(ctx.store, ctx.workflow_name, StepKind.AGENT.value)
    try:
        value = await invoke_agent(ctx, step.agent, prompt, view)
    except ExecutionError as e:
        return StepOutcome.failure(StepKind.AGENT, e, agent=name)

    if step.output_key:
        ctx.store.set(step.output_key, value)
    return StepOutcome.success(StepKind.AGENT, value, agent=name)


async def execute_sequence(
    ctx: RunContext, step: SequenceStep, input_value: Any, label: str, span_id: Optional[str]
) -> StepOutcome:
    """Run children in order, each one receiving the previous child's output."""
    children: List[StepOutcome] = []
    current = input_value

    for i, child in enumerate(step.steps):
        if ctx.cancelled:
            children.extend(_remaining_cancelled(step.steps[i:]))
            return StepOutcome.cancelled(StepKind.SEQUENCE, children=children)

        outcome = await execute_step(
            ctx, child, current, f"{label}/{i + 1}:{child.kind.value}", span_id
        )
        children.append(outcome)

        if outcome.was_cancelled:
            children.extend(_remaining_cancelled(step.steps[i + 1:]))
            return StepOutcome.cancelled(StepKind.SEQUENCE, children=children)

        if outcome.failed and not outcome.recovered:
            children.extend(
                StepOutcome.skipped(
                    rest.kind,
                    f"Not run: sequence child {i + 1} failed",
                    description=rest.description,
                )
                for rest in step.steps[i + 1:]
            )
            return StepOutcome(
                step_kind=StepKind.SEQUENCE,
                status=StepStatus.FAILURE,
                error_kind=outcome.error_kind,
                detail=f"Sequence child {i + 1} failed: {outcome.detail}",
                children=children,
            )

        current = outcome.value

    return StepOutcome.success(StepKind.SEQUENCE, current, children=children)


async def execute_parallel(
    ctx: RunContext, step: ParallelStep, input_value: Any, label: str, span_id: Optional[str]
) -> StepOutcome:
    """
    Run children concurrently and wait for every one of them.

    With ``max_concurrency`` set, children wait for a slot; a child that gets
    its slot after cancellation is recorded as cancelled without running.
    """
    limit = ctx.config.max_concurrency
    semaphore = asyncio.Semaphore(limit) if limit else None

    async def run_child(i: int, child: Step) -> StepOutcome:
        child_label = f"{label}/{i + 1}:{child.kind.value}"
        if semaphore is None:
            if ctx.cancelled:
                return StepOutcome.cancelled(child.kind, description=child.description)
            return await execute_step(ctx, child, input_value, child_label, span_id)

        async with semaphore:
            if ctx.cancelled:
                return StepOutcome.cancelled(child.kind, description=child.description)
            return await execute_step(ctx, child, input_value, child_label, span_id)

    children = list(
        await asyncio.gather(*(run_child(i, child) for i, child in enumerate(step.steps)))
    )
    values = [child.value for child in children]
    status = _aggregate_status(children)

    if status is StepStatus.SUCCESS:
        return StepOutcome.success(StepKind.PARALLEL, values, children=children)
    if status is StepStatus.CANCELLED:
        return StepOutcome.cancelled(
            StepKind.PARALLEL,
            detail="Run was cancelled before every parallel child started",
            value=values,
            children=children,
        )

    failed = [c for c in children if c.failed and not c.recovered]
    return StepOutcome(
        step_kind=StepKind.PARALLEL,
        status=StepStatus.FAILURE,
        value=values,
        error_kind=failed[0].error_kind,
        detail=f"{len(failed)} of {len(children)} parallel children failed",
        children=children,
    )


async def execute_iterate(ctx: RunContext, step: IterateStep) -> StepOutcome:
    """
    Run the step's agent once per item, strictly in item order.

    A failing item does not stop the rest. Cancellation lets the in-flight
    item finish and records every remaining item as cancelled.
    """
    name = get_agent_name(step.agent)
    try:
        items = resolve_items(ctx, step)
    except InvalidIterationSourceError as e:
        return StepOutcome.failure(StepKind.ITERATE, e, agent=name)

    logger.info(f"Iterating agent {name} over {len(items)} items")
    children: List[StepOutcome] = []
    values: List[Any] = []

    for index, item in enumerate(items):
        if ctx.cancelled:
            children.extend(
                StepOutcome.cancelled(StepKind.AGENT, agent=name, index=i)
                for i in range(index, len(items))
            )
            break

        view = SharedStoreView(
            ctx.store, ctx.workflow_name, StepKind.ITERATE.value, item=item, index=index
        )
        try:
            value = await invoke_agent(
                ctx, step.agent, ExpressionEvaluator.render_prompt(item), view
            )
        except ExecutionError as e:
            children.append(StepOutcome.failure(StepKind.AGENT, e, agent=name, index=index))
            values.append(None)
            continue

        children.append(StepOutcome.success(StepKind.AGENT, value, agent=name, index=index))
        values.append(value)

    if step.output_key:
        ctx.store.set(step.output_key, values)

    status = _aggregate_status(children)
    if status is StepStatus.SUCCESS:
        return StepOutcome.success(StepKind.ITERATE, values, agent=name, children=children)
    if status is StepStatus.CANCELLED:
        return StepOutcome.cancelled(
            StepKind.ITERATE,
            detail=f"Run was cancelled after {len(values)} of {len(items)} items",
            value=values,
            agent=name,
            children=children,
        )

    failed = [c.index for c in children if c.failed]
    return StepOutcome(
        step_kind=StepKind.ITERATE,
        status=StepStatus.FAILURE,
        value=values,
        error_kind=children[failed[0]].error_kind,
        detail=f"Items {failed} failed",
        agent=name,
        children=children,
    )


async def execute_dispatch(ctx: RunContext, step: DispatchStep, input_value: Any) -> StepOutcome:
    """Resolve the prompt, route it to one registered agent and run that agent."""
    try:
        prompt = resolve_prompt(ctx, step.prompt, input_value)
    except InvalidPromptSourceError as e:
        return StepOutcome.failure(StepKind.DISPATCH, e)

    try:
        name = ctx.resolver.resolve(prompt, ctx.registry.list_tools())
        agent = ctx.registry.lookup(name)
    except (NoMatchError, NotFoundError) as e:
        logger.warning(f"Dispatch could not be resolved: {e}")
        error = DispatchResolutionError(f"{type(e).__name__}: {e}")
        return StepOutcome.failure(StepKind.DISPATCH, error)

    logger.info(f"Dispatching prompt to agent {name}")
    view = SharedStoreView(ctx.store, ctx.workflow_name, StepKind.DISPATCH.value)
    try:
        value = await invoke_agent(ctx, agent, prompt, view)
    except ExecutionError as e:
        return StepOutcome.failure(StepKind.DISPATCH, e, agent=name)

    ctx.store.set(ctx.config.result_key, value)
    if step.output_key:
        ctx.store.set(step.output_key, value)
    return StepOutcome.success(StepKind.DISPATCH, value, agent=name)


async def execute_step(
    ctx: RunContext,
    step: Step,
    input_value: Any,
    label: str,
    parent_span: Optional[str] = None,
) -> StepOutcome:
    """Run any step, apply its handlers and report it to callbacks and tracing."""
    callback = ctx.progress_callback
    if callback:
        await callback.on_step_start(label, step)

    span_id = ctx.observability.trace_span(
        name=f"step:{label}",
        parent_id=parent_span,
        metadata={"kind": step.kind.value, "description": step.description},
    )
    start = time.time()
    logger.debug(f"Executing step {label}")

    if isinstance(step, AgentStep):
        outcome = await execute_agent_step(ctx, step, input_value)
    elif isinstance(step, SequenceStep):
        outcome = await execute_sequence(ctx, step, input_value, label, span_id)
    elif isinstance(step, ParallelStep):
        outcome = await execute_parallel(ctx, step, input_value, label, span_id)
    elif isinstance(step, IterateStep):
        outcome = await execute_iterate(ctx, step)
    elif isinstance(step, DispatchStep):
        outcome = await execute_dispatch(ctx, step, input_value)
    else:
        raise PlanStateError(f"Unknown step type: {type(step).__name__}")

    outcome = await apply_handlers(ctx, step, outcome)
    outcome.description = step.description
    outcome.duration_ms = _elapsed_ms(start)

    ctx.observability.end_span(
        span_id,
        metadata={
            "status": outcome.status.value,
            "error_kind": outcome.error_kind.value if outcome.error_kind else None,
            "duration_ms": outcome.duration_ms,
        },
    )

    if outcome.succeeded:
        logger.info(f"Step {label} succeeded")
    else:
        logger.warning(f"Step {label} {outcome.status.value}: {outcome.detail}")

    if callback:
        if outcome.succeeded:
            await callback.on_step_complete(label, outcome)
        else:
            await callback.on_step_fail(label, outcome)
    return outcome


async def _drain(ctx: RunContext) -> Tuple[List[StepOutcome], Any]:
    outcomes: List[StepOutcome] = []
    current = ctx.initial_input
    final_output = None
    halted_at: Optional[str] = None

    for i, step in enumerate(ctx.plan.steps):
        label = f"{i + 1}:{step.kind.value}"

        if ctx.cancelled:
            outcomes.append(StepOutcome.cancelled(step.kind, description=step.description))
            continue
        if halted_at is not None:
            outcomes.append(
                StepOutcome.skipped(
                    step.kind, f"Not run: step {halted_at} failed", description=step.description
                )
            )
            continue

        outcome = await execute_step(ctx, step, current, label, ctx.trace_id)
        outcomes.append(outcome)

        if outcome.succeeded or outcome.recovered:
            current = outcome.value
            if outcome.value is not None:
                final_output = outcome.value
        elif outcome.failed and ctx.config.halt_on_failure:
            halted_at = label
            logger.warning(f"Halting workflow {ctx.workflow_name} after step {label}")

    return outcomes, final_output


async def execute_plan(ctx: RunContext) -> WorkflowResult:
    """
    Drain the plan's top-level steps in order and build the WorkflowResult.

    Raises:
        PlanStateError: If the context has already been run
    """
    if ctx.completed:
        raise PlanStateError(f"Run {ctx.run_id} has already completed")
    ctx.completed = True

    start = time.time()
    ctx.trace_id = ctx.observability.trace_workflow(
        ctx.workflow_name, {"run_id": ctx.run_id, "steps": len(ctx.plan.steps)}
    )
    logger.info(f"Running workflow {ctx.workflow_name} ({ctx.run_id}) with {len(ctx.plan)} steps")

    if ctx.progress_callback:
        await ctx.progress_callback.on_workflow_start(ctx.workflow_name, ctx.plan)

    try:
        outcomes, final_output = await _drain(ctx)
    except asyncio.CancelledError:
        ctx.observability.end_span(ctx.trace_id, metadata={"status": "cancelled"})
        raise

    result = WorkflowResult(
        store=ctx.store.snapshot(),
        steps=outcomes,
        final_output=final_output,
        metadata={
            "workflow_name": ctx.workflow_name,
            "run_id": ctx.run_id,
            "duration_ms": _elapsed_ms(start),
        },
    )

    ctx.observability.end_span(
        ctx.trace_id,
        metadata={"succeeded": result.succeeded, "duration_ms": result.metadata["duration_ms"]},
    )
    ctx.observability.flush()
    logger.info(
        f"Workflow {ctx.workflow_name} finished: "
        f"{sum(1 for o in outcomes if o.succeeded)}/{len(outcomes)} steps succeeded"
    )

    if ctx.progress_callback:
        await ctx.progress_callback.on_workflow_complete(ctx.workflow_name, result)
    return result


# ----------------------------------------------------------------------------
# Thin wrapper class exposing the engine through the ExecutionEngine interface
# ----------------------------------------------------------------------------
class WorkflowEngine(ExecutionEngine):
    def __init__(
        self,
        config: Optional[WorkflowConfig] = None,
        resolver: Optional[DispatchResolver] = None,
        progress_callback: Optional[ProgressCallback] = None,
        observability_provider: Optional[ObservabilityProvider] = None,
    ):
        self.config = config or WorkflowConfig()
        self.resolver = resolver
        self.progress_callback = progress_callback
        self.observability_provider = observability_provider

    def create_context(
        self,
        plan: ExecutionPlan,
        registry: AgentRegistry,
        store: Optional[Union[SharedStore, Mapping[str, Any]]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        initial_input: Any = None,
    ) -> RunContext:
        return create_run_context(
            plan,
            registry,
            store=store,
            cancel_event=cancel_event,
            initial_input=initial_input,
            config=self.config,
            resolver=self.resolver,
            progress_callback=self.progress_callback,
            observability=self.observability_provider,
        )

    async def run(
        self,
        plan: ExecutionPlan,
        registry: AgentRegistry,
        store: Optional[Union[SharedStore, Mapping[str, Any]]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        initial_input: Any = None,
    ) -> WorkflowResult:
        ctx = self.create_context(plan, registry, store, cancel_event, initial_input)
        return await execute_plan(ctx)

    async def execute(self, ctx: RunContext) -> WorkflowResult:
        """Run a previously created context. A context can only be run once."""
        return await execute_plan(ctx)


ExecutionEngineFactory.register_engine("default", WorkflowEngine)
