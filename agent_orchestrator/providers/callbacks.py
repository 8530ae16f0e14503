"""
Callbacks for workflow execution progress reporting.
"""

import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("workflow-engine.callbacks")


class ProgressCallback:
    """Interface for workflow progress callbacks. Every hook is optional."""

    async def on_workflow_start(self, workflow_name: str, plan: Any) -> None:
        """Called when a workflow run starts."""
        pass

    async def on_workflow_complete(self, workflow_name: str, result: Any) -> None:
        """Called when a workflow run has drained its plan."""
        pass

    async def on_step_start(self, step_name: str, step: Any) -> None:
        """Called when a step starts execution."""
        pass

    async def on_step_complete(self, step_name: str, outcome: Any) -> None:
        """Called when a step succeeds."""
        pass

    async def on_step_fail(self, step_name: str, outcome: Any) -> None:
        """Called when a step fails or is cancelled."""
        pass

    async def on_agent_start(self, agent_name: str, prompt: str) -> None:
        """Called before an agent is invoked."""
        pass

    async def on_agent_complete(self, agent_name: str, output: Any) -> None:
        """Called after an agent invocation returns."""
        pass

    async def on_agent_fail(self, agent_name: str, error: str) -> None:
        """Called when an agent invocation raises or times out."""
        pass


class ConsoleProgressCallback(ProgressCallback):
    """Implementation of ProgressCallback that prints progress to the console."""

    def __init__(
        self,
        on_agent_callback: Optional[Callable[[str, Any], None]] = None,
        stream_handler: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize ConsoleProgressCallback.

        Args:
            on_agent_callback: Optional callback executed with the agent name
                and output whenever an agent completes
            stream_handler: Optional handler function for streaming output
        """
        self.on_agent_callback = on_agent_callback
        self.stream = stream_handler if stream_handler else print

    async def on_workflow_start(self, workflow_name: str, plan: Any) -> None:
        self.stream(f"Starting workflow: {workflow_name}")
        if hasattr(plan, "steps"):
            self.stream(f"Steps: {len(plan.steps)}")

    async def on_workflow_complete(self, workflow_name: str, result: Any) -> None:
        self.stream(f"Workflow complete: {workflow_name}")

    async def on_step_start(self, step_name: str, step: Any) -> None:
        self.stream(f"\n🔄 Starting step: {step_name}")
        if getattr(step, "description", None):
            self.stream(f"  Description: {step.description}")

    async def on_step_complete(self, step_name: str, outcome: Any) -> None:
        self.stream(f"✅ Step complete: {step_name}")

    async def on_step_fail(self, step_name: str, outcome: Any) -> None:
        status = getattr(outcome, "status", None)
        label = "cancelled" if getattr(status, "value", status) == "cancelled" else "failed"
        self.stream(f"❌ Step {label}: {step_name}")
        if getattr(outcome, "detail", None):
            self.stream(f"  Error: {outcome.detail}")

    async def on_agent_start(self, agent_name: str, prompt: str) -> None:
        self.stream(f"  🔹 Running agent: {agent_name}")

    async def on_agent_complete(self, agent_name: str, output: Any) -> None:
        self.stream(f"  ✅ Agent complete: {agent_name}")
        if self.on_agent_callback:
            self.on_agent_callback(agent_name, output)

    async def on_agent_fail(self, agent_name: str, error: str) -> None:
        self.stream(f"  ❌ Agent failed: {agent_name}")
        self.stream(f"    Error: {error}")


class StreamingProgressCallback(ConsoleProgressCallback):
    """Progress callback that also emits structured events, e.g. to a web client."""

    def __init__(
        self,
        stream_fn: Callable[[Dict[str, Any]], None],
        on_agent_callback: Optional[Callable[[str, Any], None]] = None,
        stream_handler: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Initialize StreamingProgressCallback.

        Args:
            stream_fn: Function to send streaming updates (should accept a dict)
            on_agent_callback: Optional callback executed when an agent completes
            stream_handler: Optional handler for the console lines
        """
        super().__init__(on_agent_callback=on_agent_callback, stream_handler=stream_handler)
        self.stream_fn = stream_fn

    async def on_workflow_start(self, workflow_name: str, plan: Any) -> None:
        await super().on_workflow_start(workflow_name, plan)
        event: Dict[str, Any] = {"event_type": "workflow_start", "workflow_name": workflow_name}
        if hasattr(plan, "outline"):
            event["plan"] = plan.outline()
        self.stream_fn(event)

    async def on_workflow_complete(self, workflow_name: str, result: Any) -> None:
        await super().on_workflow_complete(workflow_name, result)

        result_dict = result
        if hasattr(result, "to_dict"):
            result_dict = result.to_dict()
        elif not isinstance(result, dict):
            result_dict = {"result": str(result)}

        self.stream_fn(
            {
                "event_type": "workflow_complete",
                "workflow_name": workflow_name,
                "result": result_dict,
            }
        )

    async def on_step_start(self, step_name: str, step: Any) -> None:
        await super().on_step_start(step_name, step)
        event: Dict[str, Any] = {"event_type": "step_start", "step_name": step_name}
        if hasattr(step, "kind"):
            event["step_kind"] = getattr(step.kind, "value", step.kind)
        self.stream_fn(event)

    async def on_step_complete(self, step_name: str, outcome: Any) -> None:
        await super().on_step_complete(step_name, outcome)
        self.stream_fn(self._outcome_event("step_complete", step_name, outcome))

    async def on_step_fail(self, step_name: str, outcome: Any) -> None:
        await super().on_step_fail(step_name, outcome)
        self.stream_fn(self._outcome_event("step_fail", step_name, outcome))

    async def on_agent_complete(self, agent_name: str, output: Any) -> None:
        await super().on_agent_complete(agent_name, output)
        self.stream_fn(
            {"event_type": "agent_complete", "agent": agent_name, "output": str(output)}
        )

    @staticmethod
    def _outcome_event(event_type: str, step_name: str, outcome: Any) -> Dict[str, Any]:
        event: Dict[str, Any] = {"event_type": event_type, "step_name": step_name}
        if hasattr(outcome, "to_dict"):
            event["outcome"] = outcome.to_dict()
        return event


class LoggingProgressCallback(ProgressCallback):
    """Implementation of ProgressCallback that logs progress to the logger."""

    def __init__(self, logger_name: str = "workflow-engine.progress"):
        """Initialize LoggingProgressCallback with a specific logger."""
        self.logger = logging.getLogger(logger_name)

    async def on_workflow_start(self, workflow_name: str, plan: Any) -> None:
        self.logger.info(f"Starting workflow: {workflow_name}")

    async def on_workflow_complete(self, workflow_name: str, result: Any) -> None:
        self.logger.info(f"Workflow complete: {workflow_name}")

    async def on_step_start(self, step_name: str, step: Any) -> None:
        self.logger.info(f"Starting step: {step_name}")
        if getattr(step, "description", None):
            self.logger.info(f"Step description: {step.description}")

    async def on_step_complete(self, step_name: str, outcome: Any) -> None:
        self.logger.info(f"Step complete: {step_name}")

    async def on_step_fail(self, step_name: str, outcome: Any) -> None:
        self.logger.warning(f"Step did not succeed: {step_name}: {getattr(outcome, 'detail', '')}")

    async def on_agent_start(self, agent_name: str, prompt: str) -> None:
        self.logger.debug(f"Running agent: {agent_name}")

    async def on_agent_complete(self, agent_name: str, output: Any) -> None:
        self.logger.debug(f"Agent complete: {agent_name}")

    async def on_agent_fail(self, agent_name: str, error: str) -> None:
        self.logger.error(f"Agent failed: {agent_name}: {error}")
