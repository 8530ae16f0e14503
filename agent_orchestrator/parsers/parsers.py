import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, NewType, Optional, Union

import yaml

from agent_orchestrator.workflow_engine.errors import InvalidStepError
from agent_orchestrator.workflow_engine.models import Step
from agent_orchestrator.workflow_engine.plan import (
    agent_step,
    dispatch_step,
    iterate_step,
    parallel_step,
    resolve_agent,
    sequence_step,
)

if TYPE_CHECKING:
    from agent_orchestrator.workflow_engine.registry import AgentRegistry

logger = logging.getLogger("workflow-engine.parsers")

# Type definitions for plan sources
PlanSourceFile = NewType("PlanSourceFile", str)
PlanSourceYAML = NewType("PlanSourceYAML", str)
PlanSourceDict = Dict[str, Any]

# Union type for all plan sources
PlanSource = Union[PlanSourceFile, PlanSourceYAML, PlanSourceDict]

PLAN_KEYS = {"name", "description", "prompt", "config", "store", "steps", "ref"}
STEP_KINDS = ("agent", "sequence", "parallel", "iterate", "dispatch")
STEP_MODIFIERS = {"on_success", "on_fail", "description"}


@dataclass
class PlanDocument:
    """A parsed plan document, ready to be applied to a workflow."""

    name: Optional[str] = None
    description: Optional[str] = None
    prompt: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    store: Dict[str, Any] = field(default_factory=dict)
    steps: List[Step] = field(default_factory=list)


def _check_keys(mapping: Dict[str, Any], allowed: set, where: str) -> None:
    unknown = sorted(set(mapping) - allowed)
    if unknown:
        raise InvalidStepError(f"Unknown keys in {where}: {unknown}")


class ConfigParser(ABC):
    """Abstract base class for plan parsers."""

    @abstractmethod
    def parse_plan(
        self, raw_plan: Dict[str, Any], registry: Optional["AgentRegistry"] = None
    ) -> PlanDocument:
        """Parse a plan mapping into a PlanDocument."""
        pass

    @abstractmethod
    def parse_plan_file(
        self, file_path: str, registry: Optional["AgentRegistry"] = None
    ) -> PlanDocument:
        """Parse a plan file into a PlanDocument."""
        pass

    @abstractmethod
    def parse_plan_str(
        self, raw_yaml_string: str, registry: Optional["AgentRegistry"] = None
    ) -> PlanDocument:
        """Parse plan text into a PlanDocument."""
        pass


class YAMLParser(ConfigParser):
    """
    Parse YAML plan documents.

    Agent names are resolved against the registry while parsing, so an
    unknown name fails with NotFoundError before anything runs.
    """

    def load_config(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from a YAML file as a dictionary."""
        try:
            with open(file_path, "r") as f:
                return yaml.safe_load(f) or {}
        except Exception as e:
            logger.error(f"Failed to load YAML file '{file_path}': {e}")
            raise

    def resolve_references(self, config: Dict[str, Any], base_dir: str) -> Dict[str, Any]:
        """
        Merge files named by top-level ``ref`` keys into the plan.

        Keys already present in the referring document take precedence.
        References are resolved relative to the referring file.
        """
        ref = config.get("ref")
        if not isinstance(ref, str):
            return config

        ref_path = os.path.join(base_dir, ref)
        if not os.path.exists(ref_path):
            raise FileNotFoundError(f"Referenced file not found: {ref_path}")

        try:
            ref_config = self.load_config(ref_path)
            ref_config = self.resolve_references(ref_config, os.path.dirname(ref_path))
        except FileNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Failed to resolve reference '{ref}': {e}")
            raise ValueError(f"Failed to resolve reference '{ref}': {e}") from e

        resolved = {key: value for key, value in ref_config.items() if key != "ref"}
        resolved.update({key: value for key, value in config.items() if key != "ref"})
        return resolved

    def parse_plan_file(
        self, file_path: str, registry: Optional["AgentRegistry"] = None
    ) -> PlanDocument:
        raw_plan = self.load_config(file_path)
        if not isinstance(raw_plan, dict):
            raise InvalidStepError(f"Plan file '{file_path}' must contain a mapping")
        raw_plan = self.resolve_references(raw_plan, os.path.dirname(os.path.abspath(file_path)))
        return self.parse_plan(raw_plan, registry)

    def parse_plan_str(
        self, raw_yaml_string: str, registry: Optional["AgentRegistry"] = None
    ) -> PlanDocument:
        try:
            raw_plan = yaml.safe_load(raw_yaml_string)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML plan: {e}")
            raise
        if not isinstance(raw_plan, dict):
            raise InvalidStepError("A YAML plan must be a mapping")
        return self.parse_plan(raw_plan, registry)

    def parse_plan(
        self, raw_plan: Dict[str, Any], registry: Optional["AgentRegistry"] = None
    ) -> PlanDocument:
        """
        Parse a plan mapping.

        Args:
            raw_plan: Mapping with optional ``name``, ``prompt``, ``config``,
                ``store`` and ``steps`` keys
            registry: Registry used to resolve agent names

        Returns:
            The parsed document with fully validated steps
        """
        _check_keys(raw_plan, PLAN_KEYS, "plan")

        config = raw_plan.get("config") or {}
        store = raw_plan.get("store") or {}
        steps = raw_plan.get("steps") or []
        if not isinstance(config, dict):
            raise InvalidStepError("Plan 'config' must be a mapping")
        if not isinstance(store, dict):
            raise InvalidStepError("Plan 'store' must be a mapping")
        if not isinstance(steps, list):
            raise InvalidStepError("Plan 'steps' must be a list")

        prompt = raw_plan.get("prompt")
        document = PlanDocument(
            name=raw_plan.get("name"),
            description=raw_plan.get("description"),
            prompt=str(prompt) if prompt is not None else None,
            config=dict(config),
            store=dict(store),
            steps=[self.parse_step(entry, registry) for entry in steps],
        )
        logger.info(f"Parsed plan {document.name or '<unnamed>'} with {len(document.steps)} steps")
        return document

    def parse_step(self, entry: Any, registry: Optional["AgentRegistry"] = None) -> Step:
        """Parse one step entry: an agent name or a mapping with exactly one step kind."""
        if isinstance(entry, str):
            return agent_step(entry, registry=registry)
        if not isinstance(entry, dict):
            raise InvalidStepError(f"A step must be a mapping or an agent name, got {entry!r}")

        _check_keys(entry, set(STEP_KINDS) | STEP_MODIFIERS, "step")
        kinds = [kind for kind in STEP_KINDS if kind in entry]
        if len(kinds) != 1:
            raise InvalidStepError(
                f"A step needs exactly one of {list(STEP_KINDS)}, got {kinds or 'none'}"
            )

        kind = kinds[0]
        body = entry[kind]
        description = entry.get("description")

        if kind == "agent":
            step: Step = self._parse_agent(body, description, registry)
        elif kind in ("sequence", "parallel"):
            if not isinstance(body, list):
                raise InvalidStepError(f"'{kind}' must be a list of steps")
            children = [self.parse_step(child, registry) for child in body]
            builder = sequence_step if kind == "sequence" else parallel_step
            step = builder(children, description, registry=registry)
        elif kind == "iterate":
            if not isinstance(body, dict):
                raise InvalidStepError("'iterate' must be a mapping with 'items' and 'agent'")
            _check_keys(body, {"items", "agent", "output_key"}, "iterate")
            step = iterate_step(
                body.get("items"),
                body.get("agent"),
                output_key=body.get("output_key"),
                description=description,
                registry=registry,
            )
        else:
            step = self._parse_dispatch(body, description)

        updates = {
            handler: resolve_agent(entry[handler], registry, role=handler)
            for handler in ("on_success", "on_fail")
            if entry.get(handler) is not None
        }
        return step.model_copy(update=updates) if updates else step

    def _parse_agent(
        self, body: Any, description: Optional[str], registry: Optional["AgentRegistry"]
    ) -> Step:
        if isinstance(body, dict):
            _check_keys(body, {"name", "prompt", "output_key"}, "agent")
            return agent_step(
                body.get("name"),
                prompt=body.get("prompt"),
                output_key=body.get("output_key"),
                description=description,
                registry=registry,
            )
        return agent_step(body, description=description, registry=registry)

    def _parse_dispatch(self, body: Any, description: Optional[str]) -> Step:
        if body is None or isinstance(body, str):
            return dispatch_step(body, description=description)
        if isinstance(body, dict):
            _check_keys(body, {"prompt", "output_key"}, "dispatch")
            return dispatch_step(
                body.get("prompt"),
                output_key=body.get("output_key"),
                description=description,
            )
        raise InvalidStepError(f"'dispatch' must be a prompt or a mapping, got {body!r}")
