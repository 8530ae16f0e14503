import json
import logging
import re
from typing import Any, Dict, Mapping, Optional

import jinja2
from pydantic import BaseModel

logger = logging.getLogger("workflow-engine.expressions")

_REFERENCE = re.compile(r"^\$\{\s*([^{}]+?)\s*\}$")


class ExpressionEvaluator:
    """Evaluate store references and prompt templates."""

    @staticmethod
    def get_value_from_path(
        data: Mapping[str, Any], path: str, default: Any = None
    ) -> Any:
        """Extract a value from nested dictionaries and lists using a path expression."""
        parts = re.findall(r"\[([^\]]+)\]|([^.\[\]]+)", path)
        current: Any = data

        logger.debug(f"Getting value from path: {path}")

        for i, (bracket, dot) in enumerate(parts):
            key = bracket if bracket else dot
            if isinstance(current, Mapping) and key in current:
                current = current[key]
            elif isinstance(current, (list, tuple)) and key.lstrip("-").isdigit():
                idx = int(key)
                if -len(current) <= idx < len(current):
                    current = current[idx]
                else:
                    logger.debug(f"Index {idx} out of range at path segment {i + 1}")
                    return default
            else:
                logger.debug(
                    f"Key '{key}' not found at path segment {i + 1}. Available keys: "
                    f"{list(current.keys()) if isinstance(current, Mapping) else 'not a dict'}"
                )
                return default

        return current

    @staticmethod
    def parse_reference(expr: Any) -> Optional[str]:
        """
        Return the store key of a ``${key}`` reference, or None for anything else.

        Only a string that consists entirely of one reference counts; text with
        an embedded reference is a literal.
        """
        if not isinstance(expr, str):
            return None
        match = _REFERENCE.match(expr.strip())
        return match.group(1) if match else None

    @classmethod
    def evaluate_template(cls, template: str, context: Dict[str, Any]) -> str:
        """Evaluate a Jinja2 template with the given context."""
        env = jinja2.Environment(autoescape=False)
        template_obj = env.from_string(template)
        return template_obj.render(**context)

    @staticmethod
    def check_template(template: str) -> None:
        """Parse a Jinja2 template without rendering it; raises TemplateSyntaxError."""
        jinja2.Environment(autoescape=False).parse(template)

    @staticmethod
    def render_prompt(value: Any) -> str:
        """Turn any step input into the prompt string handed to an agent."""
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, BaseModel):
            return value.model_dump_json(indent=2)
        if isinstance(value, (dict, list, tuple)):
            try:
                return json.dumps(value, indent=2, default=str)
            except (TypeError, ValueError):
                return str(value)
        return str(value)


def create_evaluation_context(
        store: Mapping[str, Any],
        prompt: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a context for template evaluation from the shared store.

    Store keys are available both at the top level and under ``store`` so a
    template can use ``{{ topic }}`` or ``{{ store['topic-name'] }}``. The
    current prompt is always available as ``prompt``.

    Args:
        store: Shared store contents
        prompt: The prompt of the current invocation

    Returns:
        A context dictionary that can be used with ExpressionEvaluator
    """
    context: Dict[str, Any] = {
        key: value for key, value in store.items() if key.isidentifier()
    }
    context["store"] = dict(store)
    context["prompt"] = prompt or ""
    return context
