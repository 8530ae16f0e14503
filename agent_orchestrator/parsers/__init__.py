from agent_orchestrator.parsers.parsers import (
    ConfigParser,
    PlanDocument,
    PlanSource,
    PlanSourceDict,
    PlanSourceFile,
    PlanSourceYAML,
    YAMLParser,
)

__all__ = [
    "ConfigParser",
    "PlanDocument",
    "PlanSource",
    "PlanSourceDict",
    "PlanSourceFile",
    "PlanSourceYAML",
    "YAMLParser",
]
