"""Expressions module for Agent Orchestrator."""

from agent_orchestrator.expressions.expressions import ExpressionEvaluator, create_evaluation_context

__all__ = [
    "ExpressionEvaluator",
    "create_evaluation_context"
]
