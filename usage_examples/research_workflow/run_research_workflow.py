"""
Research Workflow Runner

Builds a small research pipeline out of plain Python agents:
- A planner that splits a topic into subtopics
- A writer that drafts one section per subtopic
- An editor and a fact checker that review the draft in parallel

No API key is needed. Set LANGFUSE_PUBLIC_KEY and LANGFUSE_SECRET_KEY to trace
the run in Langfuse.

Usage:
    python run_research_workflow.py [--topic "topic"] [--sections 3]
"""

import argparse
import asyncio
import logging
import os

from agent_orchestrator import ConsoleProgressCallback, FunctionAgent, Workflow, configure_observability
from agent_orchestrator.workflow_engine import SharedStoreView, WorkflowResult

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def setup_observability():
    """Configure observability based on environment variables."""
    if not os.environ.get("LANGFUSE_PUBLIC_KEY"):
        return configure_observability()
    return configure_observability(
        provider_type="langfuse",
        public_key=os.environ.get("LANGFUSE_PUBLIC_KEY"),
        secret_key=os.environ.get("LANGFUSE_SECRET_KEY"),
        host=os.environ.get("LANGFUSE_HOST", "https://cloud.langfuse.com"),
    )


def plan_topic(prompt: str, context: SharedStoreView) -> str:
    count = context.get("section_count", 3)
    subtopics = [f"{prompt}: part {i + 1}" for i in range(count)]
    context.set("subtopics", subtopics)
    return f"Plan for {prompt} with {count} sections"


async def write_section(prompt: str, context: SharedStoreView) -> str:
    await asyncio.sleep(0.1)
    return f"## Section {context.index + 1}\nNotes on {prompt}."


def edit_draft(prompt: str, context: SharedStoreView) -> str:
    sections = context.get("sections") or []
    return f"Edited draft with {len(sections)} sections"


def check_facts(prompt: str, context: SharedStoreView) -> str:
    return "No unsupported claims found"


def report_failure(prompt: str, context: SharedStoreView) -> str:
    logger.warning(f"Review failed: {prompt}")
    return "Review skipped"


def print_workflow_results(result: WorkflowResult) -> None:
    """Print each top-level step and the sections that were written."""
    print("\n=== Workflow Results ===")
    for i, outcome in enumerate(result.steps):
        print(f"Step {i + 1} ({outcome.step_kind.value}): {outcome.status.value}")
        if outcome.detail:
            print(f"  {outcome.detail}")

    for section in result.store.get("sections") or []:
        print(f"\n{section}")

    print(f"\nFinal output: {result.final_output}")


async def main(topic: str, sections: int) -> None:
    setup_observability()

    planner = FunctionAgent("planner", plan_topic)
    writer = FunctionAgent("writer", write_section)
    editor = FunctionAgent("editor", edit_draft)
    fact_checker = FunctionAgent("fact_checker", check_facts)
    fallback = FunctionAgent("fallback", report_failure)

    workflow = (
        Workflow("research", progress_callback=ConsoleProgressCallback())
        .register_agent(planner)
        .register_agent(writer)
        .set_initial_prompt(topic)
        .seed_store("section_count", sections)
        .append_agent("planner", output_key="plan", description="Split the topic")
        .append_iterate("${subtopics}", "writer", output_key="sections", description="Draft sections")
        .append_parallel([editor, fact_checker], description="Review the draft")
        .on_fail(fallback)
    )
    workflow.debug().freeze()

    result = await workflow.run()
    print_workflow_results(result)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the research workflow")
    parser.add_argument("--topic", default="Llama farming", help="Topic to research")
    parser.add_argument("--sections", type=int, default=3, help="Number of sections")
    args = parser.parse_args()

    asyncio.run(main(args.topic, args.sections))
