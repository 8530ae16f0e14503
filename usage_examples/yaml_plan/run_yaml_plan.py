"""
Run a workflow whose plan is declared in YAML.

The agents are registered in Python; the plan file refers to them by name.

Usage:
    python run_yaml_plan.py [--plan research_plan.yaml]
"""

import argparse
import asyncio
import json
import logging
import os

from agent_orchestrator import FunctionAgent, Workflow
from agent_orchestrator.providers.callbacks import StreamingProgressCallback

logging.basicConfig(level=logging.WARNING)


def create_agents():
    def planner(prompt, context):
        return f"Outline: {prompt}"

    async def researcher(prompt, context):
        await asyncio.sleep(0.05)
        return f"Findings for {prompt} ({context.index + 1} of {len(context.get('regions'))})"

    def summarizer(prompt, context):
        return f"Summary of {len(context.get('findings') or [])} regions"

    def reporter(prompt, context):
        return prompt.upper()

    return [
        FunctionAgent("planner", planner, tools=["create_outline"]),
        FunctionAgent("researcher", researcher, tools=[{"name": "search_archives", "description": "Search historical archives"}]),
        FunctionAgent("summarizer", summarizer, tools=[{"name": "summarize", "description": "Summarize research findings"}]),
        FunctionAgent("reporter", reporter, tools=[{"name": "headline", "description": "Write a news headline"}]),
    ]


async def main(plan_path: str) -> None:
    workflow = Workflow(
        progress_callback=StreamingProgressCallback(
            lambda event: print(json.dumps(event, default=str)),
            stream_handler=lambda line: None,
        )
    )
    for agent in create_agents():
        workflow.register_agent(agent)

    workflow.load_plan(plan_path)
    workflow.freeze()

    result = await workflow.run()
    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a YAML-defined workflow")
    parser.add_argument(
        "--plan",
        default=os.path.join(os.path.dirname(os.path.abspath(__file__)), "research_plan.yaml"),
    )
    args = parser.parse_args()

    asyncio.run(main(args.plan))
