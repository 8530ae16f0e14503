"""
Dispatch Example

Registers two OpenAI Agents SDK agents with different tools and lets a
dispatch step route each question to the agent whose tools fit it.

Requires OPENAI_API_KEY.

Usage:
    python dispatch_example.py "What's the weather in Oslo?"
"""

import argparse
import asyncio
import logging
import os
import random

from agents import Agent, function_tool
from dotenv import load_dotenv

from agent_orchestrator import Workflow
from agent_orchestrator.providers.callbacks import LoggingProgressCallback
from agent_orchestrator.providers.openai_agents import OpenAIAgentsAgent

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")


@function_tool
def get_weather(city: str) -> str:
    """Get the current weather forecast for a city.

    Args:
        city: Name of the city
    """
    conditions = ["sunny", "cloudy", "rainy", "windy"]
    return f"The weather in {city} is {random.choice(conditions)}, {random.randint(5, 30)}C"


@function_tool
def convert_currency(amount: float, source: str, target: str) -> str:
    """Convert an amount of money between currencies using exchange rates.

    Args:
        amount: Amount of money to convert
        source: Currency code to convert from
        target: Currency code to convert to
    """
    rate = round(random.uniform(0.5, 1.5), 4)
    return f"{amount} {source} is {round(amount * rate, 2)} {target} (rate {rate})"


def build_workflow(question: str) -> Workflow:
    weather = Agent(
        name="weather",
        instructions="Answer weather questions using the get_weather tool.",
        tools=[get_weather],
        model=MODEL,
    )
    finance = Agent(
        name="finance",
        instructions="Answer money questions using the convert_currency tool.",
        tools=[convert_currency],
        model=MODEL,
    )

    return (
        Workflow("dispatch-demo", progress_callback=LoggingProgressCallback())
        .register_agent(OpenAIAgentsAgent(weather, max_turns=4))
        .register_agent(OpenAIAgentsAgent(finance, max_turns=4))
        .set_initial_prompt(question)
        .append_dispatch(output_key="answer")
    )


async def main(question: str) -> None:
    workflow = build_workflow(question)
    workflow.freeze()

    result = await workflow.run()
    outcome = result.steps[0]
    if outcome.succeeded:
        print(f"[{outcome.agent}] {result.store['answer']}")
    else:
        print(f"Could not answer: {outcome.detail}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Route a question to the right agent")
    parser.add_argument("question", nargs="?", default="What's the weather forecast in Oslo?")
    args = parser.parse_args()

    if not os.environ.get("OPENAI_API_KEY"):
        raise SystemExit("OPENAI_API_KEY is not set")

    asyncio.run(main(args.question))
