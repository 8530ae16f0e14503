"""
Pytest configuration for the agent orchestrator tests.
This file is automatically loaded by pytest and provides shared fixtures and configuration.
"""
import logging
import os
import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv

from agent_orchestrator.workflow_engine import AgentRegistry, FunctionAgent

# Load environment variables from .env file
load_dotenv()

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up the test environment."""
    os.environ["TESTING"] = "true"

    yield

    os.environ.pop("TESTING", None)


@pytest.fixture
def make_agent():
    """Factory for FunctionAgents whose calls are recorded in ``agent.calls``."""

    def _make(name, func=None, tools=None, fail_on=None):
        calls = []

        async def run(prompt, context):
            calls.append(prompt)
            if fail_on is not None and fail_on(prompt):
                raise RuntimeError(f"{name} failed on {prompt}")
            if func is not None:
                return func(prompt, context)
            return f"{name}:{prompt}"

        agent = FunctionAgent(name, run, tools=tools)
        agent.calls = calls
        return agent

    return _make


@pytest.fixture
def registry():
    """An empty agent registry."""
    return AgentRegistry()


@pytest.fixture
def weather_agent(make_agent):
    return make_agent(
        "weather",
        tools=[
            {
                "name": "get_weather",
                "description": "Get the current weather forecast for a city",
                "parameters": {
                    "type": "object",
                    "properties": {"city": {"type": "string", "description": "City name"}},
                },
            }
        ],
    )


@pytest.fixture
def files_agent(make_agent):
    return make_agent(
        "files",
        tools=[
            {"name": "list_dir", "description": "List files in a directory"},
            {"name": "write_file", "description": "Write text content to a file on disk"},
        ],
    )


# Pytest markers for categorizing tests
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Integration tests that may take longer"
    )
    config.addinivalue_line(
        "markers", "requires_api_key: Tests that require a valid OpenAI API key"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than a few seconds"
    )


# Command line options
def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests"
    )
    parser.addoption(
        "--skip-integration",
        action="store_true",
        default=False,
        help="Skip integration tests"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection based on markers and options."""
    if not config.getoption("--run-slow"):
        skip_slow = pytest.mark.skip(reason="Need --run-slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)

    if config.getoption("--skip-integration"):
        skip_integration = pytest.mark.skip(reason="Skipping integration tests")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)

    if not os.environ.get("OPENAI_API_KEY"):
        skip_api = pytest.mark.skip(reason="OPENAI_API_KEY environment variable not set")
        for item in items:
            if "requires_api_key" in item.keywords:
                item.add_marker(skip_api)
