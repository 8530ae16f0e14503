"""Setup file for the agent-orchestrator package."""

from setuptools import setup

# This setup.py exists for pip compatibility purposes.
# Actual build configuration is in pyproject.toml

if __name__ == "__main__":
    setup()
