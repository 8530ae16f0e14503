from typing import List

from agent_orchestrator.providers.callbacks import (
    ConsoleProgressCallback,
    LoggingProgressCallback,
    ProgressCallback,
    StreamingProgressCallback,
)
from agent_orchestrator.providers.observability import (
    LangfuseProvider,
    NoopObservabilityProvider,
    ObservabilityProvider,
    ObservabilityProviderFactory,
    configure_observability,
    get_observability_provider,
)
from agent_orchestrator.providers.providers import LLMServiceProvider

__all__: List[str] = [
    # Observability
    "ObservabilityProvider",
    "ObservabilityProviderFactory",
    "LangfuseProvider",
    "NoopObservabilityProvider",
    "configure_observability",
    "get_observability_provider",

    # Progress callbacks
    "ConsoleProgressCallback",
    "LoggingProgressCallback",
    "ProgressCallback",
    "StreamingProgressCallback",

    # Providers
    "LLMServiceProvider",
]
