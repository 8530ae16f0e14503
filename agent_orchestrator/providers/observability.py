import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger("workflow-engine.observability")


class ObservabilityProvider(ABC):
    """Abstract base class for observability providers."""

    @abstractmethod
    def trace_workflow(self, workflow_id: str, metadata: Dict[str, Any]) -> str:
        """Open the root trace of a workflow run and return its id."""
        pass

    @abstractmethod
    def trace_span(
        self,
        name: str,
        parent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a new span within a trace and return its id."""
        pass

    @abstractmethod
    def end_span(self, span_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """End a span or workflow trace and record its metadata."""
        pass

    def flush(self) -> None:
        """Send any buffered events."""
        pass


class LangfuseProvider(ObservabilityProvider):
    """Langfuse implementation of the observability provider."""

    def __init__(
        self, public_key: str, secret_key: str, host: str = "https://cloud.langfuse.com"
    ):
        """Initialize the Langfuse provider.

        Args:
            public_key: Langfuse public key
            secret_key: Langfuse secret key
            host: Langfuse host URL
        """
        try:
            from langfuse import Langfuse

            self.langfuse = Langfuse(
                public_key=public_key, secret_key=secret_key, host=host
            )
            self.enabled = True
        except ImportError:
            logger.warning(
                "Langfuse package not installed. Install with: pip install langfuse"
            )
            self.enabled = False
        except Exception as e:
            logger.error(f"Failed to initialize Langfuse client: {e}")
            self.enabled = False

        self.active_spans: Dict[str, Any] = {}

    def trace_workflow(self, workflow_id: str, metadata: Dict[str, Any]) -> str:
        if not self.enabled:
            return str(uuid.uuid4())

        try:
            span = self.langfuse.start_span(name=f"workflow:{workflow_id}", metadata=metadata)
            span_id: str = span.id
            self.active_spans[span_id] = span
            return span_id
        except Exception as e:
            logger.error(f"Error creating Langfuse trace: {e}")
            return str(uuid.uuid4())

    def trace_span(
        self,
        name: str,
        parent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        if not self.enabled:
            return str(uuid.uuid4())

        metadata = metadata or {}

        try:
            parent = self.active_spans.get(parent_id) if parent_id else None
            if parent is not None:
                span = parent.start_span(name=name, metadata=metadata)
            else:
                span = self.langfuse.start_span(name=name, metadata=metadata)

            span_id: str = span.id
            self.active_spans[span_id] = span
            return span_id
        except Exception as e:
            logger.error(f"Error creating Langfuse span: {e}")
            return str(uuid.uuid4())

    def end_span(self, span_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled or span_id not in self.active_spans:
            return

        span = self.active_spans.pop(span_id)
        try:
            if metadata:
                span.update(metadata=metadata)
            span.end()
        except Exception as e:
            logger.error(f"Error ending Langfuse span: {e}")

    def flush(self) -> None:
        if not self.enabled:
            return
        try:
            self.langfuse.flush()
        except Exception as e:
            logger.error(f"Error flushing Langfuse events: {e}")


class NoopObservabilityProvider(ObservabilityProvider):
    """No-op implementation of the observability provider."""

    def __init__(self) -> None:
        self.enabled = False

    def trace_workflow(self, workflow_id: str, metadata: Dict[str, Any]) -> str:
        return str(uuid.uuid4())

    def trace_span(
        self,
        name: str,
        parent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        return str(uuid.uuid4())

    def end_span(self, span_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        pass


class ObservabilityProviderFactory:
    """Factory for creating observability providers."""

    _providers = {"langfuse": LangfuseProvider, "noop": NoopObservabilityProvider}

    @classmethod
    def create_provider(
        cls, provider_type: str = "noop", **kwargs: Any
    ) -> ObservabilityProvider:
        """Create a provider instance based on type."""
        if provider_type not in cls._providers:
            logger.warning(
                f"Unknown observability provider type: {provider_type}, using noop"
            )
            return NoopObservabilityProvider()

        try:
            provider_class = cls._providers[provider_type]
            return provider_class(**kwargs)  # type: ignore
        except Exception as e:
            logger.error(f"Error creating observability provider: {e}")
            return NoopObservabilityProvider()


# Default global instance
default_provider: ObservabilityProvider = NoopObservabilityProvider()


def configure_observability(
    provider_type: str = "noop", **kwargs: Any
) -> ObservabilityProvider:
    """Configure the default observability provider."""
    global default_provider
    default_provider = ObservabilityProviderFactory.create_provider(
        provider_type, **kwargs
    )
    return default_provider


def get_observability_provider() -> ObservabilityProvider:
    """Get the configured observability provider."""
    return default_provider
