"""
Workflow-scoped shared key/value state.

One SharedStore instance is created per run and shared by reference across
every step of that run. Access is guarded by a lock so agents that hand work
off to threads can read and write safely; there is no multi-key atomicity.
"""

import copy
import logging
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from agent_orchestrator.expressions import ExpressionEvaluator

logger = logging.getLogger("workflow-engine.store")

_MISSING = object()


class SharedStore:
    """Insertion-ordered, lock-guarded mapping from string keys to values."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        if initial:
            for key, value in initial.items():
                self.set(key, value)

    def set(self, key: str, value: Any) -> None:
        """
        Store a value under a key, replacing any previous value.

        Args:
            key: Store key
            value: Any value
        """
        if not isinstance(key, str) or not key:
            raise ValueError(f"Store keys must be non-empty strings, got {key!r}")
        with self._lock:
            self._data[key] = value
        logger.debug(f"Set shared store key '{key}'")

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for a key, or ``default`` if absent."""
        with self._lock:
            return self._data.get(key, default)

    def update(self, values: Mapping[str, Any]) -> None:
        """Set several keys. Each key is written independently."""
        for key, value in values.items():
            self.set(key, value)

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        with self._lock:
            self._data.pop(key, None)

    def has_key(self, key: str) -> bool:
        """Check if a key exists in the store."""
        with self._lock:
            return key in self._data

    def keys(self) -> List[str]:
        """All keys, in insertion order."""
        with self._lock:
            return list(self._data.keys())

    def items(self) -> List[Tuple[str, Any]]:
        """All (key, value) pairs, in insertion order."""
        with self._lock:
            return list(self._data.items())

    def resolve(self, path: str, default: Any = None) -> Any:
        """
        Look up a key, falling back to a dotted path into nested values.

        An exact key always wins, so keys that contain dots stay addressable.
        ``"research.summary"`` otherwise resolves ``store["research"]["summary"]``.

        Returns:
            The value found, or ``default``
        """
        with self._lock:
            if path in self._data:
                return self._data[path]
            value = ExpressionEvaluator.get_value_from_path(self._data, path, _MISSING)
        return default if value is _MISSING else value

    def contains_path(self, path: str) -> bool:
        """Check whether ``resolve(path)`` would find a value."""
        return self.resolve(path, _MISSING) is not _MISSING

    def snapshot(self) -> Dict[str, Any]:
        """Return a detached copy of the current contents."""
        with self._lock:
            try:
                return copy.deepcopy(self._data)
            except Exception as e:
                logger.debug(f"Falling back to shallow store snapshot: {e}")
                return dict(self._data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary (shallow copy)."""
        with self._lock:
            return dict(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return f"SharedStore(keys={self.keys()!r})"


class SharedStoreView:
    """
    Context handed to an agent for one invocation.

    Reads and writes go straight to the run's SharedStore. The view also
    carries where the invocation sits in the plan: the workflow name, the kind
    of step and, for iterate steps, the current item and its index.
    """

    def __init__(
        self,
        store: SharedStore,
        workflow_name: Optional[str] = None,
        step_kind: Optional[str] = None,
        item: Any = None,
        index: Optional[int] = None,
    ) -> None:
        self._store = store
        self.workflow_name = workflow_name
        self.step_kind = step_kind
        self.item = item
        self.index = index

    @property
    def store(self) -> SharedStore:
        return self._store

    def get(self, key: str, default: Any = None) -> Any:
        return self._store.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._store.set(key, value)

    def resolve(self, path: str, default: Any = None) -> Any:
        return self._store.resolve(path, default)

    def keys(self) -> List[str]:
        return self._store.keys()

    def snapshot(self) -> Dict[str, Any]:
        return self._store.snapshot()

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __getitem__(self, key: str) -> Any:
        return self._store[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._store.set(key, value)

    def __repr__(self) -> str:
        return (
            f"SharedStoreView(step_kind={self.step_kind!r}, index={self.index!r}, "
            f"keys={self._store.keys()!r})"
        )
