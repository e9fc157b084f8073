"""
Feature lifecycle events.

Events are fire-and-forget: a failing listener is logged and recorded on
the dispatch result, never raised into the write that triggered it.

Example usage:
```python
events = EventDispatcher()

@events.on(FeatureActivated)
def audit(event: FeatureActivated):
    audit_log.write(event.feature, event.context, event.value)
```
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar
import logging

from .context import Context

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True)
class FeatureActivated:
    feature: str
    value: Any
    context: Context | None = None


@dataclass(frozen=True)
class FeatureDeactivated:
    feature: str
    context: Context | None = None
    old_value: Any = None


@dataclass(frozen=True)
class UnknownFeatureResolved:
    feature: str
    context: Context | None = None


@dataclass
class DispatchResult:
    """Result from dispatching one event."""
    event: Any
    results: list[Any] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)


class EventDispatcher:
    """Synchronous listener registry keyed by event class."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._listeners: dict[type, list[Callable[[Any], Any]]] = defaultdict(list)
        self._history: list[Any] = []
        self._recording = False

    def listen(self, event_type: type[E], listener: Callable[[E], Any]) -> None:
        self._listeners[event_type].append(listener)
        logger.debug(f"Registered listener for {event_type.__name__}")

    def on(self, event_type: type[E]) -> Callable[[Callable[[E], Any]], Callable[[E], Any]]:
        """Decorator to register a listener."""
        def decorator(func: Callable[[E], Any]) -> Callable[[E], Any]:
            self.listen(event_type, func)
            return func
        return decorator

    def forget(self, event_type: type | None = None) -> None:
        if event_type is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event_type, None)

    def has_listeners(self, event_type: type) -> bool:
        return bool(self._listeners.get(event_type))

    def dispatch(self, event: Any) -> DispatchResult:
        result = DispatchResult(event=event)
        if not self.enabled:
            return result

        if self._recording:
            self._history.append(event)

        for listener in list(self._listeners.get(type(event), [])):
            try:
                result.results.append(listener(event))
            except Exception as e:
                result.errors.append((getattr(listener, "__qualname__", str(listener)), e))
                logger.error(f"Listener for {type(event).__name__} failed: {e}")

        return result

    # ============================================================
    # RECORDING (tests and audits)
    # ============================================================

    def record(self) -> None:
        """Start keeping every dispatched event."""
        self._recording = True
        self._history.clear()

    def dispatched(self, event_type: type[E] | None = None) -> list[E]:
        if event_type is None:
            return list(self._history)
        return [event for event in self._history if isinstance(event, event_type)]
