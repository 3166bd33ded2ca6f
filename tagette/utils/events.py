from __future__ import annotations
"""Ultra-lightweight pub/sub **EventBus** for extraction calls.

Example
-------
```python
from tagette.utils.events import subscribe, ExtractionFailed

@subscribe(ExtractionFailed)
def _on_fail(evt: ExtractionFailed):
    print(f"{evt.request_id} failed: {evt.error_type}")
```
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

__all__ = [
    "Event",
    "ExtractionStarted",
    "ExtractionSucceeded",
    "ExtractionFailed",
    "ExtractionCancelled",
    "RetryScheduled",
    "BatchProgress",
    "EngineStarted",
    "EngineReleased",
    "subscribe",
    "unsubscribe",
    "publish",
]

T = TypeVar("T", bound="Event")
_Handler = Callable[[Any], None]
_REGISTRY: Dict[Type["Event"], List[_Handler]] = {}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, kw_only=True)
class Event:  # noqa: D101 – base event
    ts: datetime = field(default_factory=_utcnow)


# --------------------------------------------------------------------------- #
# Concrete events
# --------------------------------------------------------------------------- #
@dataclass(slots=True)
class ExtractionStarted(Event):
    request_id: str
    schema_name: str
    engine_name: str


@dataclass(slots=True)
class ExtractionSucceeded(Event):
    request_id: str
    schema_name: str
    elapsed: float


@dataclass(slots=True)
class ExtractionFailed(Event):
    request_id: str
    schema_name: str
    error_type: str
    message: str
    fields: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ExtractionCancelled(Event):
    request_id: str
    schema_name: str


@dataclass(slots=True)
class RetryScheduled(Event):
    attempt: int
    delay: float
    reason: str


@dataclass(slots=True)
class BatchProgress(Event):
    total: int
    done: int
    label: Optional[str] = None


@dataclass(slots=True)
class EngineStarted(Event):
    engine_name: str
    backend: str


@dataclass(slots=True)
class EngineReleased(Event):
    engine_name: str
    backend: str


# --------------------------------------------------------------------------- #
# API helpers
# --------------------------------------------------------------------------- #

def subscribe(event_type: Type[T]):  # noqa: D401
    """Decorator: register *func* to receive *event_type* events."""

    def _decorator(func: _Handler) -> _Handler:
        _REGISTRY.setdefault(event_type, []).append(func)
        return func

    return _decorator


def unsubscribe(event_type: Type[T], func: _Handler) -> None:
    handlers = _REGISTRY.get(event_type, [])
    if func in handlers:
        handlers.remove(func)


def publish(evt: Event) -> None:  # noqa: D401
    """Publish an event to all registered subscribers."""
    for func in list(_REGISTRY.get(type(evt), [])):
        try:
            func(evt)
        except Exception as e:  # noqa: BLE001
            # Failure to handle an event must never crash the main program.
            from tagette.utils.logging import log

            log.warning("event handler %s failed: %s", getattr(func, "__name__", func), e)
