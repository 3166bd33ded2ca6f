from __future__ import annotations
"""Rich logging & progress for Tagette.

* ``log`` – the ``tagette`` logger, rendered through ``rich.logging.RichHandler``
* ``get(level)`` – set and return the package logger at a named level
* ``enable_event_logging()`` – log extraction events (human readable) or
  print them as JSON lines (``json_logs=True``)
* a transient progress bar fed by :class:`~tagette.utils.events.BatchProgress`
"""
import json
from dataclasses import asdict
from logging import DEBUG, ERROR, INFO, WARNING, Logger, getLogger
from typing import Dict, List

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from tagette.utils.events import (
    BatchProgress,
    EngineReleased,
    EngineStarted,
    Event,
    ExtractionCancelled,
    ExtractionFailed,
    ExtractionStarted,
    ExtractionSucceeded,
    RetryScheduled,
    subscribe,
    unsubscribe,
)

console = Console(stderr=True)

__all__ = [
    "console",
    "log",
    "get",
    "enable_event_logging",
    "disable_event_logging",
    "stop",
]

_LEVEL_MAP = {
    "debug": DEBUG,
    "info": INFO,
    "warning": WARNING,
    "error": ERROR,
}

log: Logger = getLogger("tagette")
if not log.handlers:
    log.addHandler(RichHandler(console=console, rich_tracebacks=True, markup=False, show_path=False))
    log.setLevel(WARNING)
    log.propagate = False


def get(level: str = "info") -> Logger:  # noqa: D401
    """Return the package logger set to *level* (str)."""
    lvl = _LEVEL_MAP.get(level.lower(), INFO)
    log.setLevel(lvl)
    return log


# --------------------------------------------------------------------------- #
# Event subscribers
# --------------------------------------------------------------------------- #

def _on_started(evt: ExtractionStarted):
    log.debug("[%s] extracting '%s' via engine '%s'", evt.request_id, evt.schema_name, evt.engine_name)


def _on_success(evt: ExtractionSucceeded):
    log.info("[%s] '%s' extracted in %.2fs", evt.request_id, evt.schema_name, evt.elapsed)


def _on_failure(evt: ExtractionFailed):
    suffix = f" (fields: {', '.join(evt.fields)})" if evt.fields else ""
    log.warning("[%s] %s: %s%s", evt.request_id, evt.error_type, evt.message, suffix)


def _on_cancelled(evt: ExtractionCancelled):
    log.warning("[%s] extraction of '%s' cancelled", evt.request_id, evt.schema_name)


def _on_retry(evt: RetryScheduled):
    log.info("retry #%d in %.2fs (%s)", evt.attempt, evt.delay, evt.reason)


def _on_engine(evt: Event):
    verb = "started" if isinstance(evt, EngineStarted) else "released"
    log.info("engine '%s' (%s) %s", evt.engine_name, evt.backend, verb)  # type: ignore[attr-defined]


def _print_json(evt: Event):
    payload = asdict(evt)
    payload["ts"] = evt.ts.isoformat()
    payload["event"] = type(evt).__name__
    console.print(json.dumps(payload, default=str), markup=False, highlight=False, soft_wrap=True)


_HUMAN_HANDLERS = {
    ExtractionStarted: _on_started,
    ExtractionSucceeded: _on_success,
    ExtractionFailed: _on_failure,
    ExtractionCancelled: _on_cancelled,
    RetryScheduled: _on_retry,
    EngineStarted: _on_engine,
    EngineReleased: _on_engine,
}
_active: List[tuple] = []


def enable_event_logging(*, json_logs: bool = False) -> None:
    """Subscribe the log (or JSON) handlers to extraction events."""
    disable_event_logging()
    for evt_type, handler in _HUMAN_HANDLERS.items():
        fn = _print_json if json_logs else handler
        subscribe(evt_type)(fn)
        _active.append((evt_type, fn))
    subscribe(BatchProgress)(_on_progress)
    _active.append((BatchProgress, _on_progress))


def disable_event_logging() -> None:
    while _active:
        evt_type, fn = _active.pop()
        unsubscribe(evt_type, fn)


# --------------------------------------------------------------------------- #
# Progress handling
# --------------------------------------------------------------------------- #
_progress: Progress | None = None
_tasks: Dict[str, int] = {}


def _ensure_progress() -> Progress:  # noqa: D401
    global _progress
    if _progress is None:
        _progress = Progress(
            TextColumn("[bold blue]{task.fields[label]}[/]"),
            BarColumn(),
            "{task.completed}/{task.total}",
            "•",
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        _progress.start()
    return _progress


def _on_progress(evt: BatchProgress):  # noqa: D401 – event hook
    prog = _ensure_progress()
    label = evt.label or "extract"
    if label not in _tasks:
        _tasks[label] = prog.add_task(description="", total=evt.total, label=label)
    prog.update(_tasks[label], total=evt.total, completed=evt.done)
    if evt.done >= evt.total:
        stop()


def stop():  # noqa: D401
    global _progress
    if _progress is not None:
        _progress.stop()
        _progress = None
    _tasks.clear()
