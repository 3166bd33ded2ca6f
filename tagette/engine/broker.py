from __future__ import annotations
"""EngineBroker – single entry-point for acquiring / flushing engines.

Implements a tiny reference-count mechanism on top of the engine registry.
Use::

    from tagette.engine.broker import EngineBroker as EB
    with EB.acquire("openai_default") as eng:
        eng.call(prompt, schema)

    async with EB.aacquire("openai_default") as eng:
        await eng.acall(prompt, schema)

The reference is dropped in ``finally``, so abandoned or cancelled calls
never keep an engine pinned.  ``flush(force=True)`` releases every engine;
``flush()`` only those idle for more than ``idle_sec``.
"""

import threading
from contextlib import asynccontextmanager, contextmanager
from time import time
from typing import AsyncIterator, Iterator

from .registry import get_engine_config

__all__ = ["EngineBroker"]

_IDLE_SEC = 180  # engine evicted if idle > this value


class _Tracker:  # noqa: D401
    __slots__ = ("ref", "last", "cfg")

    def __init__(self, cfg):
        self.ref = 0
        self.last = time()
        self.cfg = cfg


class _BrokerImpl:  # noqa: D401
    def __init__(self, idle_sec: float = _IDLE_SEC):
        self.idle_sec = idle_sec
        self._track: dict[str, _Tracker] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    def _enter(self, name: str):
        cfg = get_engine_config(name)
        with self._lock:
            eng = cfg.engine
            t = self._track.get(name)
            if t is None:
                t = self._track[name] = _Tracker(cfg)
            t.cfg = cfg  # re-registered engines replace the config
            t.ref += 1
        return eng, t

    def _exit(self, t: _Tracker) -> None:
        with self._lock:
            t.ref -= 1
            t.last = time()

    @contextmanager
    def acquire(self, name: str) -> Iterator:
        """Context-manager yielding live engine for *name*."""
        eng, t = self._enter(name)
        try:
            yield eng
        finally:
            self._exit(t)

    @asynccontextmanager
    async def aacquire(self, name: str) -> AsyncIterator:
        """Async variant of :meth:`acquire`."""
        eng, t = self._enter(name)
        try:
            yield eng
        finally:
            self._exit(t)

    # ------------------------------------------------------------------ #
    def refcount(self, name: str) -> int:
        t = self._track.get(name)
        return t.ref if t is not None else 0

    def discard(self, name: str) -> None:
        """Stop tracking *name* (the engine was unregistered)."""
        with self._lock:
            self._track.pop(name, None)

    def flush(self, *, force: bool = False):  # noqa: D401
        """Release engines idle for > idle_sec or everything when *force*."""
        now = time()
        with self._lock:
            for name in list(self._track.keys()):
                tr = self._track[name]
                if force or (tr.ref == 0 and now - tr.last > self.idle_sec):
                    tr.cfg.release_engine()
                    self._track.pop(name, None)


EngineBroker = _BrokerImpl()
