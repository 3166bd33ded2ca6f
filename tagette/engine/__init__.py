from __future__ import annotations

"""Engine sub-package public interface."""

from .registry import (  # noqa: F401 – re-export
    EngineConfig,
    get_engine_config,
    load_engines_from_yaml,
    register_engine,
    registered_engines,
    unregister_engine,
)
from .broker import EngineBroker  # noqa: F401
