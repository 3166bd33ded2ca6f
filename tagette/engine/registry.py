from __future__ import annotations

"""Engine registry for Tagette.

An *engine* is a named model endpoint configuration.  Engines are
instantiated lazily, the first time the broker acquires them, and released
explicitly (``release_engine``) to close their HTTP transport.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from tagette.utils.events import EngineReleased, EngineStarted, publish

__all__ = [
    "BACKENDS",
    "EngineConfig",
    "register_engine",
    "get_engine_config",
    "unregister_engine",
    "registered_engines",
    "load_engines_from_yaml",
]

BACKENDS = ("openai", "vllm_api", "ollama_api", "custom")

# Global in-memory store of engine configurations.
_REGISTRY: Dict[str, "EngineConfig"] = {}


@dataclass
class EngineConfig:  # noqa: D101 – self-documenting via fields
    name: str
    model: str = ""

    # Engine backend: "openai", "vllm_api", "ollama_api" or "custom" (factory)
    backend: str = "openai"

    # HTTP-specific fields
    endpoint: Optional[str] = None
    api_key: Optional[str] = None

    # Request defaults
    temperature: Optional[float] = 0.0
    timeout: float = 120.0
    max_retries: int = 2  # transport-level retries inside the SDK

    # backend="custom": callable(cfg) -> endpoint object exposing call()/acall()
    factory: Optional[Callable[["EngineConfig"], Any]] = field(default=None, repr=False)

    # Additional, engine-specific kwargs
    extra: Dict[str, Any] = field(default_factory=dict)

    # Internal cache for the instantiated engine object
    _engine: Optional[Any] = field(init=False, default=None, repr=False, compare=False)

    # -------------------------------------------------- #
    # Public helpers
    # -------------------------------------------------- #

    @property
    def engine(self):
        """Return the instantiated engine (lazy-loaded once)."""
        if self._engine is None:
            self._engine = self._create_engine()
            publish(EngineStarted(engine_name=self.name, backend=self.backend))
        return self._engine

    @property
    def is_live(self) -> bool:
        return self._engine is not None

    def release_engine(self):
        """Release the cached engine instance and close its transport."""
        if self._engine is None:
            return
        engine_to_release = self._engine
        self._engine = None
        close = getattr(engine_to_release, "close", None)
        if callable(close):
            close()
        publish(EngineReleased(engine_name=self.name, backend=self.backend))

    # -------------------------------------------------- #
    # Private helpers
    # -------------------------------------------------- #

    def _create_engine(self):
        if self.backend == "openai":
            from tagette.engine.http_client import OpenAIClient
            return OpenAIClient(
                self.endpoint,
                self.api_key or os.getenv("OPENAI_API_KEY"),
                self.model,
                temperature=self.temperature,
                timeout=self.timeout,
                max_retries=self.max_retries,
                engine_name=self.name,
            )
        if self.backend == "vllm_api":
            from tagette.engine.http_client import VLLMClient
            return VLLMClient(
                self.endpoint,
                self.model,
                temperature=self.temperature,
                timeout=self.timeout,
                max_retries=self.max_retries,
                engine_name=self.name,
            )
        if self.backend == "ollama_api":
            from tagette.engine.http_client import OllamaHTTPClient
            return OllamaHTTPClient(
                self.endpoint,
                self.model,
                temperature=self.temperature,
                timeout=self.timeout,
                engine_name=self.name,
            )
        if self.backend == "custom":
            if self.factory is None:
                raise ValueError(f"Engine '{self.name}' uses backend 'custom' but has no factory.")
            return self.factory(self)
        raise ValueError(f"Unsupported backend '{self.backend}'.")

    # -------------------------------------------------- #

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable representation (metadata only, no secrets)."""
        return {
            "name": self.name,
            "model": self.model,
            "backend": self.backend,
            "endpoint": self.endpoint,
            "temperature": self.temperature,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "extra": dict(self.extra),
        }


# --------------------------------------------------------------------------- #
# Registry helpers
# --------------------------------------------------------------------------- #

def register_engine(name: str, **kwargs) -> EngineConfig:  # noqa: D401 – simple factory
    """Register a new engine configuration.

    The keyword arguments map to :class:`EngineConfig` fields. Unknown keys are
    stored in *extra* so we remain forward-compatible.  Re-registering a name
    releases the previous engine first.
    """
    known_fields = {f for f in EngineConfig.__dataclass_fields__ if not f.startswith("_")}
    cfg_kwargs = {k: v for k, v in kwargs.items() if k in known_fields}
    extra = {k: v for k, v in kwargs.items() if k not in known_fields}
    cfg_kwargs["extra"] = {**cfg_kwargs.get("extra", {}), **extra}
    cfg_kwargs["name"] = name

    if "factory" in cfg_kwargs and "backend" not in cfg_kwargs:
        cfg_kwargs["backend"] = "custom"

    backend = cfg_kwargs.get("backend", "openai")
    if backend not in BACKENDS:
        raise ValueError(f"Unsupported backend '{backend}'. Expected one of: {', '.join(BACKENDS)}.")

    previous = _REGISTRY.get(name)
    if previous is not None:
        previous.release_engine()

    cfg = EngineConfig(**cfg_kwargs)
    _REGISTRY[name] = cfg
    return cfg


def get_engine_config(name: str) -> EngineConfig:
    if name not in _REGISTRY:
        raise KeyError(f"Engine '{name}' is not registered.")
    return _REGISTRY[name]


def unregister_engine(name: str) -> None:
    from tagette.engine.broker import EngineBroker

    cfg = _REGISTRY.pop(name, None)
    EngineBroker.discard(name)
    if cfg is not None:
        cfg.release_engine()


def registered_engines() -> Dict[str, EngineConfig]:
    return dict(_REGISTRY)


def load_engines_from_yaml(path: str | Path) -> list[EngineConfig]:
    """Load multiple engine configs from a YAML file (a list of mappings)."""
    import yaml

    data = yaml.safe_load(Path(path).read_text()) or []
    if isinstance(data, dict):
        data = data.get("engines", [])
    configs = []
    for item in data:
        item = dict(item)
        configs.append(register_engine(item.pop("name"), **item))
    return configs
