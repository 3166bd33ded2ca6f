import anyio
import pytest

from tagette import BoundedIntType, EnumType, Field, Schema
from tagette.engine import registry as engine_registry
from tagette.engine.broker import EngineBroker
from tagette.utils import events


class FakeEndpoint:
    """In-memory endpoint returning canned replies and counting calls."""

    def __init__(self, *replies, delay: float = 0.0):
        self.replies = list(replies)
        self.delay = delay
        self.calls = []
        self.closed = False
        self.engine_name = "fake"

    def _next(self, prompt, schema, timeout, system_prompt):
        self.calls.append({"prompt": prompt, "schema": schema, "timeout": timeout, "system_prompt": system_prompt})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def call(self, prompt, schema, timeout=None, *, system_prompt=None):
        return self._next(prompt, schema, timeout, system_prompt)

    async def acall(self, prompt, schema, timeout=None, *, system_prompt=None):
        if self.delay:
            await anyio.sleep(self.delay)
        return self._next(prompt, schema, timeout, system_prompt)

    def close(self):
        self.closed = True


@pytest.fixture
def tagging_schema():
    return Schema(
        "tagging",
        [
            Field("sentiment", EnumType(("happy", "neutral", "sad")), description="The sentiment of the text"),
            Field(
                "aggressiveness",
                BoundedIntType(1, 5),
                description="Describes how aggressive the statement is, the higher the number the more aggressive",
            ),
            Field(
                "language",
                EnumType(("spanish", "english", "french", "german", "italian")),
                description="The language the text is written in",
            ),
        ],
    )


@pytest.fixture(autouse=True)
def _clean_state():
    events._REGISTRY.clear()
    yield
    EngineBroker.flush(force=True)
    engine_registry._REGISTRY.clear()
    events._REGISTRY.clear()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_engine():
    """Register a 'fake' engine backed by a FakeEndpoint; returns a setter for its replies."""

    def _make(*replies, delay: float = 0.0) -> FakeEndpoint:
        endpoint = FakeEndpoint(*replies, delay=delay)
        engine_registry.register_engine("fake", factory=lambda cfg: endpoint)
        return endpoint

    return _make
