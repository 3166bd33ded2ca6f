import json

import pytest

from tagette import (
    EmptyDocumentError,
    EndpointError,
    ExtractionClient,
    MalformedReplyError,
    SchemaRegistry,
    UnknownSchemaError,
    ValidationFailed,
)
from tagette.core.coerce import NOT_IN_ENUM
from tagette.engine.broker import EngineBroker
from tagette.utils import events

DOC = "Weather is ok here, I can go outside without much more than a coat"


def _reply(**values):
    return json.dumps(values)


def test_tagging_scenario(fake_engine, tagging_schema):
    endpoint = fake_engine(_reply(sentiment="neutral", aggressiveness=1, language="english"))
    res = ExtractionClient("fake").extract(DOC, tagging_schema)

    assert res.ok
    assert res.value["sentiment"] == "neutral"
    assert res.value["language"] == "english"
    assert 1 <= res.value["aggressiveness"] <= 5
    assert res.value == {"sentiment": "neutral", "aggressiveness": 1, "language": "english"}
    assert res.value.schema_name == "tagging"
    assert len(endpoint.calls) == 1
    assert DOC in endpoint.calls[0]["prompt"]
    assert endpoint.calls[0]["schema"] is tagging_schema
    assert EngineBroker.refcount("fake") == 0


def test_success_returns_coerced_values(fake_engine, tagging_schema):
    fake_engine('```json\n{"sentiment": "Happy", "aggressiveness": "2", "language": "SPANISH", "extra": 1}\n```')
    res = ExtractionClient("fake").extract("Estoy contento", tagging_schema)
    assert res.unwrap().to_dict() == {"sentiment": "happy", "aggressiveness": 2, "language": "spanish"}


def test_empty_document_makes_no_call(fake_engine, tagging_schema):
    endpoint = fake_engine(_reply(sentiment="sad"))
    for doc in ("", "  \n"):
        res = ExtractionClient("fake").extract(doc, tagging_schema)
        assert isinstance(res.error, EmptyDocumentError)
    assert len(endpoint.calls) == 0


def test_missing_field_is_named(fake_engine, tagging_schema):
    fake_engine(_reply(sentiment="sad", language="german"))
    res = ExtractionClient("fake").extract(DOC, tagging_schema)
    assert isinstance(res.error, ValidationFailed)
    assert res.error.fields == ["aggressiveness"]
    assert res.error.partial == {"sentiment": "sad", "language": "german"}
    assert "aggressiveness" in str(res.error)


def test_enum_violation_names_field_and_value(fake_engine, tagging_schema):
    fake_engine(_reply(sentiment="furious", aggressiveness=5, language="english"))
    res = ExtractionClient("fake").extract(DOC, tagging_schema)
    err = res.error
    assert isinstance(err, ValidationFailed)
    assert [(v.field, v.kind, v.value) for v in err.violations] == [("sentiment", NOT_IN_ENUM, "furious")]
    assert "furious" in str(err)
    assert json.loads(err.raw)["sentiment"] == "furious"


def test_out_of_range_is_reported(fake_engine, tagging_schema):
    fake_engine(_reply(sentiment="sad", aggressiveness=9, language="english"))
    res = ExtractionClient("fake").extract(DOC, tagging_schema)
    assert res.error.fields == ["aggressiveness"]


def test_malformed_reply(fake_engine, tagging_schema):
    fake_engine("I think the sentiment is sad.")
    res = ExtractionClient("fake").extract(DOC, tagging_schema)
    assert isinstance(res.error, MalformedReplyError)
    assert not res


def test_endpoint_error_is_returned(fake_engine, tagging_schema):
    fake_engine(EndpointError("boom", retryable=True, status_code=503))
    res = ExtractionClient("fake").extract(DOC, tagging_schema)
    assert isinstance(res.error, EndpointError)
    assert res.error.status_code == 503
    assert EngineBroker.refcount("fake") == 0


def test_schema_resolved_by_name(fake_engine, tagging_schema):
    fake_engine(_reply(sentiment="happy", aggressiveness=1, language="italian"))
    registry = SchemaRegistry()
    registry.define(tagging_schema)
    client = ExtractionClient("fake", registry=registry)
    assert client.extract("Che bello!", "tagging").ok
    with pytest.raises(UnknownSchemaError):
        client.extract("Che bello!", "nope")


def test_endpoint_object_and_timeout_forwarded(tagging_schema):
    from conftest import FakeEndpoint

    endpoint = FakeEndpoint(_reply(sentiment="happy", aggressiveness=1, language="english"))
    client = ExtractionClient(endpoint, timeout=7.5)
    assert client.engine_name == "fake"
    assert client.extract(DOC, tagging_schema).ok
    assert client.extract(DOC, tagging_schema, timeout=2.0).ok
    assert [c["timeout"] for c in endpoint.calls] == [7.5, 2.0]
    assert endpoint.calls[0]["system_prompt"] == client.builder.system_prompt


def test_extract_many_keeps_input_order(tagging_schema):
    from conftest import FakeEndpoint

    class EchoEndpoint(FakeEndpoint):
        def call(self, prompt, schema, timeout=None, *, system_prompt=None):
            self.calls.append(prompt)
            level = 5 if "angry" in prompt else 1
            return _reply(sentiment="neutral", aggressiveness=level, language="english")

    docs = ["calm one", "angry two", "", "calm four"]
    results = ExtractionClient(EchoEndpoint()).extract_many(docs, tagging_schema, max_workers=3)
    assert [r.ok for r in results] == [True, True, False, True]
    assert [r.value["aggressiveness"] for r in results if r.ok] == [1, 5, 1]
    assert isinstance(results[2].error, EmptyDocumentError)


def test_events_are_published(fake_engine, tagging_schema):
    seen = []
    for kind in (events.ExtractionStarted, events.ExtractionSucceeded, events.ExtractionFailed, events.EngineStarted):
        events.subscribe(kind)(seen.append)

    fake_engine(_reply(sentiment="sad", aggressiveness=1, language="english"), _reply(sentiment="x"))
    client = ExtractionClient("fake")
    client.extract(DOC, tagging_schema)
    client.extract(DOC, tagging_schema)

    kinds = [type(e).__name__ for e in seen]
    assert kinds == [
        "ExtractionStarted",
        "EngineStarted",
        "ExtractionSucceeded",
        "ExtractionStarted",
        "ExtractionFailed",
    ]
    failed = seen[-1]
    assert failed.error_type == "ValidationFailed"
    assert failed.fields == ["sentiment", "aggressiveness", "language"]
    assert seen[0].request_id == seen[2].request_id


def test_result_is_a_read_only_mapping(fake_engine, tagging_schema):
    fake_engine(_reply(sentiment="sad", aggressiveness=4, language="german"))
    value = ExtractionClient("fake").extract(DOC, tagging_schema).unwrap()

    assert list(value.keys()) == ["sentiment", "aggressiveness", "language"]
    assert list(value.values()) == ["sad", 4, "german"]
    assert list(value.items()) == [("sentiment", "sad"), ("aggressiveness", 4), ("language", "german")]
    assert dict(value) == value.to_dict() == value.data
    assert value.get("missing") is None
    assert "sentiment" in value
    assert len(value) == 3
    with pytest.raises(TypeError):
        value["sentiment"] = "happy"


def test_zero_timeout_is_forwarded(tagging_schema):
    from conftest import FakeEndpoint

    endpoint = FakeEndpoint(_reply(sentiment="happy", aggressiveness=1, language="english"))
    ExtractionClient(endpoint, timeout=30).extract(DOC, tagging_schema, timeout=0)
    assert endpoint.calls[0]["timeout"] == 0


def test_engine_construction_failure_is_returned(tagging_schema):
    from tagette.engine.registry import register_engine

    def _broken(cfg):
        raise RuntimeError("no credentials")

    register_engine("broken", factory=_broken)
    res = ExtractionClient("broken").extract(DOC, tagging_schema)

    assert isinstance(res.error, EndpointError)
    assert res.error.retryable is False
    assert res.error.engine_name == "broken"
    assert isinstance(res.error.__cause__, RuntimeError)
    assert "no credentials" in str(res.error)
    assert EngineBroker.refcount("broken") == 0


def test_unexpected_endpoint_exception_is_returned(fake_engine, tagging_schema):
    fake_engine(KeyError("choices"))
    res = ExtractionClient("fake").extract(DOC, tagging_schema)
    assert isinstance(res.error, EndpointError)
    assert not res.error.retryable
    assert isinstance(res.error.__cause__, KeyError)
    assert EngineBroker.refcount("fake") == 0


def test_extract_many_keeps_results_around_a_crash(tagging_schema):
    from conftest import FakeEndpoint

    class FlakyEndpoint(FakeEndpoint):
        def call(self, prompt, schema, timeout=None, *, system_prompt=None):
            if "bad" in prompt:
                raise RuntimeError("backend bug")
            return _reply(sentiment="neutral", aggressiveness=2, language="english")

    results = ExtractionClient(FlakyEndpoint()).extract_many(["good one", "bad two", "good three"], tagging_schema)
    assert [r.ok for r in results] == [True, False, True]
    assert isinstance(results[1].error, EndpointError)
    assert isinstance(results[1].error.__cause__, RuntimeError)
