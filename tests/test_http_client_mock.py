import json

import pytest

from tagette import EndpointError
from tagette.engine.http_client import OpenAIClient, VLLMClient, is_retryable_status

respx = pytest.importorskip("respx")
import httpx  # noqa: E402

URL = "https://api.openai.com/v1/chat/completions"


def _completion(content: str) -> dict:
    return {
        "id": "cmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4.1-mini",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def _client(**kw) -> OpenAIClient:
    return OpenAIClient("https://api.openai.com/v1", "test_key", "gpt-4.1-mini", max_retries=0, **kw)


@pytest.mark.parametrize("temperature", [None, 0.2])
@respx.mock
def test_openai_client_payload(temperature, tagging_schema):
    """OpenAIClient should POST the schema as response_format and return the reply text."""
    route = respx.post(URL).mock(return_value=httpx.Response(200, json=_completion('{"sentiment": "sad"}')))
    client = _client(temperature=temperature, engine_name="openai_default")

    out = client.call("Tag this", tagging_schema, system_prompt="sys")

    assert route.called, "OpenAI endpoint not called"
    sent = json.loads(route.calls[0].request.content)
    assert sent["model"] == "gpt-4.1-mini"
    assert sent["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "Tag this"}]
    fmt = sent["response_format"]
    assert fmt["type"] == "json_schema"
    assert fmt["json_schema"]["name"] == "tagging"
    assert fmt["json_schema"]["schema"] == tagging_schema.json_schema()
    if temperature is not None:
        assert sent["temperature"] == temperature
    else:
        assert "temperature" not in sent
    assert out == '{"sentiment": "sad"}'
    client.close()


@pytest.mark.parametrize("status, retryable", [(503, True), (429, True), (400, False), (401, False)])
@respx.mock
def test_openai_status_errors_map_to_endpoint_error(status, retryable, tagging_schema):
    respx.post(URL).mock(return_value=httpx.Response(status, json={"error": {"message": "nope"}}))
    with pytest.raises(EndpointError) as info:
        _client(engine_name="oa").call("Tag this", tagging_schema)
    assert info.value.status_code == status
    assert info.value.retryable is retryable
    assert info.value.engine_name == "oa"


@respx.mock
def test_openai_connection_error_is_retryable(tagging_schema):
    respx.post(URL).mock(side_effect=httpx.ConnectError("refused"))
    with pytest.raises(EndpointError) as info:
        _client().call("Tag this", tagging_schema)
    assert info.value.retryable
    assert info.value.status_code is None


@pytest.mark.anyio
async def test_openai_acall(tagging_schema):
    with respx.mock:
        route = respx.post(URL).mock(return_value=httpx.Response(200, json=_completion('{"language": "french"}')))
        out = await _client().acall("Tag this", tagging_schema)
    assert route.called
    assert out == '{"language": "french"}'


@respx.mock
def test_vllm_client_uses_guided_json(tagging_schema):
    route = respx.post("http://localhost:8000/v1/chat/completions").mock(
        return_value=httpx.Response(200, json=_completion("{}"))
    )
    VLLMClient(None, "qwen", max_retries=0).call("Tag this", tagging_schema)
    sent = json.loads(route.calls[0].request.content)
    assert "response_format" not in sent
    assert sent["guided_json"] == tagging_schema.json_schema()


def test_retryable_status():
    assert [is_retryable_status(s) for s in (None, 200, 400, 408, 429, 500, 503)] == [
        False, False, False, True, True, True, True,
    ]


def test_zero_timeout_is_not_the_default():
    client = _client(timeout=30)
    assert client._timeout(None) == 30
    assert client._timeout(0) == 0
    client.close()


@respx.mock
def test_openai_without_system_prompt(tagging_schema):
    route = respx.post(URL).mock(return_value=httpx.Response(200, json=_completion("{}")))
    _client().call("Tag this", tagging_schema)
    sent = json.loads(route.calls[0].request.content)
    assert sent["messages"] == [{"role": "user", "content": "Tag this"}]
