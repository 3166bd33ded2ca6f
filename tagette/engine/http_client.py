from __future__ import annotations
"""Thin clients for remote LLM APIs (OpenAI, vLLM-serve, Ollama).

Each client implements the endpoint capability used by
:class:`tagette.core.client.ExtractionClient`::

    engine.call(prompt, schema, timeout=None, *, system_prompt=None) -> raw reply
    await engine.acall(prompt, schema, timeout=None, *, system_prompt=None)

The schema is forwarded so the backend may constrain its own decoding
(OpenAI ``json_schema`` response format, vLLM ``guided_json``, Ollama
``format``).  Replies are returned as text and validated by the caller
regardless of what the backend promises.

SDK exceptions are mapped to :class:`tagette.errors.EndpointError`.
Transport-level retries stay inside the SDKs (``max_retries``).
"""

from typing import Any, Dict, List, Optional

import httpx
import openai

from tagette.core.schema import Schema
from tagette.errors import EndpointError
from tagette.utils.ids import snake_case

try:
    import ollama
except ModuleNotFoundError:
    ollama = None

__all__ = [
    "BaseHTTPClient",
    "OpenAIClient",
    "VLLMClient",
    "OllamaHTTPClient",
    "is_retryable_status",
]

_RETRYABLE_STATUS = {408, 409, 429}


def is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status in _RETRYABLE_STATUS or status >= 500)


def _messages(prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
    msgs: List[Dict[str, str]] = []
    if system_prompt:
        msgs.append({"role": "system", "content": system_prompt})
    msgs.append({"role": "user", "content": prompt})
    return msgs


class BaseHTTPClient:
    """Base contract for HTTP clients."""

    def __init__(
        self,
        endpoint: str | None,
        api_key: str | None,
        model: str,
        *,
        temperature: float | None = 0.0,
        timeout: float = 120.0,
        engine_name: str | None = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.engine_name = engine_name or model

    def call(
        self,
        prompt: str,
        schema: Schema,
        timeout: float | None = None,
        *,
        system_prompt: str | None = None,
    ) -> Any:
        """Send *prompt* and return the raw reply (backend-specific)."""
        raise NotImplementedError

    async def acall(
        self,
        prompt: str,
        schema: Schema,
        timeout: float | None = None,
        *,
        system_prompt: str | None = None,
    ) -> Any:
        raise NotImplementedError

    def _timeout(self, timeout: float | None) -> float:
        return self.timeout if timeout is None else timeout

    def close(self) -> None:
        """Release the transport held by this client."""


# --------------------------------------------------------------------------- #
# OpenAI & OpenAI-compatible servers
# --------------------------------------------------------------------------- #

def _map_openai_error(exc: openai.APIError, engine_name: str) -> EndpointError:
    if isinstance(exc, openai.APITimeoutError):
        return EndpointError(f"Engine '{engine_name}' timed out: {exc}", retryable=True, engine_name=engine_name)
    if isinstance(exc, openai.APIConnectionError):
        return EndpointError(
            f"Engine '{engine_name}' is unreachable: {exc}", retryable=True, engine_name=engine_name
        )
    if isinstance(exc, openai.APIStatusError):
        return EndpointError(
            f"Engine '{engine_name}' returned HTTP {exc.status_code}: {exc.message}",
            retryable=is_retryable_status(exc.status_code),
            status_code=exc.status_code,
            engine_name=engine_name,
        )
    return EndpointError(f"Engine '{engine_name}' failed: {exc}", retryable=False, engine_name=engine_name)


class OpenAIClient(BaseHTTPClient):
    """OpenAI chat-completions client using the ``json_schema`` response format."""

    def __init__(
        self,
        endpoint: str | None,
        api_key: str | None,
        model: str,
        *,
        temperature: float | None = 0.0,
        timeout: float = 120.0,
        max_retries: int = 2,
        engine_name: str | None = None,
    ):
        super().__init__(endpoint, api_key, model, temperature=temperature, timeout=timeout, engine_name=engine_name)
        self.max_retries = max_retries
        self._client = openai.OpenAI(**self._client_kwargs())

    def _client_kwargs(self) -> Dict[str, Any]:
        return {
            "base_url": self.endpoint,
            "api_key": self.api_key,
            "max_retries": self.max_retries,
            "timeout": self.timeout,
        }

    def _request_kwargs(self, prompt: str, schema: Schema, system_prompt: str | None) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": _messages(prompt, system_prompt),
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": snake_case(schema.name) or "extraction",
                    "schema": schema.json_schema(),
                    "strict": False,
                },
            },
        }
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        return kwargs

    @staticmethod
    def _content(resp: Any) -> str:
        message = resp.choices[0].message
        return message.content or ""

    def call(self, prompt, schema, timeout=None, *, system_prompt=None):
        try:
            resp = self._client.chat.completions.create(
                **self._request_kwargs(prompt, schema, system_prompt),
                timeout=self._timeout(timeout),
            )
        except openai.APIError as exc:
            raise _map_openai_error(exc, self.engine_name) from exc
        return self._content(resp)

    async def acall(self, prompt, schema, timeout=None, *, system_prompt=None):
        # One async transport per call: leaving the block closes it, also on cancellation.
        async with openai.AsyncOpenAI(**self._client_kwargs()) as client:
            try:
                resp = await client.chat.completions.create(
                    **self._request_kwargs(prompt, schema, system_prompt),
                    timeout=self._timeout(timeout),
                )
            except openai.APIError as exc:
                raise _map_openai_error(exc, self.engine_name) from exc
        return self._content(resp)

    def close(self) -> None:
        self._client.close()


class VLLMClient(OpenAIClient):
    """Client for vLLM's OpenAI-compatible HTTP server (``guided_json`` decoding)."""

    def __init__(
        self,
        endpoint: str | None,
        model: str,
        *,
        temperature: float | None = 0.0,
        timeout: float = 120.0,
        max_retries: int = 2,
        engine_name: str | None = None,
    ):
        super().__init__(
            endpoint or "http://localhost:8000/v1",
            "dummy-key",
            model,
            temperature=temperature,
            timeout=timeout,
            max_retries=max_retries,
            engine_name=engine_name,
        )

    def _request_kwargs(self, prompt, schema, system_prompt):
        kwargs = super()._request_kwargs(prompt, schema, system_prompt)
        kwargs.pop("response_format")
        kwargs["extra_body"] = {"guided_json": schema.json_schema()}
        return kwargs


# --------------------------------------------------------------------------- #
# Ollama
# --------------------------------------------------------------------------- #

class OllamaHTTPClient(BaseHTTPClient):
    """Client using the Ollama Python package (``format`` = JSON schema)."""

    def __init__(
        self,
        endpoint: str | None,
        model: str,
        *,
        temperature: float | None = 0.0,
        timeout: float = 120.0,
        engine_name: str | None = None,
    ):
        if ollama is None:
            raise ModuleNotFoundError(
                "The 'ollama' package is required for backend 'ollama_api'.\n"
                "Install with: pip install tagette[ollama]"
            )
        super().__init__(endpoint, None, model, temperature=temperature, timeout=timeout, engine_name=engine_name)
        self._client = ollama.Client(host=self.endpoint, timeout=self.timeout)

    def _request_kwargs(self, prompt: str, schema: Schema, system_prompt: str | None) -> Dict[str, Any]:
        options = {"temperature": self.temperature} if self.temperature is not None else None
        return {
            "model": self.model,
            "messages": _messages(prompt, system_prompt),
            "stream": False,
            "format": schema.json_schema(),
            "options": options,
        }

    def _map_error(self, exc: Exception) -> EndpointError:
        if isinstance(exc, ollama.ResponseError):
            status = getattr(exc, "status_code", None)
            return EndpointError(
                f"Engine '{self.engine_name}' returned HTTP {status}: {exc.error}",
                retryable=is_retryable_status(status),
                status_code=status,
                engine_name=self.engine_name,
            )
        return EndpointError(f"Engine '{self.engine_name}' is unreachable: {exc}", engine_name=self.engine_name)

    @staticmethod
    def _content(resp: Any) -> str:
        message = resp.get("message", {}) or {}
        return message.get("content", "") or ""

    def call(self, prompt, schema, timeout=None, *, system_prompt=None):
        limit = self._timeout(timeout)
        # ollama sets the timeout per client: use a short-lived one for other limits
        client = self._client if limit == self.timeout else ollama.Client(host=self.endpoint, timeout=limit)
        try:
            resp = client.chat(**self._request_kwargs(prompt, schema, system_prompt))
        except (ollama.ResponseError, httpx.TransportError, ConnectionError) as exc:
            raise self._map_error(exc) from exc
        finally:
            if client is not self._client:
                client._client.close()
        return self._content(resp)

    def close(self) -> None:
        self._client._client.close()

    async def acall(self, prompt, schema, timeout=None, *, system_prompt=None):
        client = ollama.AsyncClient(host=self.endpoint, timeout=self._timeout(timeout))
        try:
            resp = await client.chat(**self._request_kwargs(prompt, schema, system_prompt))
        except (ollama.ResponseError, httpx.TransportError, ConnectionError) as exc:
            raise self._map_error(exc) from exc
        finally:
            await client._client.aclose()
        return self._content(resp)
