from __future__ import annotations

"""ExtractionClient – prompt, call, parse, validate.

    client = ExtractionClient(engine="openai_default")
    res = client.extract("Estoy muy enojado con vos!", "tagging")
    if res.ok:
        print(res.value["sentiment"])
    else:
        print(res.error)

Expected failures never raise: they come back as ``Result.error``
(``EmptyDocumentError``, ``EndpointError``, ``MalformedReplyError``,
``ValidationFailed``).  The client performs no retries itself; see
:mod:`tagette.core.retry` for a policy layered on top.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union

import anyio

from tagette.core.coerce import validate_reply
from tagette.core.prompt import PromptBuilder
from tagette.core.registry import SchemaRegistry, default_registry
from tagette.core.result import Result
from tagette.core.schema import Schema
from tagette.engine.broker import EngineBroker
from tagette.errors import (
    Cancelled,
    EndpointError,
    ExtractionError,
    MalformedReplyError,
    ValidationFailed,
)
from tagette.utils.events import (
    BatchProgress,
    ExtractionCancelled,
    ExtractionFailed,
    ExtractionStarted,
    ExtractionSucceeded,
    publish,
)
from tagette.utils.ids import new_request_id
from tagette.utils.parsing import parse_reply, reply_text

__all__ = [
    "ExtractionRequest",
    "ExtractionResult",
    "ExtractionClient",
    "run_batch",
]

SchemaRef = Union[Schema, str]


@dataclass(frozen=True)
class ExtractionRequest:
    document_text: str
    schema: Schema
    request_id: str = field(default_factory=new_request_id)


@dataclass(eq=False)
class ExtractionResult(Mapping[str, Any]):
    """Validated values of one extraction, keyed by field name."""

    data: Dict[str, Any]
    schema_name: str
    request_id: str
    raw: str = ""
    elapsed: float = 0.0

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __iter__(self):
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data)


class ExtractionClient:
    """Extract schema-shaped records from documents through one engine.

    Args:
        engine: name of a registered engine, or an endpoint object exposing
            ``call`` (and ``acall`` for async use).
        registry: schema registry used to resolve schema names.
        builder: prompt builder (default: :class:`PromptBuilder`).
        timeout: default per-call timeout in seconds; falls back to the
            engine's own timeout when ``None``.
    """

    def __init__(
        self,
        engine: Any,
        *,
        registry: SchemaRegistry | None = None,
        builder: PromptBuilder | None = None,
        timeout: float | None = None,
    ):
        self.engine = engine
        self.registry = registry if registry is not None else default_registry
        self.builder = builder or PromptBuilder()
        self.timeout = timeout

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @property
    def engine_name(self) -> str:
        if isinstance(self.engine, str):
            return self.engine
        return getattr(self.engine, "engine_name", type(self.engine).__name__)

    def resolve(self, schema: SchemaRef) -> Schema:
        return schema if isinstance(schema, Schema) else self.registry.get(schema)

    @contextmanager
    def _endpoint(self) -> Iterator[Any]:
        if isinstance(self.engine, str):
            with EngineBroker.acquire(self.engine) as eng:
                yield eng
        else:
            yield self.engine

    @asynccontextmanager
    async def _aendpoint(self):
        if isinstance(self.engine, str):
            async with EngineBroker.aacquire(self.engine) as eng:
                yield eng
        else:
            yield self.engine

    def _finish(self, request: ExtractionRequest, raw: Any, started: float) -> Result[ExtractionResult]:
        """Parse and validate *raw*; shared by the sync and async paths."""
        schema = request.schema
        try:
            data = parse_reply(raw)
        except MalformedReplyError as exc:
            return self._fail(request, exc)

        values, violations = validate_reply(schema, data)
        if violations:
            return self._fail(
                request,
                ValidationFailed(schema.name, violations, raw=reply_text(raw), partial=values),
            )

        elapsed = time.perf_counter() - started
        publish(ExtractionSucceeded(request_id=request.request_id, schema_name=schema.name, elapsed=elapsed))
        return Result.success(
            ExtractionResult(
                data=values,
                schema_name=schema.name,
                request_id=request.request_id,
                raw=reply_text(raw),
                elapsed=elapsed,
            )
        )

    def _timeout(self, timeout: float | None) -> float | None:
        return self.timeout if timeout is None else timeout

    def _unexpected(self, exc: Exception) -> EndpointError:
        """Wrap an exception that is not an ``EndpointError`` (non-retryable)."""
        err = EndpointError(
            f"Engine '{self.engine_name}' failed: {type(exc).__name__}: {exc}",
            retryable=False,
            engine_name=self.engine_name,
        )
        err.__cause__ = exc
        return err

    @staticmethod
    def _fail(request: ExtractionRequest, err: ExtractionError) -> Result[ExtractionResult]:
        fields = err.fields if isinstance(err, ValidationFailed) else []
        publish(
            ExtractionFailed(
                request_id=request.request_id,
                schema_name=request.schema.name,
                error_type=type(err).__name__,
                message=str(err),
                fields=fields,
            )
        )
        return Result.failure(err)

    def _prepare(self, document_text: str, schema: SchemaRef, prompt: str | None):
        """Return ``(request, prompt)``; raises ``EmptyDocumentError`` before any I/O."""
        resolved = self.resolve(schema)
        request = ExtractionRequest(document_text=document_text, schema=resolved)
        if prompt is None:
            prompt = self.builder.render(document_text, resolved)
        else:
            self.builder.check_document(document_text, resolved)
        return request, prompt

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def extract(
        self,
        document_text: str,
        schema: SchemaRef,
        *,
        timeout: float | None = None,
        prompt: str | None = None,
    ) -> Result[ExtractionResult]:
        """Extract *schema* from *document_text*.

        *prompt* overrides the rendered prompt (used for repair prompts).
        """
        try:
            request, prompt = self._prepare(document_text, schema, prompt)
        except ExtractionError as exc:
            return Result.failure(exc)

        publish(
            ExtractionStarted(
                request_id=request.request_id,
                schema_name=request.schema.name,
                engine_name=self.engine_name,
            )
        )
        limit = self._timeout(timeout)
        started = time.perf_counter()
        try:
            with self._endpoint() as eng:
                raw = eng.call(
                    prompt,
                    request.schema,
                    limit,
                    system_prompt=self.builder.system_prompt,
                )
        except EndpointError as exc:
            return self._fail(request, exc)
        except Exception as exc:  # noqa: BLE001 - engine construction or backend bug
            return self._fail(request, self._unexpected(exc))
        return self._finish(request, raw, started)

    async def aextract(
        self,
        document_text: str,
        schema: SchemaRef,
        *,
        timeout: float | None = None,
        prompt: str | None = None,
    ) -> Result[ExtractionResult]:
        """Async variant of :meth:`extract`.

        Raises:
            Cancelled: when the surrounding task is cancelled while waiting
                on the endpoint.  The engine reference is released first.
        """
        try:
            request, prompt = self._prepare(document_text, schema, prompt)
        except ExtractionError as exc:
            return Result.failure(exc)

        publish(
            ExtractionStarted(
                request_id=request.request_id,
                schema_name=request.schema.name,
                engine_name=self.engine_name,
            )
        )
        limit = self._timeout(timeout)
        started = time.perf_counter()
        try:
            async with self._aendpoint() as eng:
                with anyio.fail_after(limit):
                    raw = await eng.acall(
                        prompt,
                        request.schema,
                        limit,
                        system_prompt=self.builder.system_prompt,
                    )
        except anyio.get_cancelled_exc_class() as exc:
            publish(ExtractionCancelled(request_id=request.request_id, schema_name=request.schema.name))
            raise Cancelled(f"Extraction {request.request_id} was cancelled.") from exc
        except TimeoutError:
            return self._fail(
                request,
                EndpointError(
                    f"Engine '{self.engine_name}' did not answer within {limit}s.",
                    retryable=True,
                    engine_name=self.engine_name,
                ),
            )
        except EndpointError as exc:
            return self._fail(request, exc)
        except Exception as exc:  # noqa: BLE001
            return self._fail(request, self._unexpected(exc))
        return self._finish(request, raw, started)

    def extract_many(
        self,
        documents: Sequence[str],
        schema: SchemaRef,
        *,
        max_workers: int = 8,
        timeout: float | None = None,
    ) -> List[Result[ExtractionResult]]:
        """Run :meth:`extract` concurrently; results keep the input order."""
        resolved = self.resolve(schema)
        return run_batch(
            lambda doc: self.extract(doc, resolved, timeout=timeout),
            documents,
            label=resolved.name,
            max_workers=max_workers,
        )


def run_batch(
    func: Callable[[str], Result[ExtractionResult]],
    documents: Sequence[str],
    *,
    label: str | None = None,
    max_workers: int = 8,
) -> List[Result[ExtractionResult]]:
    """Apply *func* to every document on a thread pool, keeping input order.

    Publishes one :class:`BatchProgress` event per finished document.
    """
    if not documents:
        return []
    results: List[Optional[Result[ExtractionResult]]] = [None] * len(documents)
    done = 0
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(documents)))) as pool:
        futures = {pool.submit(func, doc): idx for idx, doc in enumerate(documents)}
        for fut in as_completed(futures):
            results[futures[fut]] = fut.result()
            done += 1
            publish(BatchProgress(total=len(documents), done=done, label=label))
    return results  # type: ignore[return-value]
