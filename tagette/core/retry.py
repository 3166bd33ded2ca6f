from __future__ import annotations

"""Retry policy layered above :meth:`ExtractionClient.extract`.

* retryable ``EndpointError`` (timeouts, 429, 5xx) – exponential backoff
  with ±25 % jitter
* ``ValidationFailed`` – immediate retry with a repair prompt that echoes
  the violated fields and the rejected reply
* anything else (malformed reply, empty document, non-retryable endpoint
  error) – returned as is
"""

import random
import time
from typing import Callable, List, Optional, Sequence

from tagette.core.client import ExtractionClient, ExtractionResult, SchemaRef, run_batch
from tagette.core.result import Result
from tagette.errors import EndpointError, ValidationFailed
from tagette.utils.events import RetryScheduled, publish

__all__ = ["backoff_delay", "extract_with_retries", "extract_many_with_retries"]


def backoff_delay(
    attempt: int,
    *,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 0.25,
    rng: Callable[[float, float], float] = random.uniform,
) -> float:
    """Delay before retry number *attempt* (1-based)."""
    delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
    return max(0.0, delay * (1 + rng(-jitter, jitter)))


def extract_with_retries(
    client: ExtractionClient,
    document_text: str,
    schema: SchemaRef,
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Result[ExtractionResult]:
    """Call ``client.extract`` up to *max_attempts* times; return the last result."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    resolved = client.resolve(schema)
    prompt: Optional[str] = None
    result: Result[ExtractionResult] = client.extract(document_text, resolved, timeout=timeout)

    for attempt in range(1, max_attempts):
        err = result.error
        if err is None:
            break
        if isinstance(err, EndpointError) and err.retryable:
            delay = backoff_delay(attempt, base_delay=base_delay, max_delay=max_delay)
            publish(RetryScheduled(attempt=attempt, delay=delay, reason=str(err)))
            sleep(delay)
        elif isinstance(err, ValidationFailed):
            prompt = client.builder.render_repair(
                document_text, resolved, err.violations, previous_reply=err.raw or ""
            )
            publish(RetryScheduled(attempt=attempt, delay=0.0, reason=f"invalid fields: {', '.join(err.fields)}"))
        else:
            break
        result = client.extract(document_text, resolved, timeout=timeout, prompt=prompt)

    return result


def extract_many_with_retries(
    client: ExtractionClient,
    documents: Sequence[str],
    schema: SchemaRef,
    *,
    max_workers: int = 8,
    **retry_kwargs,
) -> List[Result[ExtractionResult]]:
    """:func:`extract_with_retries` for every document on the batch thread pool."""
    resolved = client.resolve(schema)
    return run_batch(
        lambda doc: extract_with_retries(client, doc, resolved, **retry_kwargs),
        documents,
        label=resolved.name,
        max_workers=max_workers,
    )
