from __future__ import annotations
"""Turn a raw model reply into a ``field -> value`` mapping.

Endpoints hand back either an already decoded object (SDK "parsed" replies,
pydantic models, dicts) or text.  Text may be plain JSON, JSON inside a
markdown fence, JSON after ``<think>…</think>`` reasoning, or JSON after a
short preamble.  Anything else is a :class:`MalformedReplyError`.
"""
import json
import re
from typing import Any, Dict, Mapping

from pydantic import BaseModel

from tagette.errors import MalformedReplyError

__all__ = ["parse_reply", "reply_text"]

_THINK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_FENCE = re.compile(r"```+[a-zA-Z]*\s*\n?(.*?)\n?```+", re.DOTALL)
_decoder = json.JSONDecoder()


def reply_text(raw: Any) -> str:
    """Best-effort text form of *raw* for logs and repair prompts."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, BaseModel):
        return raw.model_dump_json()
    try:
        return json.dumps(raw, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(raw)


def _as_object(value: Any, raw: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    raise MalformedReplyError(
        f"Expected a JSON object, got {type(value).__name__}: {reply_text(raw)[:200]}",
        raw=raw,
    )


def _first_object(text: str) -> Any:
    """Decode the first JSON object embedded in *text* (preamble tolerant)."""
    for match in re.finditer(r"\{", text):
        try:
            value, _ = _decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def parse_reply(raw: Any) -> Dict[str, Any]:
    """Return the field mapping carried by *raw*.

    Raises:
        MalformedReplyError: when no JSON object can be recovered.
    """
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        raise MalformedReplyError(f"Unsupported reply type {type(raw).__name__}.", raw=raw)

    cleaned = _THINK.sub("", raw).strip()
    if not cleaned:
        raise MalformedReplyError("Model returned an empty reply.", raw=raw)

    # 1) plain JSON
    try:
        return _as_object(json.loads(cleaned), raw)
    except json.JSONDecodeError:
        pass

    # 2) fenced JSON
    fenced = _FENCE.search(cleaned)
    if fenced:
        try:
            return _as_object(json.loads(fenced.group(1).strip()), raw)
        except json.JSONDecodeError:
            pass

    # 3) first object after a preamble
    obj = _first_object(cleaned)
    if obj is not None:
        return obj

    raise MalformedReplyError(f"Could not parse a JSON object from reply: {cleaned[:200]}", raw=raw)
