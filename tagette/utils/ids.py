from __future__ import annotations

"""tagette.utils.ids
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Identifier helpers: request ids for extraction calls and ``snake_case``
normalisation used for schema names and output file names.
"""

import re
import uuid
from datetime import datetime

__all__ = ["snake_case", "new_request_id", "new_run_id"]

_PATTERN = re.compile(r"[^a-zA-Z0-9]+")


def snake_case(text: str) -> str:  # noqa: D401
    """Return *text* converted to ``snake_case``.

    * non‑alphanumeric chars become ``_``
    * multiple underscores are squeezed
    * leading/trailing underscores are stripped
    * everything lower‑cased
    """

    s = _PATTERN.sub("_", text)
    s = re.sub(r"_+", "_", s)
    return s.strip("_").lower()


def new_request_id() -> str:
    """Short random id attached to one extraction call."""
    return uuid.uuid4().hex[:12]


def new_run_id() -> str:
    """Run id for batch outputs: ``YYYYMMDD-HHMMSS-<8 hex chars>``."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return f"{timestamp}-{uuid.uuid4().hex[:8]}"
