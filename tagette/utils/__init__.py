"""Tagette utilities."""

from .ids import snake_case, new_request_id, new_run_id
from .parsing import parse_reply
from .templates import fence, render

__all__ = [
    "snake_case",
    "new_request_id",
    "new_run_id",
    "parse_reply",
    "fence",
    "render",
]
