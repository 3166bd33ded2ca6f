from __future__ import annotations
"""Result container capturing success or a structured failure.

Extraction never raises for expected failures; it returns a ``Result``
whose *error* is one of the :mod:`tagette.errors` extraction errors.
"""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from tagette.errors import ExtractionError

T = TypeVar("T")

__all__ = ["Result"]


@dataclass(slots=True)
class Result(Generic[T]):  # noqa: D101
    value: Optional[T] = None
    error: Optional[ExtractionError] = None

    # ------------------------------------------------------------------ #
    @property
    def ok(self) -> bool:  # noqa: D401
        """Return True when *error* is None."""
        return self.error is None

    # Convenience constructors ----------------------------------------- #
    @staticmethod
    def success(val: T) -> "Result[T]":  # noqa: D401
        return Result(value=val)

    @staticmethod
    def failure(err: ExtractionError) -> "Result[T]":  # noqa: D401
        return Result(error=err)

    # ------------------------------------------------------------------ #
    def unwrap(self) -> T:  # noqa: D401
        """Return *value* or raise *error* if present."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.ok
