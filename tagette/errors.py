from __future__ import annotations

"""Error taxonomy for Tagette.

Two families:

* schema-definition errors, raised eagerly while a schema is being built or
  registered (fatal to that definition call);
* extraction errors, returned to the caller inside a
  :class:`~tagette.core.result.Result` by ``ExtractionClient.extract``.

Every message names the field(s) and reason so callers can build a
corrective follow-up prompt.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from tagette.core.coerce import Violation

__all__ = [
    "TagetteError",
    "SchemaDefinitionError",
    "DuplicateFieldError",
    "InvalidRangeError",
    "EmptyEnumError",
    "DuplicateSchemaError",
    "UnknownSchemaError",
    "ExtractionError",
    "EmptyDocumentError",
    "EndpointError",
    "MalformedReplyError",
    "ValidationFailed",
    "Cancelled",
]


class TagetteError(Exception):
    """Base class of every error raised or returned by Tagette."""


# --------------------------------------------------------------------------- #
# Schema definition
# --------------------------------------------------------------------------- #

class SchemaDefinitionError(TagetteError):
    """A schema could not be defined."""


class DuplicateFieldError(SchemaDefinitionError):
    def __init__(self, schema_name: str, field_name: str):
        self.schema_name = schema_name
        self.field_name = field_name
        super().__init__(f"Schema '{schema_name}' declares field '{field_name}' more than once.")


class InvalidRangeError(SchemaDefinitionError):
    def __init__(self, field_name: str, minimum: int, maximum: int):
        self.field_name = field_name
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Field '{field_name}' has an empty integer range: min={minimum} > max={maximum}."
        )


class EmptyEnumError(SchemaDefinitionError):
    def __init__(self, field_name: str, reason: str = "has no allowed values"):
        self.field_name = field_name
        super().__init__(f"Enum field '{field_name}' {reason}.")


class DuplicateSchemaError(SchemaDefinitionError):
    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        super().__init__(f"A different schema named '{schema_name}' is already defined.")


class UnknownSchemaError(TagetteError, KeyError):
    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        super().__init__(f"Schema '{schema_name}' is not registered.")

    def __str__(self) -> str:  # KeyError would repr() the message
        return str(self.args[0])


# --------------------------------------------------------------------------- #
# Extraction outcomes
# --------------------------------------------------------------------------- #

class ExtractionError(TagetteError):
    """Base class of every failed extraction outcome."""

    retryable: bool = False


class EmptyDocumentError(ExtractionError):
    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        super().__init__(
            f"Document is empty but schema '{schema_name}' has required fields."
        )


class EndpointError(ExtractionError):
    """Transport or availability failure of the model endpoint."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        status_code: Optional[int] = None,
        engine_name: Optional[str] = None,
    ):
        self.retryable = retryable
        self.status_code = status_code
        self.engine_name = engine_name
        super().__init__(message)


class MalformedReplyError(ExtractionError):
    """The reply could not be parsed into a field mapping at all."""

    def __init__(self, message: str, raw: Any = None):
        self.raw = raw
        super().__init__(message)


class ValidationFailed(ExtractionError):
    """The reply parsed but violates the schema; lists every violation."""

    retryable = True

    def __init__(
        self,
        schema_name: str,
        violations: Sequence["Violation"],
        *,
        raw: Any = None,
        partial: Optional[Dict[str, Any]] = None,
    ):
        self.schema_name = schema_name
        self.violations: List["Violation"] = list(violations)
        self.raw = raw
        self.partial: Dict[str, Any] = dict(partial or {})
        details = "; ".join(v.message for v in self.violations)
        super().__init__(
            f"Reply violates schema '{schema_name}' "
            f"({len(self.violations)} violation(s)): {details}"
        )

    @property
    def fields(self) -> List[str]:
        """Names of the violated fields, in schema order."""
        return [v.field for v in self.violations]


class Cancelled(ExtractionError):
    """The call was cancelled while waiting on the endpoint."""
