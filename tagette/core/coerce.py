from __future__ import annotations

"""Reply validation & coercion.

``validate_reply(schema, data)`` validates a parsed reply with the pydantic
model of *schema* (:meth:`Schema.to_model`) and returns
``(values, violations)``.  Pydantic reports every field at once; its errors
are mapped to :class:`Violation` kinds so the caller sees all of them.

Coercion never crosses semantic kinds (the rules live in the field
annotations, see :mod:`tagette.core.schema`):

* bounded int – ``int``, integral ``float`` and numeric strings are accepted;
  ``bool`` and fractional numbers are type errors; out-of-range values are
  reported, never clamped
* enum – exact match, else a trimmed case-insensitive match maps to the
  canonical value
* string – ``str`` only (strict)
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Tuple, Type

from pydantic import BaseModel, TypeAdapter, ValidationError

from tagette.core.schema import Field, Schema
from tagette.utils.logging import log

__all__ = [
    "MISSING",
    "WRONG_TYPE",
    "OUT_OF_RANGE",
    "NOT_IN_ENUM",
    "Violation",
    "coerce_value",
    "validate_reply",
]

MISSING = "missing"
WRONG_TYPE = "wrong_type"
OUT_OF_RANGE = "out_of_range"
NOT_IN_ENUM = "not_in_enum"

# pydantic error type -> violation kind; anything else is a type error
_KIND_BY_ERROR = {
    "missing": MISSING,
    "greater_than_equal": OUT_OF_RANGE,
    "less_than_equal": OUT_OF_RANGE,
    "literal_error": NOT_IN_ENUM,
}


@dataclass(frozen=True)
class Violation:
    field: str
    kind: str
    message: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "kind": self.kind, "value": self.value, "message": self.message}


@lru_cache(maxsize=None)
def _model(schema: Schema) -> Type[BaseModel]:
    return schema.to_model()


@lru_cache(maxsize=None)
def _adapter(f: Field) -> TypeAdapter:
    return TypeAdapter(f.type.annotation())


def _violation(name: str, err: Mapping[str, Any]) -> Violation:
    kind = _KIND_BY_ERROR.get(err["type"], WRONG_TYPE)
    if kind == MISSING:
        return Violation(name, MISSING, f"{name}: required field is missing")
    value = err.get("input")
    return Violation(name, kind, f"{name}: {err['msg']} (got {value!r})", value)


def coerce_value(f: Field, value: Any) -> Any:
    """Return *value* coerced for field *f*; raise ``ValueError`` when impossible."""
    try:
        return _adapter(f).validate_python(value)
    except ValidationError as exc:
        raise ValueError(_violation(f.name, exc.errors()[0]).message) from None


def validate_reply(
    schema: Schema,
    data: Mapping[str, Any],
) -> Tuple[Dict[str, Any], List[Violation]]:
    """Validate *data* against *schema*.

    ``null`` counts as absent.  Returns ``(values, violations)``; *values*
    holds every field that validated (in schema order) and is only a
    complete result when *violations* is empty.
    """
    present = {k: v for k, v in data.items() if v is not None}
    extra = [k for k in present if k not in schema.field_names]
    if extra:
        log.debug("dropping fields not in schema '%s': %s", schema.name, ", ".join(map(str, extra)))

    try:
        reply = _model(schema).model_validate(present)
    except ValidationError as exc:
        by_field: Dict[str, Violation] = {}
        for err in exc.errors():
            name = str(err["loc"][0]) if err["loc"] else ""
            by_field.setdefault(name, _violation(name, err))
        violations = [by_field[f.name] for f in schema.fields if f.name in by_field]
        values = {
            f.name: _adapter(f).validate_python(present[f.name])
            for f in schema.fields
            if f.name in present and f.name not in by_field
        }
        return values, violations

    values = {f.name: getattr(reply, f.name) for f in schema.fields}
    return {k: v for k, v in values.items() if v is not None}, []
