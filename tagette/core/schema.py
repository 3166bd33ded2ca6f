from __future__ import annotations

"""Declarative output schemas.

A :class:`Schema` is an ordered, immutable set of :class:`Field` objects.
Each field carries a tagged type variant:

* :class:`StringType` – free text
* :class:`BoundedIntType` – integer within inclusive ``[min, max]``
* :class:`EnumType` – one value of a finite, ordered set of strings

Constraints are explicit data, so the prompt builder, the reply validator and
the JSON-schema/pydantic renderers all read the same description instead of
reflecting over classes.

Usage::

    tagging = Schema("tagging", [
        Field("sentiment", EnumType(("happy", "neutral", "sad"))),
        Field("aggressiveness", BoundedIntType(1, 5)),
    ])
"""

import re
from dataclasses import dataclass, field as dc_field
from typing import Annotated, Any, Dict, Iterable, Iterator, List, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, BeforeValidator, Field as PydanticField, Strict, create_model
from pydantic_core import PydanticCustomError

from tagette.errors import (
    DuplicateFieldError,
    EmptyEnumError,
    InvalidRangeError,
    SchemaDefinitionError,
)

__all__ = [
    "StringType",
    "BoundedIntType",
    "EnumType",
    "FieldType",
    "Field",
    "Schema",
    "field_type_from_dict",
]


# --------------------------------------------------------------------------- #
# Field type variants
# --------------------------------------------------------------------------- #

# Integral numeric strings: "3", " +3 ", "3.0"
_NUMERIC = re.compile(r"^[+-]?\d+(\.0*)?$")


def _integral(value: Any) -> Any:
    """Before-validator for bounded ints: no booleans, integral strings become ints."""
    if isinstance(value, bool):
        raise PydanticCustomError("int_type", "Input should be a valid integer, not a boolean")
    if isinstance(value, str) and _NUMERIC.match(value.strip()):
        return int(value.strip().split(".")[0])
    return value


@dataclass(frozen=True)
class StringType:
    kind = "string"

    def describe(self) -> str:
        return "string"

    def json_schema(self) -> Dict[str, Any]:
        return {"type": "string"}

    def annotation(self) -> Any:
        return Annotated[str, Strict()]


@dataclass(frozen=True)
class BoundedIntType:
    min: int
    max: int

    kind = "int"

    def describe(self) -> str:
        return f"integer from {self.min} to {self.max} (inclusive)"

    def json_schema(self) -> Dict[str, Any]:
        return {"type": "integer", "minimum": self.min, "maximum": self.max}

    def annotation(self) -> Any:
        return Annotated[int, BeforeValidator(_integral), PydanticField(ge=self.min, le=self.max)]

    def __contains__(self, value: int) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class EnumType:
    values: Tuple[str, ...]

    kind = "enum"

    def __post_init__(self):
        # Accept any iterable but store an immutable tuple
        object.__setattr__(self, "values", tuple(self.values))

    def describe(self) -> str:
        return "one of: " + ", ".join(self.values)

    def json_schema(self) -> Dict[str, Any]:
        return {"type": "string", "enum": list(self.values)}

    def annotation(self) -> Any:
        return Annotated[Literal[self.values], BeforeValidator(self.canonical)]  # type: ignore[valid-type]

    def canonical(self, value: Any) -> Any:
        """Map a trimmed, case-insensitive match onto the declared value."""
        if not isinstance(value, str):
            raise PydanticCustomError("string_type", "Input should be a valid string")
        if value in self.values:
            return value
        folded = value.strip().casefold()
        for allowed in self.values:
            if allowed.casefold() == folded:
                return allowed
        return value

    def __contains__(self, value: str) -> bool:
        return value in self.values


FieldType = Union[StringType, BoundedIntType, EnumType]


def field_type_from_dict(data: Mapping[str, Any]) -> FieldType:
    """Build a field type from its YAML/JSON form (``type`` + constraints)."""
    tag = str(data.get("type", "string")).lower()
    if tag in ("string", "str"):
        return StringType()
    if tag in ("int", "integer"):
        try:
            return BoundedIntType(min=int(data["min"]), max=int(data["max"]))
        except KeyError as exc:
            raise SchemaDefinitionError(
                f"Integer field '{data.get('name', '?')}' needs both 'min' and 'max'."
            ) from exc
    if tag == "enum":
        return EnumType(tuple(str(v) for v in data.get("values") or ()))
    raise SchemaDefinitionError(f"Unknown field type '{tag}' for field '{data.get('name', '?')}'.")


# --------------------------------------------------------------------------- #
# Field & Schema
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class Field:
    name: str
    type: FieldType = dc_field(default_factory=StringType)
    description: str = ""
    required: bool = True

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.isidentifier() or self.name.startswith("_"):
            raise SchemaDefinitionError(
                f"Invalid field name {self.name!r}: use a Python-style identifier without a leading underscore."
            )
        if isinstance(self.type, BoundedIntType) and self.type.min > self.type.max:
            raise InvalidRangeError(self.name, self.type.min, self.type.max)
        if isinstance(self.type, EnumType):
            if not self.type.values:
                raise EmptyEnumError(self.name)
            if len(set(self.type.values)) != len(self.type.values):
                raise EmptyEnumError(self.name, "repeats an allowed value")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Field":
        return cls(
            name=data["name"],
            type=field_type_from_dict(data),
            description=str(data.get("description") or "").strip(),
            required=bool(data.get("required", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "type": self.type.kind}
        if isinstance(self.type, BoundedIntType):
            d.update(min=self.type.min, max=self.type.max)
        elif isinstance(self.type, EnumType):
            d["values"] = list(self.type.values)
        if self.description:
            d["description"] = self.description
        if not self.required:
            d["required"] = False
        return d


@dataclass(frozen=True)
class Schema:
    name: str
    fields: Tuple[Field, ...]
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "fields", tuple(self.fields))
        if not self.name:
            raise SchemaDefinitionError("Schema name must not be empty.")
        seen = set()
        for f in self.fields:
            if f.name in seen:
                raise DuplicateFieldError(self.name, f.name)
            seen.add(f.name)

    # -------------------------------------------------- #
    # Lookup helpers
    # -------------------------------------------------- #

    def __iter__(self) -> Iterator[Field]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __getitem__(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def required_fields(self) -> List[Field]:
        return [f for f in self.fields if f.required]

    @property
    def all_optional(self) -> bool:
        return not self.required_fields

    # -------------------------------------------------- #
    # Renderers
    # -------------------------------------------------- #

    def json_schema(self) -> Dict[str, Any]:
        """Return a JSON Schema object describing a valid reply."""
        properties: Dict[str, Any] = {}
        for f in self.fields:
            prop = f.type.json_schema()
            if f.description:
                prop["description"] = f.description
            properties[f.name] = prop
        out: Dict[str, Any] = {
            "type": "object",
            "title": self.name,
            "properties": properties,
            "required": [f.name for f in self.required_fields],
            "additionalProperties": False,
        }
        if self.description:
            out["description"] = self.description
        return out

    def to_model(self) -> Type[BaseModel]:
        """Build the pydantic model replies are validated with.

        Field annotations carry the coercion rules (``BeforeValidator``) and
        the range / membership constraints, so ``model_validate`` reports
        every violated field at once.
        """
        definitions: Dict[str, Any] = {}
        for f in self.fields:
            annotation = f.type.annotation()
            if f.required:
                definitions[f.name] = (annotation, PydanticField(..., description=f.description or None))
            else:
                definitions[f.name] = (
                    Optional[annotation],
                    PydanticField(None, description=f.description or None),
                )
        model_name = "".join(part.capitalize() for part in self.name.replace("-", "_").split("_")) or "Schema"
        return create_model(model_name, __doc__=self.description or None, **definitions)

    # -------------------------------------------------- #
    # (De)serialisation
    # -------------------------------------------------- #

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Schema":
        fields: Iterable[Mapping[str, Any]] = data.get("fields") or ()
        return cls(
            name=data["name"],
            fields=tuple(Field.from_dict(f) for f in fields),
            description=str(data.get("description") or "").strip(),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "fields": [f.to_dict() for f in self.fields]}
        if self.description:
            d["description"] = self.description
        return d
