from __future__ import annotations

"""In-memory schema registry.

Schemas are defined once at configuration time and are read-only afterwards,
so lookups need no locking.  A module-level default registry mirrors the
engine registry helpers (``define_schema`` / ``get_schema``).
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from tagette.core.schema import Schema
from tagette.errors import DuplicateSchemaError, UnknownSchemaError
from tagette.utils.logging import log

__all__ = [
    "SchemaId",
    "SchemaRegistry",
    "define_schema",
    "get_schema",
    "load_schemas_from_yaml",
    "default_registry",
]

SchemaId = str


class SchemaRegistry:  # noqa: D101
    def __init__(self) -> None:
        self._schemas: Dict[SchemaId, Schema] = {}

    def define(self, schema: Union[Schema, Mapping[str, Any]]) -> SchemaId:
        """Register *schema* and return its id (the schema name).

        *schema* may also be given in its mapping form (as found in YAML files),
        in which case it is built here and any field-level error
        (``DuplicateFieldError``, ``InvalidRangeError``, ``EmptyEnumError``)
        surfaces from this call.
        """
        if not isinstance(schema, Schema):
            schema = Schema.from_dict(schema)
        existing = self._schemas.get(schema.name)
        if existing is not None:
            if existing == schema:
                return schema.name
            raise DuplicateSchemaError(schema.name)
        self._schemas[schema.name] = schema
        log.debug("defined schema '%s' (%d fields)", schema.name, len(schema))
        return schema.name

    def get(self, schema_id: SchemaId) -> Schema:
        try:
            return self._schemas[schema_id]
        except KeyError:
            raise UnknownSchemaError(schema_id) from None

    def names(self) -> List[SchemaId]:
        return list(self._schemas)

    def __contains__(self, schema_id: object) -> bool:
        return schema_id in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def __iter__(self):
        return iter(self._schemas.values())


# --------------------------------------------------------------------------- #
# Default registry helpers
# --------------------------------------------------------------------------- #

default_registry = SchemaRegistry()


def define_schema(schema: Union[Schema, Mapping[str, Any]]) -> SchemaId:
    return default_registry.define(schema)


def get_schema(schema_id: SchemaId) -> Schema:
    return default_registry.get(schema_id)


def load_schemas_from_yaml(path: str | Path, registry: SchemaRegistry | None = None) -> List[Schema]:
    """Load every schema of the YAML file at *path* into *registry*."""
    from tagette.yaml_loader import load_schemas

    target = registry if registry is not None else default_registry
    schemas = load_schemas(path)
    for schema in schemas:
        target.define(schema)
    return schemas
