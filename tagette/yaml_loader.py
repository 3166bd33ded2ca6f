from __future__ import annotations
"""YAML → Schema loader.

A declarative alternative to building :class:`~tagette.core.schema.Schema`
objects in Python.  Example YAML:

```yaml
schemas:
  - name: tagging
    description: Classify a passage
    fields:
      - name: sentiment
        type: enum
        values: [happy, neutral, sad]
      - name: aggressiveness
        type: int
        min: 1
        max: 5
        description: how aggressive the text is
      - name: language
        type: enum
        values: [spanish, english, french, german, italian]
```

Usage:
    from tagette.yaml_loader import load_schemas
    schemas = load_schemas("schemas.yml")

The file structure is checked with *jsonschema* first; field-level rules
(unique names, ``min <= max``, non-empty enums) are enforced while the
``Schema`` objects are built.
"""
from pathlib import Path
from typing import Any, Dict, List

import yaml
from jsonschema import validate as _js_validate

from tagette.core.schema import Schema

__all__ = ["load_schemas", "parse_schemas"]


def parse_schemas(data: Any) -> List[Schema]:  # noqa: D401
    """Build schemas from already-decoded YAML/JSON *data*."""
    if isinstance(data, list):
        data = {"schemas": data}
    _js_validate(instance=data, schema=_FILE_SCHEMA)
    return [Schema.from_dict(item) for item in data["schemas"]]


def load_schemas(path: str | Path) -> List[Schema]:  # noqa: D401
    """Load every schema declared in the YAML file at *path*."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return parse_schemas(data)


# --------------------------------------------------------------------------- #
# JSON Schema for YAML schema files
# --------------------------------------------------------------------------- #

_FIELD: Dict[str, Any] = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "type": {"enum": ["string", "str", "int", "integer", "enum"]},
        "description": {"type": "string"},
        "required": {"type": "boolean"},
        "min": {"type": "integer"},
        "max": {"type": "integer"},
        "values": {
            "type": "array",
            "items": {"type": ["string", "number", "boolean"]},
        },
    },
    "additionalProperties": False,
}

_FILE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["schemas"],
    "properties": {
        "schemas": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "fields"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "description": {"type": "string"},
                    "fields": {"type": "array", "items": _FIELD},
                },
                "additionalProperties": False,
            },
        },
    },
}
