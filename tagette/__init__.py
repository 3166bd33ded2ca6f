"""Tagette: typed, schema-constrained label extraction with LLMs.

Main components:
* `Schema` / `Field`: declarative output schemas (string, bounded int, enum)
* `SchemaRegistry`: named, read-only schema store
* `PromptBuilder`: deterministic extraction prompts
* `ExtractionClient`: call an engine, validate the reply, return a `Result`
"""

# Version info
__version__ = "0.1.0"

# Core components
from tagette.core.schema import BoundedIntType, EnumType, Field, Schema, StringType
from tagette.core.registry import (
    SchemaRegistry,
    define_schema,
    get_schema,
    load_schemas_from_yaml,
)
from tagette.core.prompt import PromptBuilder
from tagette.core.coerce import Violation
from tagette.core.result import Result
from tagette.core.client import ExtractionClient, ExtractionRequest, ExtractionResult
from tagette.core.retry import extract_with_retries

# Engine registry functions
from tagette.engine.registry import (
    EngineConfig,
    register_engine,
    get_engine_config,
    load_engines_from_yaml,
)

# Errors
from tagette.errors import (
    Cancelled,
    DuplicateFieldError,
    EmptyDocumentError,
    EmptyEnumError,
    EndpointError,
    ExtractionError,
    InvalidRangeError,
    MalformedReplyError,
    SchemaDefinitionError,
    TagetteError,
    UnknownSchemaError,
    ValidationFailed,
)

__all__ = [
    # Schema
    "Schema",
    "Field",
    "StringType",
    "BoundedIntType",
    "EnumType",
    "SchemaRegistry",
    "define_schema",
    "get_schema",
    "load_schemas_from_yaml",

    # Pipeline
    "PromptBuilder",
    "ExtractionClient",
    "ExtractionRequest",
    "ExtractionResult",
    "Result",
    "Violation",
    "extract_with_retries",

    # Engines
    "EngineConfig",
    "register_engine",
    "get_engine_config",
    "load_engines_from_yaml",

    # Errors
    "TagetteError",
    "SchemaDefinitionError",
    "DuplicateFieldError",
    "InvalidRangeError",
    "EmptyEnumError",
    "UnknownSchemaError",
    "ExtractionError",
    "EmptyDocumentError",
    "EndpointError",
    "MalformedReplyError",
    "ValidationFailed",
    "Cancelled",
]
