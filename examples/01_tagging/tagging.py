"""01 – Tagging demo: sentiment, aggressiveness and language.

Defines the schema in Python (see ``schemas.yml`` for the YAML form),
registers an OpenAI engine and tags a few passages.

    OPENAI_API_KEY=... python examples/01_tagging/tagging.py
"""
import os

from tagette import (
    BoundedIntType,
    EnumType,
    ExtractionClient,
    Field,
    Schema,
    define_schema,
    extract_with_retries,
    register_engine,
)
from tagette.utils.logging import console, enable_event_logging

# --------------------------------------------------------------------------- #
# Schema
# --------------------------------------------------------------------------- #

tagging = Schema(
    "tagging",
    [
        Field(
            "sentiment",
            EnumType(("happy", "neutral", "sad")),
            description="The sentiment of the text",
        ),
        Field(
            "aggressiveness",
            BoundedIntType(1, 5),
            description="Describes how aggressive the statement is, the higher the number the more aggressive",
        ),
        Field(
            "language",
            EnumType(("spanish", "english", "french", "german", "italian")),
            description="The language the text is written in",
        ),
    ],
)
define_schema(tagging)

# --------------------------------------------------------------------------- #
# Register engine (expects OPENAI_API_KEY in env)
# --------------------------------------------------------------------------- #

OPENAI_KEY = os.getenv("OPENAI_API_KEY", "")
if not OPENAI_KEY:
    raise RuntimeError("OPENAI_API_KEY environment variable not set – required for examples.")

register_engine(
    "openai_default",
    backend="openai",
    model="gpt-4.1-mini",
    api_key=OPENAI_KEY,
)

PASSAGES = [
    "Estoy increiblemente contento de haberte conocido! Creo que seremos muy buenos amigos!",
    "Estoy muy enojado con vos! Te voy a dar tu merecido!",
    "Weather is ok here, I can go outside without much more than a coat",
]

if __name__ == "__main__":
    enable_event_logging()
    client = ExtractionClient(engine="openai_default")
    for text in PASSAGES:
        res = extract_with_retries(client, text, "tagging", max_attempts=2)
        if res.ok:
            console.print(text, res.value.to_dict())
        else:
            console.print(f"[red]{type(res.error).__name__}[/]: {res.error}")
