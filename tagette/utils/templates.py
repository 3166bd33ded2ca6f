from __future__ import annotations

"""tagette.utils.templates
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Jinja2 rendering for prompt templates.

Usage
-----
>>> from tagette.utils.templates import render
>>> render("Hello {{name}}", {"name": "Alice"})
'Hello Alice'
>>> render("{{ text | fence }}", {"text": "a ``` b"})
'````\\na ``` b\\n````'
"""

import re
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError

__all__ = ["render", "fence", "TemplateRenderError"]

_BACKTICK_RUN = re.compile(r"`+")


class TemplateRenderError(RuntimeError):
    """A prompt template could not be rendered."""


def fence(text: str, info: str = "") -> str:
    """Wrap *text* verbatim in a backtick fence it cannot close.

    The fence is one backtick longer than the longest run inside *text*
    (minimum three).
    """
    longest = max((len(m.group(0)) for m in _BACKTICK_RUN.finditer(text)), default=0)
    ticks = "`" * max(3, longest + 1)
    return f"{ticks}{info}\n{text}\n{ticks}"


# StrictUndefined raises for variables missing from the context.
# Autoescape stays off: prompts are plain text, not HTML.
env = Environment(
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
    trim_blocks=True,
    lstrip_blocks=True,
)
env.filters["fence"] = fence


def render(template_string: str, data: Mapping[str, Any]) -> str:  # noqa: D401
    """Render *template_string* with *data*.

    Raises:
        TemplateRenderError: on undefined variables or template syntax errors.
    """
    try:
        template = env.from_string(template_string)
        return template.render(data)
    except TemplateError as exc:
        raise TemplateRenderError(
            f"Error rendering template: {exc}\n"
            f"Template: \"{template_string[:100]}{'...' if len(template_string) > 100 else ''}\"\n"
            f"Data keys: {list(data.keys())}"
        ) from exc
