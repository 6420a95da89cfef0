"""Per-tool rendering of skill templates.

The reconciliation engine only depends on the ``Renderer`` call signature:
``render(text, context) -> str`` raising ``RenderError``. The default
implementation uses Jinja2 with strict undefined variables, so a template that
references anything other than the render context fails instead of silently
rendering blanks.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError

from ..errors import RenderError
from ..tools import Tool

Renderer = Callable[[str, Mapping[str, Any]], str]


def _make_environment() -> Environment:
    return Environment(
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )


_ENV = _make_environment()


def render_template(text: str, context: Mapping[str, Any]) -> str:
    try:
        template = _ENV.from_string(text)
        return template.render(**dict(context))
    except TemplateError as exc:
        raise RenderError(str(exc)) from exc


def render_context(tool: Tool) -> dict[str, Any]:
    return {"tool": tool.id}


def render_for_tool(text: str, tool: Tool, renderer: Renderer = render_template) -> str:
    return renderer(text, render_context(tool))
