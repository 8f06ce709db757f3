"""Template rendering backed by Jinja2."""

import logging
from typing import (
    Any,
    Awaitable,
    Mapping,
    Protocol,
    Union,
)

import jinja2

from promptloom.core.errors import RenderError

logger = logging.getLogger(__name__)


class TemplateEngine(Protocol):
    """Anything that can turn a template string plus variables into text."""

    def render(
        self, template: str, variables: Mapping[str, Any]
    ) -> Union[str, Awaitable[str]]:
        """Render *template* with *variables*."""


class Jinja2TemplateEngine:
    """
    Jinja2 renderer for prompt templates.

    Undefined variables raise instead of rendering as empty strings, and autoescaping is off
    because the output is a prompt rather than HTML.
    """

    def __init__(self, strict: bool = True) -> None:
        self._env = jinja2.Environment(
            undefined=jinja2.StrictUndefined if strict else jinja2.Undefined,
            autoescape=False,
            keep_trailing_newline=True,
        )

    def render(self, template: str, variables: Mapping[str, Any]) -> str:
        try:
            return self._env.from_string(template).render(**variables)
        except jinja2.TemplateError as exc:
            logger.debug("Template rendering failed: %s", exc)
            raise RenderError(f"Failed to render template: {exc}") from exc
