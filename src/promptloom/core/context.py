"""The capabilities handed to every invocation."""

from __future__ import annotations

from dataclasses import (
    dataclass,
    field,
    replace,
)
from typing import (
    TYPE_CHECKING,
    Any,
    Mapping,
)

from promptloom.config import settings
from promptloom.core.completion import load_completion_service
from promptloom.core.templating import (
    Jinja2TemplateEngine,
    TemplateEngine,
)

if TYPE_CHECKING:
    from promptloom.catalog import FunctionCatalog


@dataclass(frozen=True)
class InvocationContext:
    """
    Explicit bundle of the services an invocation needs.

    Nothing in promptloom looks services up globally; callers build one of these and pass it down.
    """

    template_engine: TemplateEngine
    completion_service: Any
    catalog: "FunctionCatalog"
    variables: Mapping[str, Any] = field(default_factory=dict)  # ambient template variables
    strict_transcripts: bool = field(default_factory=lambda: settings.TRANSCRIPT_STRICT)

    def with_variables(self, **variables: Any) -> "InvocationContext":
        """Return a copy whose ambient variables are extended with *variables*."""
        return replace(self, variables={**self.variables, **variables})


def create_context(
    catalog: "FunctionCatalog",
    completion_service: Any = None,
    template_engine: TemplateEngine | None = None,
) -> InvocationContext:
    """Build a context from settings, filling in any service not supplied."""
    return InvocationContext(
        template_engine=template_engine or Jinja2TemplateEngine(),
        completion_service=(
            completion_service if completion_service is not None else load_completion_service()
        ),
        catalog=catalog,
    )
