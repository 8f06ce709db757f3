"""
Semantic functions: prompt templates packaged as named, describable callables.

Invoking one renders its template, parses the rendered text into a transcript and sends the
transcript to the chat completion service of the invocation context.
"""

import inspect
import logging
from typing import (
    Any,
    Dict,
    Iterable,
    Mapping,
)

from promptloom.core.completion import invoke_chat_completion
from promptloom.core.context import InvocationContext
from promptloom.core.errors import RenderError
from promptloom.core.schema import (
    FunctionSpec,
    InvocationResult,
    ParameterSpec,
    UsageSample,
)
from promptloom.core.templating import TemplateEngine
from promptloom.core.transcript import parse_transcript

logger = logging.getLogger(__name__)


class SemanticFunction:
    """
    A prompt template bound to a name, a description and declared parameters.

    Instances never change after construction, so one instance can be invoked concurrently.
    """

    def __init__(
        self,
        name: str,
        template: str,
        description: str = "",
        namespace: str = "",
        parameters: Iterable[ParameterSpec] = (),
        template_format: str = "jinja2",
        samples: Iterable[UsageSample] = (),
    ) -> None:
        self._spec = FunctionSpec(
            name=name,
            namespace=namespace,
            description=description,
            parameters=tuple(parameters),
            samples=tuple(samples),
        )
        self._template = template
        self._template_format = template_format

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def namespace(self) -> str:
        return self._spec.namespace

    @property
    def description(self) -> str:
        return self._spec.description

    @property
    def template(self) -> str:
        return self._template

    @property
    def template_format(self) -> str:
        return self._template_format

    def describe(self) -> FunctionSpec:
        """Return the function's metadata exactly as supplied at construction."""
        return self._spec

    def with_namespace(self, namespace: str) -> "SemanticFunction":
        """Return a copy of this function registered under *namespace*."""
        return SemanticFunction(
            name=self.name,
            template=self._template,
            description=self.description,
            namespace=namespace,
            parameters=self._spec.parameters,
            template_format=self._template_format,
            samples=self._spec.samples,
        )

    def _bind_variables(
        self, context: InvocationContext, variables: Mapping[str, Any] | None
    ) -> Dict[str, Any]:
        bound: Dict[str, Any] = dict(context.variables)
        for param in self._spec.parameters:
            if param.default is not None:
                bound.setdefault(param.name, param.default)
        bound.update(variables or {})

        missing = [p.name for p in self._spec.parameters if p.required and p.name not in bound]
        if missing:
            raise RenderError(
                f"Missing required variable(s) for '{self._spec.qualified_name}': "
                f"{', '.join(missing)}"
            )
        return bound

    async def _render(self, engine: TemplateEngine, variables: Mapping[str, Any]) -> str:
        try:
            rendered = engine.render(self._template, variables)
            if inspect.isawaitable(rendered):
                rendered = await rendered
        except RenderError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Template engine failed for '%s'", self._spec.qualified_name)
            raise RenderError(f"Failed to render '{self._spec.qualified_name}': {exc}") from exc
        return str(rendered)

    async def invoke(
        self, context: InvocationContext, variables: Mapping[str, Any] | None = None
    ) -> InvocationResult:
        """
        Render the template with *variables*, run it as a chat completion and return the result.

        Raises
        ------
        RenderError
            If a required variable is missing or the template fails to render.
        UnsupportedServiceError
            If the context's completion service cannot do chat completions.
        """
        bound = self._bind_variables(context, variables)
        rendered = await self._render(context.template_engine, bound)
        logger.debug("Rendered prompt for '%s':\n%s", self._spec.qualified_name, rendered)

        transcript = parse_transcript(rendered, strict=context.strict_transcripts)
        completion = await invoke_chat_completion(transcript, context.completion_service)

        return InvocationResult(
            function_name=self.name,
            namespace=self.namespace,
            value=completion.value,
            metadata=dict(completion.metadata),
        )

    def __repr__(self) -> str:
        return f"SemanticFunction({self._spec.qualified_name!r})"
