"""
Completion services and the chat completion invoker.

This module is the only place that *directly* calls an LLM.  Everything else (semantic functions,
planner, executor) stays model-agnostic and talks to whatever service the invocation context
carries.

We support two back-ends out of the box:

1. **OpenAI** chat completions (requires ``OPENAI_API_KEY``).
2. **Anthropic** messages (requires ``ANTHROPIC_API_KEY``).

Additional providers can be added with :func:`register_completion_service`.  A service is
chat-capable when it has an async ``get_chat_completions(transcript)`` method returning a list of
candidates with a ``content`` attribute.
"""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Type,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from promptloom.config import settings
from promptloom.core.errors import (
    CompletionError,
    UnsupportedServiceError,
)
from promptloom.core.schema import (
    MODEL_RESULTS_METADATA_KEY,
    InvocationResult,
    Transcript,
)

logger = logging.getLogger(__name__)


class ChatResult(BaseModel):
    """One completion candidate returned by a chat service."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    content: str
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = Field(default_factory=dict)
    raw: Any = None


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_SERVICE_REGISTRY: dict[str, Type[Any]] = {}


def register_completion_service(name: str) -> Callable:
    """Decorator to register a completion service class under *name*."""

    def wrapper(cls: Type[Any]) -> Type[Any]:
        _SERVICE_REGISTRY[name] = cls
        return cls

    return wrapper


def load_completion_service(name: str | None = None) -> Any:
    """
    Factory that returns an instantiated completion service.

    Fallback order:
    1. *name* arg
    2. ``settings.COMPLETION_SERVICE`` env option
    """
    target = name or settings.COMPLETION_SERVICE
    cls = _SERVICE_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Completion service '{target}' is not registered.")
    return cls()


def supports_chat(service: Any) -> bool:
    """Return True if *service* can run chat completions."""
    return callable(getattr(service, "get_chat_completions", None))


# ---------------------------------------------------------------------------
# Invoker
# ---------------------------------------------------------------------------
async def invoke_chat_completion(transcript: Transcript, service: Any) -> InvocationResult:
    """
    Send *transcript* to *service* and wrap the first candidate.

    Raises
    ------
    UnsupportedServiceError
        If *service* has no chat capability.
    CompletionError
        If the service returns no candidates.
    """
    if not supports_chat(service):
        raise UnsupportedServiceError(
            f"Completion service '{type(service).__name__}' does not support chat completions."
        )

    candidates: Sequence[Any] = list(await service.get_chat_completions(transcript))
    if not candidates:
        raise CompletionError(f"Completion service '{type(service).__name__}' returned nothing.")

    logger.debug("Chat completion returned %d candidate(s)", len(candidates))
    return InvocationResult(
        value=candidates[0].content,
        metadata={MODEL_RESULTS_METADATA_KEY: candidates},
    )


# ---------------------------------------------------------------------------
# Concrete services
# ---------------------------------------------------------------------------
@register_completion_service("openai")
class OpenAIChatCompletion:
    """OpenAI chat completions via the async SDK client."""

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        candidates: int = 1,
    ) -> None:
        import openai  # pylint: disable=import-outside-toplevel

        self._client = openai.AsyncOpenAI(api_key=api_key or settings.OPENAI_API_KEY)
        self.model = model or settings.OPENAI_MODEL
        self.candidates = candidates

    async def get_chat_completions(self, transcript: Transcript) -> List[ChatResult]:
        import openai  # pylint: disable=import-outside-toplevel

        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=transcript.to_dicts(),  # type: ignore[arg-type]
                temperature=settings.COMPLETION_TEMPERATURE,
                max_tokens=settings.COMPLETION_MAX_TOKENS,
                n=self.candidates,
            )
        except openai.OpenAIError as exc:
            logger.error("OpenAI completion error: %s", str(exc))
            raise CompletionError(f"Error calling OpenAI: {exc}") from exc

        usage = resp.usage.model_dump() if resp.usage else {}
        return [
            ChatResult(
                content=choice.message.content or "",
                finish_reason=choice.finish_reason,
                usage=usage,
                raw=choice,
            )
            for choice in resp.choices
        ]


@register_completion_service("anthropic")
class AnthropicChatCompletion:
    """Anthropic Claude messages via the async SDK client."""

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        import anthropic  # pylint: disable=import-outside-toplevel

        self._client = anthropic.AsyncAnthropic(api_key=api_key or settings.ANTHROPIC_API_KEY)
        self.model = model or settings.ANTHROPIC_MODEL

    async def get_chat_completions(self, transcript: Transcript) -> List[ChatResult]:
        import anthropic  # pylint: disable=import-outside-toplevel

        # Anthropic takes system prompts separately from the conversation
        system = "\n\n".join(m.content for m in transcript.messages if m.role == "system")
        messages = [d for d in transcript.to_dicts() if d["role"] != "system"]
        extra: Dict[str, Any] = {"system": system} if system else {}

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=settings.COMPLETION_MAX_TOKENS,
                messages=messages,  # type: ignore[arg-type]
                temperature=settings.COMPLETION_TEMPERATURE,
                **extra,
            )
        except anthropic.AnthropicError as exc:
            logger.error("Anthropic completion error: %s", str(exc))
            raise CompletionError(f"Error calling Anthropic: {exc}") from exc

        text = "".join(block.text for block in response.content if block.type == "text")
        return [
            ChatResult(
                content=text,
                finish_reason=response.stop_reason,
                usage=response.usage.model_dump(),
                raw=response,
            )
        ]
