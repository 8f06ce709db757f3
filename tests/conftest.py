"""Shared fixtures: a scripted chat service, a recording observer and a Math catalog."""

from typing import (
    Any,
    Callable,
    List,
)

import pytest

from promptloom.catalog import FunctionCatalog
from promptloom.core.completion import ChatResult
from promptloom.core.context import InvocationContext
from promptloom.core.schema import (
    InvocationResult,
    Plan,
    Transcript,
)
from promptloom.core.templating import Jinja2TemplateEngine
from promptloom.plugins.math import register_math_plugin


class FakeChatService:
    """Chat service that returns scripted replies and records every transcript it receives."""

    def __init__(self, *replies: str) -> None:
        self.replies: List[str] = list(replies)
        self.transcripts: List[Transcript] = []

    async def get_chat_completions(self, transcript: Transcript) -> List[ChatResult]:
        self.transcripts.append(transcript)
        if not self.replies:
            raise AssertionError("FakeChatService ran out of replies")
        content = self.replies.pop(0)
        return [ChatResult(content=content, finish_reason="stop", raw={"content": content})]


class RecordingObserver:
    """Observer that keeps every event instead of printing it."""

    def __init__(self) -> None:
        self.plans: List[Plan] = []
        self.errors: List[BaseException] = []
        self.results: List[InvocationResult] = []

    def on_plan(self, plan: Plan) -> None:
        self.plans.append(plan)

    def on_error(self, error: BaseException) -> None:
        self.errors.append(error)

    def on_result(self, result: InvocationResult) -> None:
        self.results.append(result)


@pytest.fixture
def math_catalog() -> FunctionCatalog:
    return register_math_plugin(FunctionCatalog())


@pytest.fixture
def make_context(math_catalog: FunctionCatalog) -> Callable[..., InvocationContext]:
    """Factory for contexts whose completion service answers with *replies* in order."""

    def factory(*replies: str, catalog: Any = None, **kwargs: Any) -> InvocationContext:
        return InvocationContext(
            template_engine=Jinja2TemplateEngine(),
            completion_service=FakeChatService(*replies),
            catalog=catalog if catalog is not None else math_catalog,
            **kwargs,
        )

    return factory


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()
