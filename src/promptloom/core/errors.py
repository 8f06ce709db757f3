"""
Exception hierarchy for promptloom.

Errors fall in two groups.  *Fatal* errors (rendering, missing chat capability) abort the current
call immediately.  *Attempt* errors (planning, step execution) are outcomes the retry controller
feeds back into the next planning attempt.
"""


class PromptloomError(RuntimeError):
    """Base class for every error raised by promptloom."""


class TranscriptParseError(PromptloomError):
    """Raised by the strict transcript parser when role markers are malformed."""


class RenderError(PromptloomError):
    """Raised when a prompt template cannot be rendered."""


class UnsupportedServiceError(PromptloomError):
    """Raised when a completion service does not offer chat completions."""


class CompletionError(PromptloomError):
    """Raised when a completion service call fails or returns no candidates."""


class FunctionDefinitionError(PromptloomError):
    """Raised when a function definition document is invalid."""


class FunctionNotFoundError(PromptloomError):
    """Raised when a qualified function name is not in the catalog."""


class PlanGenerationError(PromptloomError):
    """Raised when the planner cannot produce a usable plan."""


class StepExecutionError(PromptloomError):
    """Raised when a plan step fails.  Carries the step index and the underlying error."""

    def __init__(self, step_index: int, function_name: str, error: BaseException | str) -> None:
        self.step_index = step_index
        self.function_name = function_name
        self.error = error
        super().__init__(f"Step {step_index} ({function_name}) failed: {error}")


class RetryExhaustedError(PromptloomError):
    """
    Raised when every planning/execution attempt failed.

    The message is the message of the last underlying error, which is also available as
    :attr:`last_error` and as ``__cause__``.
    """

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(str(last_error))


FATAL_ERRORS = (RenderError, UnsupportedServiceError)
"""Errors that are never retried and pass through plan execution unchanged."""
