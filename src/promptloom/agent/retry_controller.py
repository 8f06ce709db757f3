"""
Plan / execute / retry loop.

One :meth:`RetryController.run` drives the phases below until it succeeds or runs out of
attempts::

    PLANNING --ok--> EXECUTING --ok--> SUCCEEDED
        |                |
        +----failure-----+--> PLANNING (with feedback) while retries remain, else EXHAUSTED

Planning and execution failures are returned as values, never raised through the loop.  Fatal
errors (rendering, unsupported service) and cancellation are not failures of an attempt: they
leave :meth:`run` immediately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Mapping,
    Optional,
    Protocol,
    Union,
    cast,
)

from promptloom.agent.plan_executor import execute_plan
from promptloom.agent.planner_interface import BasePlanner
from promptloom.catalog import (
    CatalogView,
    FunctionCatalog,
)
from promptloom.common import (
    AnsiColors,
    colored_print,
)
from promptloom.config import settings
from promptloom.core.context import InvocationContext
from promptloom.core.errors import (
    PlanGenerationError,
    PromptloomError,
    RetryExhaustedError,
    StepExecutionError,
)
from promptloom.core.schema import (
    InvocationResult,
    Plan,
    RetryState,
)

logger = logging.getLogger(__name__)

PlanExecutor = Callable[..., Awaitable[InvocationResult]]


class RetryPhase(str, Enum):
    """Phases of one controller run."""

    PLANNING = "planning"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


_TERMINAL = {RetryPhase.SUCCEEDED, RetryPhase.EXHAUSTED}


@dataclass(frozen=True)
class PhaseOutcome:
    """Value-or-error result of one phase."""

    value: Union[Plan, InvocationResult, None] = None
    error: Optional[PromptloomError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def next_phase(phase: RetryPhase, outcome: PhaseOutcome, state: RetryState) -> RetryPhase:
    """Transition table of the controller."""
    if phase in _TERMINAL:
        raise ValueError(f"No transition out of terminal phase '{phase.value}'")
    if outcome.ok:
        return RetryPhase.EXECUTING if phase is RetryPhase.PLANNING else RetryPhase.SUCCEEDED
    return RetryPhase.PLANNING if state.attempts_remaining > 0 else RetryPhase.EXHAUSTED


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------
class PlanObserver(Protocol):
    """Receives informational events from a controller run."""

    def on_plan(self, plan: Plan) -> None: ...

    def on_error(self, error: BaseException) -> None: ...

    def on_result(self, result: InvocationResult) -> None: ...


class ConsoleObserver:
    """Prints plans, errors and results to the terminal."""

    def on_plan(self, plan: Plan) -> None:
        logger.info("Generated plan with %d step(s)", len(plan.steps))
        colored_print("\nPlan: " + plan.to_text().strip(), AnsiColors.BLUE)

    def on_error(self, error: BaseException) -> None:
        logger.warning("Attempt failed: %s", error)
        colored_print("\nError: " + str(error), AnsiColors.RED)

    def on_result(self, result: InvocationResult) -> None:
        logger.info("Plan succeeded: %s", result)
        colored_print("\nResult: " + str(result).strip() + "\n", AnsiColors.GREEN)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------
class RetryController:
    """
    Bounded planner/executor cycle with failure feedback.

    Parameters
    ----------
    planner:
        Produces plans; receives the previous plan and error on retries.
    executor:
        Runs a plan; defaults to :func:`execute_plan`.
    max_extra_tries:
        Attempts allowed after the first one.  Defaults to ``settings.MAX_EXTRA_TRIES``.
    observer:
        Receives plans, attempt errors and the final result.
    """

    def __init__(
        self,
        planner: BasePlanner,
        executor: PlanExecutor = execute_plan,
        max_extra_tries: int | None = None,
        observer: PlanObserver | None = None,
    ) -> None:
        tries = settings.MAX_EXTRA_TRIES if max_extra_tries is None else max_extra_tries
        if tries < 0:
            raise ValueError("max_extra_tries must be >= 0")
        self.planner = planner
        self.executor = executor
        self.max_extra_tries = tries
        self.observer: PlanObserver = observer or ConsoleObserver()

    async def _plan(
        self, goal: str, catalog: CatalogView, context: InvocationContext, state: RetryState
    ) -> PhaseOutcome:
        try:
            plan = await self.planner.plan(goal, catalog, context, feedback=state.feedback())
        except PlanGenerationError as exc:
            return PhaseOutcome(error=exc)
        self.observer.on_plan(plan)
        return PhaseOutcome(value=plan)

    async def _execute(
        self,
        plan: Plan,
        catalog: CatalogView,
        context: InvocationContext,
        variables: Mapping[str, Any] | None,
    ) -> PhaseOutcome:
        try:
            result = await self.executor(plan, context, variables, catalog=catalog)
        except StepExecutionError as exc:
            return PhaseOutcome(error=exc)
        return PhaseOutcome(value=result)

    async def run(
        self,
        goal: str,
        context: InvocationContext,
        catalog: CatalogView | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> InvocationResult:
        """
        Plan and execute *goal*, re-planning with feedback after each failure.

        Raises
        ------
        RetryExhaustedError
            When every attempt failed; ``last_error`` is the final attempt's error.
        ValueError
            If *catalog* exposes a function that invokes the planner.
        """
        view = _planner_view(catalog if catalog is not None else context.catalog)
        state = RetryState(attempts_remaining=self.max_extra_tries)
        phase = RetryPhase.PLANNING
        plan: Optional[Plan] = None
        outcome = PhaseOutcome()

        while phase not in _TERMINAL:
            if phase is RetryPhase.PLANNING:
                outcome = await self._plan(goal, view, context, state)
                plan = cast(Optional[Plan], outcome.value)
            else:
                outcome = await self._execute(cast(Plan, plan), view, context, variables)

            following = next_phase(phase, outcome, state)
            if outcome.error is not None:
                self.observer.on_error(outcome.error)
                if following is RetryPhase.PLANNING:
                    state.record_failure(plan, outcome.error)
                    logger.info(
                        "Retrying (%d retr%s left)",
                        state.attempts_remaining,
                        "y" if state.attempts_remaining == 1 else "ies",
                    )
            phase = following

        if phase is RetryPhase.SUCCEEDED:
            result = cast(InvocationResult, outcome.value)
            self.observer.on_result(result)
            return result

        error = cast(PromptloomError, outcome.error)
        attempts = self.max_extra_tries + 1
        logger.error("Giving up after %d attempt(s): %s", attempts, error)
        raise RetryExhaustedError(error, attempts) from error


def _planner_view(catalog: CatalogView) -> CatalogView:
    """Return a view that is safe to hand to a planner."""
    if isinstance(catalog, FunctionCatalog):
        return catalog.view()
    recursive = [spec.qualified_name for spec in catalog.specs() if spec.invokes_planner]
    if recursive:
        raise ValueError(
            f"Planner catalog must not contain planner-invoking functions: {', '.join(recursive)}"
        )
    return catalog
