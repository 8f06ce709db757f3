"""
Tests for the plan / execute / retry loop.

Run with:
$ pytest -q
"""

import asyncio
from typing import (
    Any,
    List,
    Optional,
    Union,
)

import pytest

from promptloom.agent.planner_interface import BasePlanner
from promptloom.agent.retry_controller import (
    PhaseOutcome,
    RetryController,
    RetryPhase,
    next_phase,
)
from promptloom.catalog import FunctionCatalog
from promptloom.core.errors import (
    PlanGenerationError,
    RenderError,
    RetryExhaustedError,
    StepExecutionError,
)
from promptloom.core.schema import (
    InvocationResult,
    Plan,
    PlanFeedback,
    PlanStep,
    RetryState,
)

ADD = Plan(steps=(PlanStep(function="Math.Add", args={"number1": 2, "number2": 2}),))
DIVIDE_BY_ZERO = Plan(
    steps=(PlanStep(function="Math.Divide", args={"dividend": 1, "divisor": 0}),)
)
UNKNOWN = Plan(steps=(PlanStep(function="Math.Integrate"),))


class ScriptedPlanner(BasePlanner):
    """Planner that returns (or raises) scripted outcomes and records the feedback it got."""

    def __init__(self, *outcomes: Union[Plan, BaseException]) -> None:
        self.outcomes: List[Union[Plan, BaseException]] = list(outcomes)
        self.feedback: List[Optional[PlanFeedback]] = []

    async def plan(self, goal, catalog, context, feedback=None) -> Plan:
        self.feedback.append(feedback)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _run(controller: RetryController, context, **kwargs: Any) -> InvocationResult:
    return asyncio.run(controller.run("compute 2+2", context, **kwargs))


def test_first_attempt_success_gets_no_feedback(make_context, observer) -> None:
    planner = ScriptedPlanner(ADD)
    controller = RetryController(planner, max_extra_tries=1, observer=observer)

    result = _run(controller, make_context())

    assert result.value == 4
    assert planner.feedback == [None]
    assert observer.plans == [ADD]
    assert observer.errors == []
    assert observer.results == [result]


def test_failed_plan_is_retried_with_verbatim_feedback(make_context, observer) -> None:
    planner = ScriptedPlanner(DIVIDE_BY_ZERO, ADD)
    controller = RetryController(planner, max_extra_tries=1, observer=observer)

    result = _run(controller, make_context())

    assert result.value == 4
    assert planner.feedback[0] is None
    feedback = planner.feedback[1]
    assert feedback is not None
    assert feedback.last_plan == DIVIDE_BY_ZERO
    assert feedback.last_plan_text == DIVIDE_BY_ZERO.to_text()
    assert feedback.last_error == str(observer.errors[0])
    assert isinstance(observer.errors[0], StepExecutionError)


def test_attempts_are_bounded_and_last_error_is_reported(make_context, observer) -> None:
    planner = ScriptedPlanner(DIVIDE_BY_ZERO, UNKNOWN, ADD)
    controller = RetryController(planner, max_extra_tries=1, observer=observer)

    with pytest.raises(RetryExhaustedError) as info:
        _run(controller, make_context())

    assert len(planner.feedback) == 2
    assert planner.outcomes == [ADD]
    assert info.value.attempts == 2
    assert info.value.last_error is observer.errors[1]
    assert info.value.__cause__ is observer.errors[1]
    assert "Math.Integrate" in str(info.value)
    assert str(info.value) == str(observer.errors[1])


def test_no_extra_tries_means_a_single_attempt(make_context, observer) -> None:
    planner = ScriptedPlanner(DIVIDE_BY_ZERO, ADD)
    controller = RetryController(planner, max_extra_tries=0, observer=observer)

    with pytest.raises(RetryExhaustedError) as info:
        _run(controller, make_context())

    assert info.value.attempts == 1
    assert isinstance(info.value.last_error, StepExecutionError)
    assert planner.outcomes == [ADD]


def test_planning_failure_is_an_attempt_without_a_plan(make_context, observer) -> None:
    planner = ScriptedPlanner(PlanGenerationError("Planner returned invalid JSON"), ADD)
    controller = RetryController(planner, max_extra_tries=1, observer=observer)

    assert _run(controller, make_context()).value == 4

    feedback = planner.feedback[1]
    assert feedback is not None
    assert feedback.last_plan is None
    assert feedback.last_error == "Planner returned invalid JSON"
    assert observer.plans == [ADD]


def test_fatal_errors_are_not_retried(make_context, observer) -> None:
    planner = ScriptedPlanner(RenderError("template is broken"), ADD)
    controller = RetryController(planner, max_extra_tries=3, observer=observer)

    with pytest.raises(RenderError):
        _run(controller, make_context())

    assert len(planner.feedback) == 1
    assert observer.errors == []


def test_cancellation_stops_the_run(make_context, observer) -> None:
    started = asyncio.Event()
    calls: List[str] = []

    class BlockingPlanner(BasePlanner):
        async def plan(self, goal, catalog, context, feedback=None) -> Plan:
            calls.append(goal)
            started.set()
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

    async def scenario() -> None:
        controller = RetryController(BlockingPlanner(), max_extra_tries=5, observer=observer)
        task = asyncio.create_task(controller.run("forever", make_context()))
        await started.wait()
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())

    assert calls == ["forever"]
    assert observer.errors == []


def test_variables_are_passed_to_the_executor(make_context, observer) -> None:
    plan = Plan(
        steps=(PlanStep(function="Math.Add", args={"number1": {"$var": "x"}, "number2": 1}),)
    )
    controller = RetryController(ScriptedPlanner(plan), observer=observer)

    assert _run(controller, make_context(), variables={"x": 41}).value == 42


def test_custom_executor_is_used(make_context, observer) -> None:
    seen: List[Plan] = []

    async def executor(plan, context, variables=None, catalog=None) -> InvocationResult:
        seen.append(plan)
        return InvocationResult(function_name="plan", value="done")

    controller = RetryController(ScriptedPlanner(ADD), executor=executor, observer=observer)

    assert _run(controller, make_context()).value == "done"
    assert seen == [ADD]


def test_planner_invoking_functions_are_hidden_from_the_planner(make_context, observer) -> None:
    catalog = FunctionCatalog()
    catalog.add_native_function(lambda: 1, namespace="T", name="One")
    catalog.add_native_function(lambda goal: goal, namespace="T", name="Plan", invokes_planner=True)
    forbidden = Plan(steps=(PlanStep(function="T.Plan", args={"goal": "again"}),))

    controller = RetryController(ScriptedPlanner(forbidden), max_extra_tries=0, observer=observer)
    with pytest.raises(RetryExhaustedError, match="not available"):
        _run(controller, make_context(catalog=catalog))


def test_view_with_planner_invoking_function_is_rejected(make_context, math_catalog) -> None:
    class Leaky:
        def specs(self):
            return [math_catalog.get("Math.PerformMath").spec]

    controller = RetryController(ScriptedPlanner(ADD))
    with pytest.raises(ValueError, match="Math.PerformMath"):
        asyncio.run(controller.run("g", make_context(), catalog=Leaky()))  # type: ignore[arg-type]


def test_negative_retry_bound_is_rejected() -> None:
    with pytest.raises(ValueError):
        RetryController(ScriptedPlanner(), max_extra_tries=-1)


@pytest.mark.parametrize(
    "phase, ok, remaining, expected",
    [
        (RetryPhase.PLANNING, True, 0, RetryPhase.EXECUTING),
        (RetryPhase.EXECUTING, True, 0, RetryPhase.SUCCEEDED),
        (RetryPhase.PLANNING, False, 1, RetryPhase.PLANNING),
        (RetryPhase.EXECUTING, False, 1, RetryPhase.PLANNING),
        (RetryPhase.PLANNING, False, 0, RetryPhase.EXHAUSTED),
        (RetryPhase.EXECUTING, False, 0, RetryPhase.EXHAUSTED),
    ],
)
def test_transition_table(phase, ok: bool, remaining: int, expected) -> None:
    outcome = PhaseOutcome() if ok else PhaseOutcome(error=PlanGenerationError("no"))
    assert next_phase(phase, outcome, RetryState(attempts_remaining=remaining)) is expected


def test_terminal_phases_have_no_transitions() -> None:
    with pytest.raises(ValueError):
        next_phase(RetryPhase.SUCCEEDED, PhaseOutcome(), RetryState(attempts_remaining=1))
