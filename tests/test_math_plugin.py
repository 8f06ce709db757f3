"""
End-to-end tests for the Math plugin: arithmetic, planning and re-planning.

Run with:
$ pytest -q
"""

import asyncio
import json

import pytest

from promptloom.agent.planner_interface import ChatPlanner
from promptloom.agent.retry_controller import RetryController
from promptloom.core.schema import (
    Plan,
    PlanStep,
)

ADD_PLAN = json.dumps({"steps": [{"function": "Math.Add", "args": {"number1": 2, "number2": 2}}]})


def _call(catalog, name: str, context=None, **arguments):
    return asyncio.run(catalog.get(name).invoke(context, arguments))


@pytest.mark.parametrize(
    "name, arguments, expected",
    [
        ("Math.Add", {"number1": 1, "number2": 2}, 3),
        ("Math.Subtract", {"minuend": 5, "subtrahend": 2}, 3),
        ("Math.Divide", {"dividend": 10, "divisor": 2}, 5),
        ("Math.Modulo", {"dividend": 10, "divisor": 3}, 1),
        ("Math.Modulo", {"dividend": -10, "divisor": 3}, -1),
        ("Math.Abs", {"number": -10}, 10),
        ("Math.Ceiling", {"number": 5.1}, 6),
        ("Math.Floor", {"number": 5.9}, 5),
        ("Math.Max", {"number1": 5, "number2": 10}, 10),
        ("Math.Min", {"number1": 5, "number2": 10}, 5),
        ("Math.Sign", {"number": -10}, -1),
        ("Math.Sign", {"number": 0}, 0),
        ("Math.Sqrt", {"number": 25}, 5),
        ("Math.Pow", {"number1": 5, "number2": 2}, 25),
        ("Math.Round", {"number": 1.23456, "digits": 2}, 1.23),
        ("Math.Round", {"number": 2.6}, 3),
    ],
)
def test_arithmetic(math_catalog, name: str, arguments: dict, expected: float) -> None:
    assert _call(math_catalog, name, **arguments) == pytest.approx(expected)


def test_trigonometry(math_catalog) -> None:
    assert _call(math_catalog, "Math.Sin", number=0) == 0
    assert _call(math_catalog, "Math.Cos", number=0) == 1
    assert _call(math_catalog, "Math.Tan", number=0) == 0


def test_every_function_has_a_usage_sample(math_catalog) -> None:
    for spec in math_catalog.specs():
        if spec.name == "GenerateMathProblem":
            continue
        assert spec.samples, spec.qualified_name


def test_compute_two_plus_two(make_context, math_catalog, observer) -> None:
    """A single-function catalog and a correct first plan solve the goal in one attempt."""

    context = make_context(ADD_PLAN)
    view = math_catalog.view(included_functions=["Math.Add"])
    controller = RetryController(ChatPlanner(), max_extra_tries=1, observer=observer)

    result = asyncio.run(controller.run("compute 2+2", context, view))

    assert result.value == 4
    assert len(observer.plans) == 1
    assert observer.errors == []
    assert len(context.completion_service.transcripts) == 1


def test_failed_plan_is_shown_to_the_model(make_context, math_catalog, observer) -> None:
    """The second planning prompt carries the failed plan and its error verbatim."""

    failed = Plan(steps=(PlanStep(function="Math.Divide", args={"dividend": 4, "divisor": 0}),))
    context = make_context(failed.to_text(), ADD_PLAN)
    controller = RetryController(ChatPlanner(), max_extra_tries=1, observer=observer)

    result = asyncio.run(controller.run("compute 2+2", context, math_catalog))

    assert result.value == 4
    assert observer.plans == [failed, Plan.model_validate_json(ADD_PLAN)]

    retry = context.completion_service.transcripts[1].messages
    assert [m.role for m in retry] == ["system", "user", "assistant", "user"]
    assert retry[2].content == failed.to_text()
    assert str(observer.errors[0]) in retry[3].content
    assert "Step 0 (Math.Divide) failed" in retry[3].content


def test_perform_math_plans_over_the_math_namespace(make_context, math_catalog) -> None:
    context = make_context(ADD_PLAN)

    answer = _call(math_catalog, "Math.PerformMath", context, math_problem="What is 2 plus 2?")

    assert answer == "4.0"
    prompt = context.completion_service.transcripts[0].messages
    assert "What is 2 plus 2?" in prompt[1].content
    assert "Math.Round" in prompt[0].content
    assert "Math.PerformMath" not in prompt[0].content
    assert "Math.GenerateMathProblem" not in prompt[0].content


def test_generate_math_problem_uses_default_topic(make_context, math_catalog) -> None:
    context = make_context("Sam saves $5 a week for 4 weeks. How much is saved?")

    result = _call(math_catalog, "Math.GenerateMathProblem", context)

    assert result.value.startswith("Sam saves")
    user = context.completion_service.transcripts[0].messages[1]
    assert user.content == "Write a math word problem about personal finance."
