"""
Math plugin.

Arithmetic functions the planner can combine, a semantic function that writes math word problems,
and ``PerformMath``, which solves a word problem by planning over the other functions.
"""

import logging
import math
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Tuple,
)

from promptloom.agent.planner_interface import (
    PROMPTS_DIR,
    load_planner,
)
from promptloom.agent.retry_controller import RetryController
from promptloom.catalog import FunctionCatalog
from promptloom.core.context import InvocationContext
from promptloom.core.loader import load_function_from_yaml
from promptloom.core.schema import UsageSample

logger = logging.getLogger(__name__)

NAMESPACE = "Math"

_MATH_FUNCTIONS: List[Tuple[Callable, Dict[str, Any]]] = []


def _math_function(
    name: str, description: str, inputs: str, output: str, **parameter_descriptions: str
) -> Callable:
    def wrapper(fn: Callable) -> Callable:
        _MATH_FUNCTIONS.append(
            (
                fn,
                {
                    "name": name,
                    "description": description,
                    "parameter_descriptions": parameter_descriptions,
                    "samples": [UsageSample(inputs=inputs, output=output)],
                },
            )
        )
        return fn

    return wrapper


@_math_function(
    "Add",
    "Adds two numbers.",
    '{"number1": 1, "number2": 2}',
    "3",
    number1="The first number to add",
    number2="The second number to add",
)
def add(number1: float, number2: float) -> float:
    return number1 + number2


@_math_function(
    "Subtract",
    "Subtracts two numbers.",
    '{"minuend": 5, "subtrahend": 2}',
    "3",
    minuend="The minuend",
    subtrahend="The subtrahend",
)
def subtract(minuend: float, subtrahend: float) -> float:
    return minuend - subtrahend


@_math_function(
    "Multiply",
    "Multiplies two numbers.",
    '{"number1": 5, "number2": 2}',
    "10",
    number1="The first number to multiply",
    number2="The second number to multiply",
)
def multiply(number1: float, number2: float) -> float:
    return number1 * number2


@_math_function(
    "Divide",
    "Divides two numbers.",
    '{"dividend": 10, "divisor": 2}',
    "5",
    dividend="The dividend",
    divisor="The divisor",
)
def divide(dividend: float, divisor: float) -> float:
    return dividend / divisor


@_math_function(
    "Modulo",
    "Gets the remainder of two numbers.",
    '{"dividend": 10, "divisor": 3}',
    "1",
    dividend="The dividend",
    divisor="The divisor",
)
def modulo(dividend: float, divisor: float) -> float:
    # Remainder takes the sign of the dividend
    return math.fmod(dividend, divisor)


@_math_function(
    "Abs", "Gets the absolute value of a number.", '{"number": -10}', "10", number="The number"
)
def absolute(number: float) -> float:
    return abs(number)


@_math_function(
    "Ceiling", "Gets the ceiling of a number.", '{"number": 5.1}', "6", number="The number"
)
def ceiling(number: float) -> float:
    return float(math.ceil(number))


@_math_function("Floor", "Gets the floor of a number.", '{"number": 5.9}', "5", number="The number")
def floor(number: float) -> float:
    return float(math.floor(number))


@_math_function(
    "Max",
    "Gets the maximum of two numbers.",
    '{"number1": 5, "number2": 10}',
    "10",
    number1="The first number",
    number2="The second number",
)
def maximum(number1: float, number2: float) -> float:
    return max(number1, number2)


@_math_function(
    "Min",
    "Gets the minimum of two numbers.",
    '{"number1": 5, "number2": 10}',
    "5",
    number1="The first number",
    number2="The second number",
)
def minimum(number1: float, number2: float) -> float:
    return min(number1, number2)


@_math_function("Sign", "Gets the sign of a number.", '{"number": -10}', "-1", number="The number")
def sign(number: float) -> float:
    if number == 0:
        return 0.0
    return math.copysign(1.0, number)


@_math_function(
    "Sqrt", "Gets the square root of a number.", '{"number": 25}', "5", number="The number"
)
def sqrt(number: float) -> float:
    return math.sqrt(number)


@_math_function("Sin", "Gets the sine of a number.", '{"number": 0}', "0", number="The number")
def sin(number: float) -> float:
    return math.sin(number)


@_math_function("Cos", "Gets the cosine of a number.", '{"number": 0}', "1", number="The number")
def cos(number: float) -> float:
    return math.cos(number)


@_math_function("Tan", "Gets the tangent of a number.", '{"number": 0}', "0", number="The number")
def tan(number: float) -> float:
    return math.tan(number)


@_math_function(
    "Pow",
    "Raises a number to a power.",
    '{"number1": 5, "number2": 2}',
    "25",
    number1="The number",
    number2="The power",
)
def power(number1: float, number2: float) -> float:
    return math.pow(number1, number2)


@_math_function(
    "Round",
    "Gets a rounded number.",
    '{"number": 1.23456, "digits": 2}',
    "1.23",
    number="The number",
    digits="The number of digits to round to",
)
def round_number(number: float, digits: int = 0) -> float:
    return float(round(number, int(digits)))


async def perform_math(context: InvocationContext, math_problem: str) -> str:
    """Uses functions from the Math plugin to solve math problems."""
    controller = RetryController(planner=load_planner())
    view = context.catalog.view(
        included_namespaces=[NAMESPACE],
        excluded_functions=[f"{NAMESPACE}.PerformMath", f"{NAMESPACE}.GenerateMathProblem"],
    )
    result = await controller.run(
        "Solve the following math problem.\n\n" + math_problem, context, view
    )
    return str(result)


def register_math_plugin(catalog: FunctionCatalog) -> FunctionCatalog:
    """Register every Math function in *catalog* and return it."""
    for fn, options in _MATH_FUNCTIONS:
        catalog.add_native_function(fn, namespace=NAMESPACE, **options)

    catalog.add_semantic_function(
        load_function_from_yaml(PROMPTS_DIR / "generate_math_problem.yaml", namespace=NAMESPACE)
    )
    catalog.add_native_function(
        perform_math,
        namespace=NAMESPACE,
        name="PerformMath",
        parameter_descriptions={
            "math_problem": "A description of a math problem; use the GenerateMathProblem "
            "function to create one."
        },
        samples=[
            UsageSample(
                inputs='{"math_problem": "If I started with $120 in the stock market, how much '
                'would I have after 10 years if the growth rate was 5%?"}',
                output="After 10 years, starting with $120, and with a growth rate of 5%, you "
                "would have $195.47 in the stock market.",
            )
        ],
        invokes_planner=True,
    )
    logger.debug("Registered %d Math functions", len(_MATH_FUNCTIONS) + 2)
    return catalog
