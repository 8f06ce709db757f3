"""Runs plans step by step against the function catalog and wraps step errors."""

import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
)

from promptloom.catalog import (
    CatalogEntry,
    CatalogView,
)
from promptloom.core.context import InvocationContext
from promptloom.core.errors import (
    FATAL_ERRORS,
    FunctionNotFoundError,
    StepExecutionError,
)
from promptloom.core.schema import (
    STEP_OUTPUTS_METADATA_KEY,
    FunctionSpec,
    InvocationResult,
    ParameterSpec,
    Plan,
)

logger = logging.getLogger(__name__)

STEP_REF = "$step"
VAR_REF = "$var"


class BindingError(ValueError):
    """Raised when a step's arguments cannot be bound."""


def _resolve(binding: Any, variables: Mapping[str, Any], outputs: List[Any]) -> Any:
    """Resolve a binding to a concrete value; *outputs* holds the steps that already ran."""
    if isinstance(binding, dict):
        if set(binding) == {STEP_REF}:
            index = binding[STEP_REF]
            if not isinstance(index, int) or isinstance(index, bool):
                raise BindingError(f"Step reference must be an integer, got {index!r}")
            if not 0 <= index < len(outputs):
                raise BindingError(
                    f"Reference to step {index}, which has not run yet "
                    f"(only steps 0..{len(outputs) - 1} are available)"
                )
            return outputs[index]
        if set(binding) == {VAR_REF}:
            name = binding[VAR_REF]
            if name not in variables:
                raise BindingError(f"Unknown variable '{name}'")
            return variables[name]
        return {key: _resolve(value, variables, outputs) for key, value in binding.items()}
    if isinstance(binding, list):
        return [_resolve(value, variables, outputs) for value in binding]
    return binding


def _coerce(param: ParameterSpec, value: Any) -> Any:
    """Convert *value* to the parameter's declared type."""
    if value is None or param.type == "object":
        return value
    if param.type == "number":
        if isinstance(value, bool):
            raise BindingError(f"Argument '{param.name}' must be a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise BindingError(f"Argument '{param.name}' must be a number, got {value!r}") from exc
    if param.type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
        raise BindingError(f"Argument '{param.name}' must be a boolean, got {value!r}")
    return str(value)


def bind_arguments(
    spec: FunctionSpec,
    args: Mapping[str, Any],
    variables: Mapping[str, Any],
    outputs: List[Any],
) -> Dict[str, Any]:
    """Resolve, type-check and default the arguments of one step."""
    unexpected = [name for name in args if spec.parameter(name) is None]
    if unexpected:
        raise BindingError(
            f"Unexpected argument(s) {', '.join(unexpected)}; "
            f"expected {', '.join(p.name for p in spec.parameters) or 'none'}"
        )

    bound: Dict[str, Any] = {}
    for param in spec.parameters:
        # An explicit null falls back to the declared default
        value = _resolve(args[param.name], variables, outputs) if param.name in args else None
        if value is not None or (param.name in args and param.default is None):
            bound[param.name] = _coerce(param, value)
        elif param.default is not None:
            bound[param.name] = param.default
        elif param.required:
            raise BindingError(f"Missing required argument '{param.name}'")
    return bound


async def _run_step(
    index: int, entry: CatalogEntry, context: InvocationContext, arguments: Dict[str, Any]
) -> Any:
    name = entry.qualified_name
    try:
        logger.debug("Executing step %d '%s' with args=%s", index, name, arguments)
        value = await entry.invoke(context, arguments)
    except FATAL_ERRORS:
        raise
    except TypeError as exc:
        # Argument mismatch: give the caller a clean exception.
        logger.exception("Argument error while executing step %d '%s'", index, name)
        raise StepExecutionError(index, name, f"Invalid arguments: {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in step %d '%s'", index, name)
        raise StepExecutionError(index, name, exc) from exc

    if isinstance(value, InvocationResult):
        return value.value
    return value


async def execute_plan(
    plan: Plan,
    context: InvocationContext,
    variables: Mapping[str, Any] | None = None,
    catalog: CatalogView | None = None,
) -> InvocationResult:
    """
    Run every step of *plan* in order and return the final value.

    Parameters
    ----------
    plan:
        The plan to run.
    context:
        Services for the steps; ``context.variables`` are visible to ``$var`` bindings.
    variables:
        Extra input variables, overriding ambient ones.
    catalog:
        Functions the plan may call.  Defaults to ``context.catalog``.

    Returns
    -------
    InvocationResult
        The ``result`` binding of the plan, or the output of its last step.

    Raises
    ------
    StepExecutionError
        For the first step that cannot be bound or whose function fails.  Later steps are not
        run.
    """
    functions = catalog if catalog is not None else context.catalog
    bindings: Dict[str, Any] = {**context.variables, **(variables or {})}
    outputs: List[Any] = []

    for index, step in enumerate(plan.steps):
        try:
            entry = functions.get(step.function)
            arguments = bind_arguments(entry.spec, step.args, bindings, outputs)
        except (FunctionNotFoundError, BindingError) as exc:
            logger.warning("Cannot run step %d '%s': %s", index, step.function, exc)
            raise StepExecutionError(index, step.function, exc) from exc

        value = await _run_step(index, entry, context, arguments)
        logger.info("Step %d '%s' returned: %s", index, step.function, value)
        outputs.append(value)
        if step.output:
            bindings[step.output] = value

    if plan.result is not None:
        try:
            final = _resolve(plan.result, bindings, outputs)
        except BindingError as exc:
            last = len(plan.steps) - 1
            raise StepExecutionError(last, "result", exc) from exc
    else:
        final = outputs[-1]

    return InvocationResult(
        function_name="plan",
        value=final,
        metadata={STEP_OUTPUTS_METADATA_KEY: outputs},
    )
