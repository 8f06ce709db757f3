"""
Planner interface for promptloom.

A planner turns a goal plus a view of the function catalog into a :class:`Plan`.  Planners never
call an LLM directly; the bundled :class:`ChatPlanner` is itself a semantic function whose prompt
lives in ``prompts/create_plan.yaml`` and runs on the context's completion service.

Additional planners can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from pathlib import Path
from typing import (
    Callable,
    Optional,
    Type,
)

from pydantic import ValidationError

from promptloom.catalog import CatalogView
from promptloom.common import sanitize_json_string
from promptloom.config import settings
from promptloom.core.context import InvocationContext
from promptloom.core.errors import PlanGenerationError
from promptloom.core.loader import load_function_from_yaml
from promptloom.core.schema import (
    Plan,
    PlanFeedback,
)
from promptloom.core.semantic_function import SemanticFunction

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    """

    target = name or settings.PLANNER
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that converts a goal + available functions -> plan."""

    def _parse_plan(self, content: str, catalog: CatalogView) -> Plan:
        """Parse and validate a JSON plan document produced by an LLM."""
        cleaned = sanitize_json_string(content)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse plan as JSON: %s", exc)
            raise PlanGenerationError(f"Planner returned invalid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise PlanGenerationError("Planner response must be a JSON object.")
        if data.get("error"):
            raise PlanGenerationError(f"Planner could not create a plan: {data['error']}")

        try:
            plan = Plan.model_validate(data)
        except ValidationError as exc:
            logger.error("Planner response failed validation: %s", exc)
            raise PlanGenerationError(f"Planner returned an invalid plan: {exc}") from exc

        unknown = [step.function for step in plan.steps if step.function not in catalog]
        if unknown:
            raise PlanGenerationError(
                f"Plan uses unavailable function(s): {', '.join(unknown)}. "
                f"Available: {', '.join(catalog.names())}"
            )
        return plan

    @abstractmethod
    async def plan(
        self,
        goal: str,
        catalog: CatalogView,
        context: InvocationContext,
        feedback: Optional[PlanFeedback] = None,
    ) -> Plan:
        """Return a plan for *goal* that only uses functions from *catalog*."""


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
@register_planner("chat")
class ChatPlanner(BasePlanner):
    """Planner that asks the context's chat completion service to write the plan."""

    def __init__(self, function: SemanticFunction | None = None) -> None:
        self._function = function or load_function_from_yaml(
            PROMPTS_DIR / "create_plan.yaml", namespace="Planner"
        )

    async def plan(
        self,
        goal: str,
        catalog: CatalogView,
        context: InvocationContext,
        feedback: Optional[PlanFeedback] = None,
    ) -> Plan:
        variables = {
            "goal": goal,
            "functions": catalog.specs(),
            "last_plan": feedback.last_plan_text if feedback else None,
            "last_error": feedback.last_error if feedback else None,
        }
        if feedback:
            logger.info("Re-planning after error: %s", feedback.last_error)

        result = await self._function.invoke(context, variables)
        logger.debug("Chat planner response: %s", result.value)
        return self._parse_plan(str(result), catalog)
