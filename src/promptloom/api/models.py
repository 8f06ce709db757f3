"""
Pydantic models for promptloom API requests and responses.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class InvokeRequest(BaseModel):
    """Arguments for a single function invocation."""

    variables: Dict[str, Any] = Field(default_factory=dict, description="Function arguments")


class GoalRequest(BaseModel):
    """A goal to plan and execute."""

    goal: str = Field(..., description="What the plan should achieve")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Input variables")
    included_namespaces: Optional[List[str]] = Field(
        None, description="Namespaces the planner may use (default: all)"
    )
    excluded_functions: List[str] = Field(
        default_factory=list, description="Qualified names the planner must not use"
    )
    max_extra_tries: Optional[int] = Field(None, ge=0, description="Retries after the first try")


class InvocationResponse(BaseModel):
    """API response returned to the caller."""

    function_name: str
    namespace: str = ""
    value: Any = None
    step_outputs: Optional[List[Any]] = None
