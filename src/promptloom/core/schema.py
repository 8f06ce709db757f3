"""
Schema definitions shared by templates, completion services, the catalog, the planner and the
plan executor.

These data models are the contract between the components.  We keep them separate from runtime
logic so they can be imported anywhere without side-effects.
"""

import json
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

Role = Literal["system", "user", "assistant"]
ParameterType = Literal["string", "number", "boolean", "object"]

MODEL_RESULTS_METADATA_KEY = "model_results"
"""Metadata key under which raw completion candidates are stored."""

STEP_OUTPUTS_METADATA_KEY = "step_outputs"
"""Metadata key under which a plan execution stores every step's output."""


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
class Message(BaseModel):
    """One role-tagged message of a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class Transcript(BaseModel):
    """Ordered conversation handed to a chat completion service."""

    messages: List[Message] = Field(default_factory=list)

    def add(self, role: Role, content: str) -> Message:
        """Append a message and return it."""
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message

    def to_dicts(self) -> List[Dict[str, str]]:
        """Return the ``[{"role": ..., "content": ...}]`` form chat SDKs expect."""
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)


# ---------------------------------------------------------------------------
# Function metadata
# ---------------------------------------------------------------------------
class ParameterSpec(BaseModel):
    """Describes one parameter of a callable function."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    type: ParameterType = "object"
    default: Any = None
    required: bool = False


class UsageSample(BaseModel):
    """Example input/output pair shown to the planner."""

    model_config = ConfigDict(frozen=True)

    inputs: str = Field(..., description="JSON-like example of the arguments")
    output: str = Field(..., description="Expected output for those arguments")


class FunctionSpec(BaseModel):
    """Immutable metadata describing a function registered in the catalog."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str = ""
    description: str = ""
    parameters: Tuple[ParameterSpec, ...] = ()
    samples: Tuple[UsageSample, ...] = ()
    invokes_planner: bool = Field(
        False, description="True for orchestrating functions that run the planner themselves"
    )

    @property
    def qualified_name(self) -> str:
        """``namespace.name``, or just ``name`` when there is no namespace."""
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    def parameter(self, name: str) -> Optional[ParameterSpec]:
        """Return the parameter called *name*, if declared."""
        for param in self.parameters:
            if param.name == name:
                return param
        return None


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------
class PlanStep(BaseModel):
    """
    A single function call inside a plan.

    Argument values are bindings: a literal JSON value, ``{"$var": "<name>"}`` for an input
    variable (or a named step output), or ``{"$step": <index>}`` for the output of an earlier
    step.
    """

    model_config = ConfigDict(frozen=True)

    function: str = Field(..., description="Qualified name of the function to call")
    args: Dict[str, Any] = Field(default_factory=dict, description="Argument bindings")
    output: Optional[str] = Field(None, description="Variable name to bind the output to")


class Plan(BaseModel):
    """An ordered sequence of steps produced by a planner."""

    model_config = ConfigDict(frozen=True)

    steps: Tuple[PlanStep, ...] = Field(..., min_length=1)
    result: Any = Field(None, description="Binding for the final value; last step if omitted")

    def to_text(self) -> str:
        """Return the plan document as indented JSON."""
        return json.dumps(self.model_dump(exclude_none=True), indent=2)

    def __str__(self) -> str:
        return self.to_text()


class PlanFeedback(BaseModel):
    """What the planner is told about the previous, failed attempt."""

    model_config = ConfigDict(frozen=True)

    last_plan: Optional[Plan] = None  # None when planning itself failed
    last_error: str

    @property
    def last_plan_text(self) -> Optional[str]:
        """Textual form of the failed plan."""
        return self.last_plan.to_text() if self.last_plan is not None else None


class RetryState(BaseModel):
    """Bookkeeping for one retry controller run."""

    attempts_remaining: int
    last_plan: Optional[Plan] = None
    last_error: Optional[str] = None

    def record_failure(self, plan: Optional[Plan], error: BaseException) -> None:
        """Spend one retry and remember what failed."""
        self.attempts_remaining -= 1
        self.last_plan = plan
        self.last_error = str(error)

    def feedback(self) -> Optional[PlanFeedback]:
        """Feedback for the next planning attempt, or None on the first attempt."""
        if self.last_error is None:
            return None
        return PlanFeedback(last_plan=self.last_plan, last_error=self.last_error)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class InvocationResult(BaseModel):
    """Value returned by a semantic function, a completion call or a plan execution."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    function_name: str = ""
    namespace: str = ""
    value: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        return "" if self.value is None else str(self.value)
