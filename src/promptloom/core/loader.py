"""
Loads semantic functions from YAML definition documents.

A definition looks like:

    name: GenerateMathProblem
    description: Generates a math word problem.
    templateFormat: jinja2
    inputVariables:
      - name: topic
        description: What the problem is about.
        type: string
        defaultValue: personal finance
        required: false
    template: |
      <user~>Write a math problem about {{ topic }}.</user~>
"""

import logging
from pathlib import Path
from typing import (
    Any,
    List,
    Optional,
)

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
)

from promptloom.core.errors import FunctionDefinitionError
from promptloom.core.schema import (
    ParameterSpec,
    ParameterType,
)
from promptloom.core.semantic_function import SemanticFunction

logger = logging.getLogger(__name__)

_TYPE_MAP: dict[str, ParameterType] = {
    "string": "string",
    "number": "number",
    "boolean": "boolean",
}

SUPPORTED_TEMPLATE_FORMATS = ("jinja2",)


class InputVariable(BaseModel):
    """One input variable declaration of a definition document."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    type: Optional[str] = None
    default_value: Any = Field(None, alias="defaultValue")
    required: bool = Field(False, validation_alias=AliasChoices("required", "isRequired"))

    def to_parameter(self) -> ParameterSpec:
        """Map the declared type onto the parameter type set; unknown types become ``object``."""
        return ParameterSpec(
            name=self.name,
            description=self.description,
            type=_TYPE_MAP.get((self.type or "").lower(), "object"),
            default=self.default_value,
            required=self.required,
        )


class FunctionDefinition(BaseModel):
    """A semantic function definition document."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    template: str
    template_format: str = Field("jinja2", alias="templateFormat")
    input_variables: List[InputVariable] = Field(
        default_factory=list,
        validation_alias=AliasChoices("inputVariables", "input_variables"),
    )


def load_function_from_yaml_content(content: str, namespace: str = "") -> SemanticFunction:
    """Build a :class:`SemanticFunction` from a YAML document string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise FunctionDefinitionError(f"Invalid YAML in function definition: {exc}") from exc
    if not isinstance(data, dict):
        raise FunctionDefinitionError("Function definition must be a YAML mapping.")

    try:
        definition = FunctionDefinition.model_validate(data)
    except ValidationError as exc:
        raise FunctionDefinitionError(f"Invalid function definition: {exc}") from exc

    if definition.template_format.lower() not in SUPPORTED_TEMPLATE_FORMATS:
        raise FunctionDefinitionError(
            f"Unsupported template format '{definition.template_format}' in '{definition.name}'; "
            f"expected one of: {', '.join(SUPPORTED_TEMPLATE_FORMATS)}"
        )

    logger.debug("Loaded function definition '%s'", definition.name)
    return SemanticFunction(
        name=definition.name,
        template=definition.template,
        description=definition.description,
        namespace=namespace,
        parameters=[var.to_parameter() for var in definition.input_variables],
        template_format=definition.template_format,
    )


def load_function_from_yaml(path: str | Path, namespace: str = "") -> SemanticFunction:
    """Read *path* and build a :class:`SemanticFunction` from it."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise FunctionDefinitionError(f"Cannot read function definition {path}: {exc}") from exc
    return load_function_from_yaml_content(content, namespace=namespace)
