"""Tests for loading semantic functions from YAML definitions."""

import asyncio
from pathlib import Path

import pytest

from promptloom.agent.planner_interface import PROMPTS_DIR
from promptloom.core.errors import FunctionDefinitionError
from promptloom.core.loader import (
    load_function_from_yaml,
    load_function_from_yaml_content,
)

DEFINITION = """\
name: Summarize
description: Summarizes text.
templateFormat: jinja2
inputVariables:
  - name: text
    description: The text to summarize.
    type: string
    required: true
  - name: sentences
    description: How many sentences to write.
    type: number
    defaultValue: 2
  - name: formal
    type: boolean
    isRequired: false
  - name: extra
    type: array
  - name: untyped
template: |
  <system~>Summarize in {{ sentences }} sentences.</system~>
  <user~>{{ text }}</user~>
"""


def test_definition_fields_are_mapped() -> None:
    function = load_function_from_yaml_content(DEFINITION, namespace="Text")
    spec = function.describe()

    assert spec.qualified_name == "Text.Summarize"
    assert spec.description == "Summarizes text."
    assert function.template_format == "jinja2"
    assert "{{ text }}" in function.template

    params = {p.name: p for p in spec.parameters}
    assert list(params) == ["text", "sentences", "formal", "extra", "untyped"]
    assert params["text"].required is True
    assert params["text"].type == "string"
    assert params["sentences"].type == "number"
    assert params["sentences"].default == 2
    assert params["formal"].type == "boolean"
    assert params["formal"].required is False


def test_unknown_or_missing_types_become_object() -> None:
    params = {p.name: p for p in load_function_from_yaml_content(DEFINITION).describe().parameters}
    assert params["extra"].type == "object"
    assert params["untyped"].type == "object"


def test_loaded_function_uses_defaults(make_context) -> None:
    function = load_function_from_yaml_content(DEFINITION)
    context = make_context("short")
    asyncio.run(function.invoke(context, {"text": "A long story."}))

    messages = context.completion_service.transcripts[0].to_dicts()
    assert messages == [
        {"role": "system", "content": "Summarize in 2 sentences."},
        {"role": "user", "content": "A long story."},
    ]


def test_snake_case_keys_are_accepted() -> None:
    content = (
        "name: Echo\ntemplate_format: jinja2\n"
        "input_variables:\n  - name: x\ntemplate: '{{ x }}'\n"
    )
    function = load_function_from_yaml_content(content)
    assert [p.name for p in function.describe().parameters] == ["x"]


@pytest.mark.parametrize(
    "content",
    [
        "name: [unclosed",
        "- just\n- a list\n",
        "description: no name or template\n",
    ],
)
def test_invalid_definitions_raise(content: str) -> None:
    with pytest.raises(FunctionDefinitionError):
        load_function_from_yaml_content(content)


def test_load_from_file(tmp_path: Path) -> None:
    path = tmp_path / "summarize.yaml"
    path.write_text(DEFINITION, encoding="utf-8")
    assert load_function_from_yaml(path).name == "Summarize"

    with pytest.raises(FunctionDefinitionError):
        load_function_from_yaml(tmp_path / "missing.yaml")


def test_bundled_prompts_load() -> None:
    planner = load_function_from_yaml(PROMPTS_DIR / "create_plan.yaml")
    assert planner.name == "CreatePlan"
    assert [p.name for p in planner.describe().parameters if p.required] == ["goal", "functions"]


def test_unsupported_template_format_is_rejected_at_load_time() -> None:
    content = (
        "name: Greet\n"
        "templateFormat: handlebars\n"
        "template: '<user~>{{#if a}}hi{{/if}}</user~>'\n"
    )
    with pytest.raises(FunctionDefinitionError, match="handlebars"):
        load_function_from_yaml_content(content)
