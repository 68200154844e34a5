from __future__ import annotations

import pytest

from blueprint_engine.expr import (
    EvaluationContext,
    EvaluationError,
    evaluate_condition,
    evaluate_expression,
    evaluate_sequence,
    evaluate_value,
    render_template,
)


def _ctx(**variables) -> EvaluationContext:
    return EvaluationContext(
        variables=variables,
        steps={"fetch": {"items": [{"id": 7}], "ok": True}},
    )


def test_render_template_supports_both_placeholder_styles() -> None:
    ctx = _ctx(user={"name": "Ada"}, count=2)

    assert render_template(ctx, "Hi {{user.name}}, you have ${count} tasks") == "Hi Ada, you have 2 tasks"
    assert render_template(ctx, "no placeholders") == "no placeholders"


def test_single_placeholder_keeps_raw_value_type() -> None:
    ctx = _ctx(items=[1, 2])

    assert render_template(ctx, "{{items}}") == [1, 2]
    assert render_template(ctx, "${steps.fetch.items[0]['id']}") == 7


def test_evaluate_value_renders_nested_parameters() -> None:
    ctx = _ctx(channel="#ops", user={"name": "Ada"})

    rendered = evaluate_value(ctx, {"channel": "{{channel}}", "blocks": [{"text": "hi {{user.name}}"}], "n": 3})

    assert rendered == {"channel": "#ops", "blocks": [{"text": "hi Ada"}], "n": 3}


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("count > 1", True),
        ("${count} >= 5", False),
        ("status === 'open' && count !== 0", True),
        ("!closed || count < 0", True),
        ("user.name == 'Ada'", True),
        ("steps.fetch.ok and len(steps.fetch.items) == 1", True),
        ("tags[0] in ['a', 'b']", True),
        ("missing_flag is None", False),
        ("label == 'done!'", False),
        ("max(scores) - min(scores) > 3", True),
    ],
)
def test_evaluate_condition(expression: str, expected: bool) -> None:
    ctx = _ctx(
        count=3,
        status="open",
        closed=False,
        user={"name": "Ada"},
        tags=["a"],
        missing_flag=0,
        label="todo",
        scores=[1, 9],
    )

    assert evaluate_condition(ctx, expression) is expected


def test_locals_shadow_variables() -> None:
    ctx = _ctx(item="outer").with_locals({"item": "inner"})

    assert evaluate_expression(ctx, "item") == "inner"
    assert render_template(ctx, "{{item}}") == "inner"


@pytest.mark.parametrize(
    "expression",
    [
        "unknown_name > 1",
        "{{nope.value}}",
        "user.__class__",
        "__import__('os')",
        "open('x')",
        "count >",
        "(lambda: 1)()",
        "count ** 2",
        "len(items, key=None)",
    ],
)
def test_invalid_expressions_raise_evaluation_error(expression: str) -> None:
    ctx = _ctx(count=1, user={"name": "Ada"}, items=[1])

    with pytest.raises(EvaluationError):
        evaluate_expression(ctx, expression)


def test_missing_property_is_an_error_not_none() -> None:
    with pytest.raises(EvaluationError) as excinfo:
        render_template(_ctx(user={}), "{{user.email}}")

    assert "email" in str(excinfo.value)


def test_evaluate_sequence_requires_a_list() -> None:
    ctx = _ctx(items=("a", "b"), name="abc")

    assert evaluate_sequence(ctx, "items") == ["a", "b"]
    with pytest.raises(EvaluationError):
        evaluate_sequence(ctx, "name")


def test_evaluation_does_not_mutate_context() -> None:
    variables = {"items": [1, 2, 3]}
    ctx = EvaluationContext(variables=variables)

    evaluate_condition(ctx, "len(items) == 3")
    render_template(ctx, "{{items}}")

    assert variables == {"items": [1, 2, 3]}
