from blueprint_engine.expr.evaluator import (
    EvaluationContext,
    EvaluationError,
    evaluate_condition,
    evaluate_expression,
    evaluate_sequence,
    evaluate_value,
    render_template,
)

__all__ = [
    "EvaluationContext",
    "EvaluationError",
    "evaluate_condition",
    "evaluate_expression",
    "evaluate_sequence",
    "evaluate_value",
    "render_template",
]
