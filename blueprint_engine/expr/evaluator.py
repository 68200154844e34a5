"""
Runtime evaluation helpers for condition expressions, loop sources and
`${...}` / `{{...}}` templates embedded in blueprint steps.

Everything here is pure: values are read through an EvaluationContext built
from read-only views, and nothing is written back.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping

from blueprint_engine.errors import StepError
from blueprint_engine.expr import parser
from blueprint_engine.expr.parser import IndexSegment, PropertySegment, ReferenceExpr, TemplateLiteral, TemplateReference


class EvaluationError(StepError):
    pass


@dataclass(frozen=True)
class EvaluationContext:
    variables: Mapping[str, Any]
    locals: Mapping[str, Any] = field(default_factory=dict)
    steps: Mapping[str, Any] = field(default_factory=dict)

    def with_locals(self, overrides: Mapping[str, Any]) -> "EvaluationContext":
        merged = dict(self.locals)
        merged.update(overrides)
        return replace(self, locals=merged)

    def lookup(self, root: str) -> Any:
        if root in self.locals:
            return self.locals[root]
        if root in self.variables:
            return self.variables[root]
        if root == "steps":
            return self.steps
        if root == "variables":
            return self.variables
        raise KeyError(root)


def resolve_reference(ctx: EvaluationContext, reference: ReferenceExpr) -> Any:
    try:
        value = ctx.lookup(reference.root)
    except KeyError:
        raise EvaluationError(f"Unknown reference root '{reference.root}'") from None

    for segment in reference.segments:
        if isinstance(segment, PropertySegment):
            if not isinstance(value, Mapping):
                raise EvaluationError(
                    f"Cannot access property '{segment.key}' on non-object value in '{reference.raw}'"
                )
            if segment.key not in value:
                raise EvaluationError(
                    f"Property '{segment.key}' not found while resolving '{reference.raw}'"
                )
            value = value[segment.key]
        elif isinstance(segment, IndexSegment):
            if isinstance(segment.index, int):
                if not isinstance(value, (list, tuple)):
                    raise EvaluationError(
                        f"Cannot use numeric index on non-list value in '{reference.raw}'"
                    )
                try:
                    value = value[segment.index]
                except IndexError as exc:
                    raise EvaluationError(
                        f"Index {segment.index} out of range in '{reference.raw}'"
                    ) from exc
            else:
                if not isinstance(value, Mapping):
                    raise EvaluationError(
                        f"Cannot use string index on non-object value in '{reference.raw}'"
                    )
                if segment.index not in value:
                    raise EvaluationError(
                        f"Key '{segment.index}' not found while resolving '{reference.raw}'"
                    )
                value = value[segment.index]
        else:
            raise EvaluationError(f"Unsupported segment type {type(segment)!r}")
    return value


def evaluate_value(ctx: EvaluationContext, value: Any) -> Any:
    if isinstance(value, str):
        return render_template(ctx, value)
    if isinstance(value, list):
        return [evaluate_value(ctx, item) for item in value]
    if isinstance(value, dict):
        return {key: evaluate_value(ctx, item) for key, item in value.items()}
    return value


def render_template(ctx: EvaluationContext, text: str) -> Any:
    try:
        tokens = parser.parse_template(text)
    except ValueError as exc:
        raise EvaluationError(str(exc)) from exc
    if len(tokens) == 1 and isinstance(tokens[0], TemplateReference):
        return resolve_reference(ctx, tokens[0].reference)

    pieces: list[str] = []
    for token in tokens:
        if isinstance(token, TemplateLiteral):
            pieces.append(token.text)
        else:
            value = resolve_reference(ctx, token.reference)
            pieces.append("" if value is None else str(value))
    return "".join(pieces)


SAFE_FUNCTIONS: Dict[str, Any] = {
    "len": len,
    "any": any,
    "all": all,
    "min": min,
    "max": max,
    "sum": sum,
    "abs": abs,
    "round": round,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
}


# -----------------------------
# JavaScript-flavoured operators used by upstream blueprints
# -----------------------------
_STRING_LITERAL = re.compile(r"(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')")
_DOTTED_PATH = re.compile(r"(?<![\w.'\"])([A-Za-z_]\w*(?:\.[A-Za-z_]\w*|\[[^\]]+\])+)")
_JS_REWRITES = (
    (re.compile(r"==="), "=="),
    (re.compile(r"!=="), "!="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
    (re.compile(r"\b(?:null|undefined)\b"), "None"),
)


def _translate_code(text: str, bind: Callable[[ReferenceExpr], str]) -> str:
    for pattern, replacement in _JS_REWRITES:
        text = pattern.sub(replacement, text)

    def _bind_path(match: re.Match[str]) -> str:
        try:
            reference = parser.parse_reference_string(match.group(1))
        except ValueError as exc:
            raise EvaluationError(str(exc)) from exc
        return bind(reference)

    return _DOTTED_PATH.sub(_bind_path, text)


def _translate_literal(text: str, bind: Callable[[ReferenceExpr], str]) -> str:
    parts = _STRING_LITERAL.split(text)
    # re.split with a capture group alternates code, string, code, ...
    return "".join(
        part if index % 2 else _translate_code(part, bind) for index, part in enumerate(parts)
    )


class _ExpressionValidator(ast.NodeVisitor):
    ALLOWED_NODES = (
        ast.Expression,
        ast.BoolOp,
        ast.BinOp,
        ast.UnaryOp,
        ast.Compare,
        ast.Call,
        ast.Name,
        ast.Load,
        ast.Constant,
        ast.Subscript,
        ast.Slice,
        ast.List,
        ast.Tuple,
    )

    ALLOWED_BINOPS = (
        ast.Add,
        ast.Sub,
        ast.Mult,
        ast.Div,
        ast.FloorDiv,
        ast.Mod,
    )

    ALLOWED_UNARY = (ast.Not, ast.USub, ast.UAdd)

    ALLOWED_CMPS = (
        ast.Eq,
        ast.NotEq,
        ast.Lt,
        ast.Gt,
        ast.LtE,
        ast.GtE,
        ast.In,
        ast.NotIn,
        ast.Is,
        ast.IsNot,
    )

    def __init__(self, bindings: Dict[str, Any], ctx: EvaluationContext) -> None:
        self.bindings = bindings
        self.ctx = ctx

    def generic_visit(self, node: ast.AST) -> None:
        if isinstance(node, (ast.cmpop, ast.operator, ast.boolop, ast.unaryop)):
            return
        if not isinstance(node, self.ALLOWED_NODES):
            raise EvaluationError(f"Disallowed expression node: {type(node).__name__}")
        super().generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
            raise EvaluationError("Only whitelisted helper functions can be used in expressions")
        if node.keywords:
            raise EvaluationError("Keyword arguments are not allowed in expressions")
        for arg in node.args:
            self.visit(arg)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in self.bindings or node.id in SAFE_FUNCTIONS:
            return
        try:
            self.bindings[node.id] = self.ctx.lookup(node.id)
        except KeyError:
            raise EvaluationError(f"Unknown variable '{node.id}' in expression") from None

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if not isinstance(node.op, self.ALLOWED_BINOPS):
            raise EvaluationError(f"Operator '{type(node.op).__name__}' is not allowed")
        self.generic_visit(node)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> None:
        if not isinstance(node.op, self.ALLOWED_UNARY):
            raise EvaluationError(f"Unary op '{type(node.op).__name__}' is not allowed")
        self.generic_visit(node)

    def visit_Compare(self, node: ast.Compare) -> None:
        for op in node.ops:
            if not isinstance(op, self.ALLOWED_CMPS):
                raise EvaluationError(f"Comparator '{type(op).__name__}' is not allowed")
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if not isinstance(node.value, ast.Name):
            raise EvaluationError("Only variables can be subscripted")
        self.generic_visit(node)


def evaluate_expression(ctx: EvaluationContext, expression: str) -> Any:
    """
    Evaluate an expression and return its raw value. An expression that is a
    single placeholder resolves directly so non-scalar values keep their type.
    """

    try:
        tokens = parser.parse_template(expression)
    except ValueError as exc:
        raise EvaluationError(str(exc)) from exc
    if len(tokens) == 1 and isinstance(tokens[0], TemplateReference):
        return resolve_reference(ctx, tokens[0].reference)

    bindings: Dict[str, Any] = {}

    def bind(reference: ReferenceExpr) -> str:
        placeholder = f"__ref_{len(bindings)}"
        bindings[placeholder] = resolve_reference(ctx, reference)
        return placeholder

    rendered_expr: List[str] = []
    for token in tokens:
        if isinstance(token, TemplateLiteral):
            rendered_expr.append(_translate_literal(token.text, bind))
        else:
            rendered_expr.append(bind(token.reference))

    expr_str = "".join(rendered_expr).strip()
    if not expr_str:
        raise EvaluationError("Expression resolved to empty string")

    try:
        tree = ast.parse(expr_str, mode="eval")
    except SyntaxError as exc:
        raise EvaluationError(f"Malformed expression '{expression}': {exc.msg}") from exc
    _ExpressionValidator(bindings, ctx).visit(tree)
    compiled = compile(tree, "<expression>", "eval")

    safe_locals = dict(bindings)
    safe_locals.update(SAFE_FUNCTIONS)
    try:
        return eval(compiled, {"__builtins__": {}}, safe_locals)
    except Exception as exc:
        raise EvaluationError(f"Failed to evaluate '{expression}': {exc}") from exc


def evaluate_condition(ctx: EvaluationContext, expression: str) -> bool:
    return bool(evaluate_expression(ctx, expression))


def evaluate_sequence(ctx: EvaluationContext, expression: str) -> List[Any]:
    value = evaluate_expression(ctx, expression)
    if not isinstance(value, (list, tuple)):
        raise EvaluationError(
            f"Loop source '{expression}' must produce a list, got {type(value).__name__}"
        )
    return list(value)
