"""
JSON Schema support for integration method parameters.

Validators are compiled once per ``integration.method`` when the method is
registered and reused for every invocation.
"""

from __future__ import annotations

from threading import Lock
from typing import Any, Dict, List

from jsonschema import ValidationError
from jsonschema.exceptions import SchemaError
from jsonschema.protocols import Validator
from jsonschema.validators import Draft202012Validator, validator_for

JsonSchema = Dict[str, Any]

_compiled: Dict[str, Validator] = {}
_compiled_lock = Lock()


def compile_schema(schema: JsonSchema, *, key: str) -> Validator:
    """
    Check ``schema`` against its metaschema and cache a validator under ``key``.
    Re-registering a key replaces the previous validator.
    """

    validator_cls = validator_for(schema, default=Draft202012Validator)
    validator_cls.check_schema(schema)
    validator = validator_cls(schema)
    with _compiled_lock:
        _compiled[key] = validator
    return validator


def _validator(schema: JsonSchema, key: str) -> Validator:
    with _compiled_lock:
        validator = _compiled.get(key)
    if validator is None or validator.schema is not schema:
        validator = compile_schema(schema, key=key)
    return validator


def parameter_errors(schema: JsonSchema, parameters: Any, *, key: str, prefix: str = "parameters") -> List[str]:
    """Every violation of ``schema`` by ``parameters``, ordered by location."""

    validator = _validator(schema, key)
    errors = sorted(validator.iter_errors(parameters), key=lambda error: list(map(str, error.absolute_path)))
    return [format_validation_error(error, prefix=prefix) for error in errors]


def format_validation_error(error: ValidationError, *, prefix: str = "$") -> str:
    location = prefix
    for token in error.absolute_path:
        location += f"[{token}]" if isinstance(token, int) else f".{token}"
    return f"{location}: {error.message}"


__all__ = [
    "JsonSchema",
    "SchemaError",
    "ValidationError",
    "compile_schema",
    "format_validation_error",
    "parameter_errors",
]
