"""
Parse and structurally validate blueprints before any step runs.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, List, Mapping

from pydantic import ValidationError

from blueprint_engine.errors import BlueprintValidationError
from blueprint_engine.schema.models import Blueprint, Step, iter_steps


def parse_blueprint(payload: Any) -> Blueprint:
    """
    Accepts a Blueprint instance, a JSON string, or a mapping compatible with
    the Blueprint definition and returns a validated Blueprint.
    """

    if isinstance(payload, Blueprint):
        blueprint = payload
    else:
        if isinstance(payload, (str, bytes)):
            try:
                data = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise BlueprintValidationError(f"Invalid blueprint JSON payload: {exc}") from exc
        elif isinstance(payload, Mapping):
            data = payload
        else:
            raise BlueprintValidationError(
                f"Unsupported payload type {type(payload).__name__}; expected Blueprint, str or Mapping"
            )

        try:
            blueprint = Blueprint.model_validate(data)
        except ValidationError as exc:
            raise BlueprintValidationError(f"Blueprint validation failed: {exc}") from exc

    validate_unique_step_ids(blueprint.steps)
    return blueprint


def validate_unique_step_ids(steps: List[Step]) -> None:
    counts = Counter(step.id for step in iter_steps(steps))
    duplicates = sorted(step_id for step_id, count in counts.items() if count > 1)
    if duplicates:
        raise BlueprintValidationError(
            f"Step ids must be unique across the blueprint; duplicated: {', '.join(duplicates)}"
        )
