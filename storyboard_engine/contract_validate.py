import json

import jsonschema

from .schema_loader import load_schema
from .schemas.shotplan_v1 import canonical_json_bytes


def validate_script_contract(data: dict) -> None:
    """Validate a ScriptData dict against the ScriptData.v1.json contract.

    Raises jsonschema.ValidationError if non-conformant.
    """
    jsonschema.validate(data, load_schema("ScriptData.v1.json"))


def validate_shot_plan_contract(data: dict) -> None:
    """Validate a ShotPlan dict against the ShotPlan.v1.json contract.

    Raises jsonschema.ValidationError if non-conformant.
    """
    jsonschema.validate(data, load_schema("ShotPlan.v1.json"))


def validate_shot_plan_model(plan) -> None:
    """Validate a ShotPlan model against the ShotPlan.v1.json contract.

    Projects the model to its canonical camelCase JSON form first, so the
    check covers exactly what would be written to disk.

    Raises jsonschema.ValidationError if the projected artifact is non-conformant.
    """
    validate_shot_plan_contract(json.loads(canonical_json_bytes(plan).decode("utf-8")))
