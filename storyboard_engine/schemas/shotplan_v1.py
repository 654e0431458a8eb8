"""ShotPlan schema v1.0.0: load, dump, validate."""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from storyboard_engine.planning.models import ShotPlan

SCHEMA_VERSION = "1.0.0"


def load_shot_plan(source: Union[str, bytes, dict, list, Path]) -> ShotPlan:
    """Parse a ShotPlan from JSON string, bytes, dict, or file Path.

    A bare JSON array is accepted as the shot list of an otherwise empty plan,
    which is how the storyboard app stores shots inside a project.

    Raises:
        ValidationError: data does not conform to the ShotPlan schema.
        FileNotFoundError: Path does not exist.
    """
    if isinstance(source, Path):
        data = json.loads(source.read_text(encoding="utf-8"))
    elif isinstance(source, (str, bytes)):
        data = json.loads(source)
    else:
        data = source
    if isinstance(data, list):
        data = {"shots": data}
    return ShotPlan.model_validate(data)


def shot_plan_to_dict(plan: ShotPlan) -> dict:
    return plan.model_dump(mode="json", by_alias=True, exclude_none=True)


def dump_shot_plan(plan: ShotPlan, *, indent: int = 2) -> str:
    """Serialize a ShotPlan to canonical camelCase JSON (sort_keys=True, indent=2)."""
    return json.dumps(shot_plan_to_dict(plan), sort_keys=True, indent=indent, ensure_ascii=False)


def canonical_json_bytes(plan: ShotPlan) -> bytes:
    """Return canonical UTF-8 bytes for a ShotPlan.

    Same algorithm as dump_shot_plan() with indent=2, returned as bytes.
    """
    return dump_shot_plan(plan, indent=2).encode("utf-8")


def validate_shot_plan(data: dict) -> List[str]:
    """Validate a raw dict against the ShotPlan model.

    Returns a list of human-readable error strings (empty list = valid).
    Does not raise.
    """
    try:
        ShotPlan.model_validate(data)
        return []
    except ValidationError as exc:
        return [f"{e['loc']}: {e['msg']}" for e in exc.errors()]
