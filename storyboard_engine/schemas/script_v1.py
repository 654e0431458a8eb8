"""ScriptData schema v1.0.0: load, dump, validate.

JSON keys are camelCase on the wire.  Canonical JSON (sort_keys=True) gives
byte-identical output for identical models.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from storyboard_engine.planning.models import ScriptData

SCHEMA_VERSION = "1.0.0"


def load_script(source: Union[str, bytes, dict, Path]) -> ScriptData:
    """Parse ScriptData from JSON string, bytes, dict, or file Path.

    Raises:
        ValidationError: data does not conform to the ScriptData schema.
        FileNotFoundError: Path does not exist.
    """
    if isinstance(source, Path):
        data = json.loads(source.read_text(encoding="utf-8"))
    elif isinstance(source, (str, bytes)):
        data = json.loads(source)
    else:
        data = source
    return ScriptData.model_validate(data)


def dump_script(script: ScriptData, *, indent: int = 2) -> str:
    """Serialize ScriptData to canonical camelCase JSON (sort_keys=True)."""
    raw = script.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(raw, sort_keys=True, indent=indent, ensure_ascii=False)


def validate_script(data: dict) -> List[str]:
    """Validate a raw dict against the ScriptData model.

    Returns a list of human-readable error strings (empty list = valid).
    Does not raise.
    """
    try:
        ScriptData.model_validate(data)
        return []
    except ValidationError as exc:
        return [f"{e['loc']}: {e['msg']}" for e in exc.errors()]
