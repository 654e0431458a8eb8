"""Versioned schema loaders and validators."""

from storyboard_engine.schemas.script_v1 import dump_script, load_script, validate_script
from storyboard_engine.schemas.shotplan_v1 import dump_shot_plan, load_shot_plan, validate_shot_plan

__all__ = [
    "load_script",
    "dump_script",
    "validate_script",
    "load_shot_plan",
    "dump_shot_plan",
    "validate_shot_plan",
]
