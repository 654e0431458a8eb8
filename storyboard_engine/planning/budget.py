"""Shot budgeting: target runtime → exact per-scene shot counts.

All functions are pure except pin_shot_duration(), which records the planning
baseline on the ScriptData it is given.

Formula
-------
    rough  = max(1, round_half_up(target_sec / shot_sec))
    total  = max(rough, scene_count)              # ≥ 1 shot per scene
    base   = total // scene_count
    extra  = total %  scene_count                 # first `extra` scenes get +1
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from storyboard_engine.planning.duration import parse_duration_to_seconds, round_half_up
from storyboard_engine.planning.models import ScriptData

# Used when the target duration string cannot be parsed.
DEFAULT_TARGET_SECONDS: int = 60
# Default clip length of the active video model.
DEFAULT_SHOT_DURATION_SEC: float = 8.0


@dataclass(frozen=True)
class ShotBudget:
    target_seconds: int
    shot_duration_sec: float
    total_shots: int
    per_scene: List[int]


def resolve_shot_duration(
    planning_shot_duration: Optional[float],
    default_shot_duration: float = DEFAULT_SHOT_DURATION_SEC,
) -> float:
    """Pick the baseline seconds/shot: a pinned positive value wins, else the default."""
    if planning_shot_duration is not None and planning_shot_duration > 0:
        duration = float(planning_shot_duration)
    else:
        duration = float(default_shot_duration or DEFAULT_SHOT_DURATION_SEC)
    return max(1.0, duration)


def compute_total_shots(target_seconds: float, shot_duration_sec: float, scene_count: int) -> int:
    rough = max(1, round_half_up(target_seconds / shot_duration_sec))
    return max(rough, scene_count)


def distribute_shots(total_shots: int, scene_count: int) -> List[int]:
    """Split *total_shots* across scenes; earlier scenes absorb the remainder."""
    if scene_count <= 0:
        return []
    base, extra = divmod(total_shots, scene_count)
    return [base + (1 if idx < extra else 0) for idx in range(scene_count)]


def pin_shot_duration(script: ScriptData, default_shot_duration: float = DEFAULT_SHOT_DURATION_SEC) -> float:
    """Resolve the planning baseline and store it on *script*."""
    duration = resolve_shot_duration(script.planning_shot_duration, default_shot_duration)
    script.planning_shot_duration = duration
    return duration


def plan_budget(script: ScriptData, default_shot_duration: float = DEFAULT_SHOT_DURATION_SEC) -> ShotBudget:
    """Compute the shot budget for *script*, pinning its planning baseline."""
    target = parse_duration_to_seconds(script.target_duration) or DEFAULT_TARGET_SECONDS
    shot_duration = pin_shot_duration(script, default_shot_duration)
    scene_count = len(script.scenes)
    total = compute_total_shots(target, shot_duration, scene_count)
    return ShotBudget(
        target_seconds=target,
        shot_duration_sec=shot_duration,
        total_shots=total,
        per_scene=distribute_shots(total, scene_count),
    )
