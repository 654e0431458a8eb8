"""Script rule validator (validate-script) and shot plan invariant checks (validate-shotplan)."""
from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import List, Optional, Sequence

from storyboard_engine.planning.budget import (
    DEFAULT_SHOT_DURATION_SEC,
    DEFAULT_TARGET_SECONDS,
    compute_total_shots,
    distribute_shots,
    resolve_shot_duration,
)
from storyboard_engine.planning.duration import parse_duration_to_seconds
from storyboard_engine.planning.models import ScriptData, Shot
from storyboard_engine.planning.quality import grade_for_score


def _check_catalog(data: dict, field: str, errors: List[str]) -> None:
    items = data.get(field, [])
    if not isinstance(items, list):
        errors.append(f"{field} must be a list")
        return
    seen = set()
    for i, item in enumerate(items):
        if not isinstance(item, dict) or not item.get("id"):
            errors.append(f"{field}[{i}] must have an 'id'")
            continue
        if item["id"] in seen:
            errors.append(f"{field}[{i}] duplicate id {item['id']!r}")
        seen.add(item["id"])


def validate_script_rules(data: dict) -> List[str]:
    """Validate *data* (camelCase ScriptData JSON) against the planning rules.

    Returns a list of human-readable error strings; empty list means valid.
    Does NOT raise.
    """
    errors: List[str] = []

    # scenes[] present and non-empty, ids unique
    scene_ids = set()
    scenes = data.get("scenes")
    if not isinstance(scenes, list) or len(scenes) == 0:
        errors.append("scenes must be a non-empty list")
    else:
        for i, scene in enumerate(scenes):
            if not isinstance(scene, dict):
                errors.append(f"scenes[{i}] must be an object")
                continue
            scene_id = scene.get("id")
            if not scene_id:
                errors.append(f"scenes[{i}] must have an 'id'")
            elif scene_id in scene_ids:
                errors.append(f"scenes[{i}] duplicate id {scene_id!r}")
            else:
                scene_ids.add(scene_id)

    _check_catalog(data, "characters", errors)
    _check_catalog(data, "props", errors)

    # storyParagraphs[].sceneRefId must point at a scene when set
    paragraphs = data.get("storyParagraphs", [])
    if not isinstance(paragraphs, list):
        errors.append("storyParagraphs must be a list")
    else:
        for i, paragraph in enumerate(paragraphs):
            if not isinstance(paragraph, dict):
                errors.append(f"storyParagraphs[{i}] must be an object")
                continue
            ref = paragraph.get("sceneRefId")
            if ref and isinstance(scenes, list) and ref not in scene_ids:
                errors.append(f"storyParagraphs[{i}].sceneRefId {ref!r} does not match any scene")

    target = data.get("targetDuration")
    if target is not None and parse_duration_to_seconds(target) is None:
        errors.append(f"targetDuration {target!r} is not a recognized duration")

    shot_duration = data.get("planningShotDuration")
    if shot_duration is not None and (
        isinstance(shot_duration, bool) or not isinstance(shot_duration, (int, float)) or shot_duration <= 0
    ):
        errors.append(f"planningShotDuration must be a positive number, got {shot_duration!r}")

    return errors


def validate_script_file(script_path: Path) -> List[str]:
    """Load JSON from *script_path* and run validate_script_rules().

    Raises:
        ValueError: if the file is missing or contains invalid JSON.
    """
    try:
        raw = script_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ValueError(f"Script file not found: {script_path}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {script_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("Script must be a JSON object")

    return validate_script_rules(data)


def expected_scene_counts(
    script: ScriptData, default_shot_duration: float = DEFAULT_SHOT_DURATION_SEC
) -> List[int]:
    """Per-scene shot budget of *script*, computed without pinning anything on it."""
    target = parse_duration_to_seconds(script.target_duration) or DEFAULT_TARGET_SECONDS
    shot_duration = resolve_shot_duration(script.planning_shot_duration, default_shot_duration)
    total = compute_total_shots(target, shot_duration, len(script.scenes))
    return distribute_shots(total, len(script.scenes))


def validate_shot_plan(
    shots: Sequence[Shot],
    script: ScriptData,
    *,
    default_shot_duration: Optional[float] = None,
) -> List[str]:
    """Check a planned shot list against *script*.

    Covers per-scene counts, the keyframe pair, catalog references, id
    uniqueness and, where present, quality score range and grade.
    Returns error strings; does NOT raise.
    """
    errors: List[str] = []
    scene_ids = [scene.id for scene in script.scenes]
    character_ids = {c.id for c in script.characters}
    prop_ids = {p.id for p in script.props}

    counts = Counter(shot.scene_id for shot in shots)
    expected = expected_scene_counts(script, default_shot_duration or DEFAULT_SHOT_DURATION_SEC)
    for scene_id, planned in zip(scene_ids, expected):
        if counts.get(scene_id, 0) != planned:
            errors.append(f"scene {scene_id!r} has {counts.get(scene_id, 0)} shots, expected {planned}")

    seen_ids = set()
    for i, shot in enumerate(shots):
        where = f"shots[{i}]"
        if shot.id in seen_ids:
            errors.append(f"{where} duplicate id {shot.id!r}")
        seen_ids.add(shot.id)

        if shot.scene_id not in scene_ids:
            errors.append(f"{where}.sceneId {shot.scene_id!r} does not match any scene")

        types = sorted(k.type for k in shot.keyframes)
        if types != ["end", "start"]:
            errors.append(f"{where} must have exactly one start and one end keyframe, got {types}")
        for k in shot.keyframes:
            if not k.visual_prompt.strip():
                errors.append(f"{where} {k.type} keyframe has an empty visualPrompt")

        for cid in shot.characters:
            if cid not in character_ids:
                errors.append(f"{where} references unknown character {cid!r}")
        for pid in shot.props:
            if pid not in prop_ids:
                errors.append(f"{where} references unknown prop {pid!r}")

        qa = shot.quality_assessment
        if qa is not None:
            if not 0 <= qa.score <= 100:
                errors.append(f"{where} quality score {qa.score} outside [0, 100]")
            elif qa.grade != grade_for_score(qa.score):
                errors.append(f"{where} grade {qa.grade!r} does not match score {qa.score}")

    return errors
