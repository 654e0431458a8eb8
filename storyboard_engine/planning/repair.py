"""Deterministic shot repair and the assess → repair → reassess loop.

Per shot (in plan order):

    1. repair (non-forced): fill blanks, de-duplicate the action within the
       scene, re-filter asset ids, rewrite prompts shorter than 12 chars
    2. assess against the previous final shot of the same scene
    3. if grade is fail, or required-fields / keyframe-structure failed:
       repair again with both prompts force-rewritten, then reassess once

The second assessment is final and is attached even when it still fails.
"""
from __future__ import annotations

import logging
from typing import AbstractSet, Dict, List, Optional, Sequence, Set

from storyboard_engine.planning.models import Shot, ShotQualityAssessment
from storyboard_engine.planning.normalizer import normalize_keyframes, sanitize_ids
from storyboard_engine.planning.prompts import DEFAULT_CAMERA_MOVEMENT, DEFAULT_SHOT_SIZE
from storyboard_engine.planning.quality import DEFAULT_GENERATED_AT, assess_shot
from storyboard_engine.planning.text_match import normalize_match_text

logger = logging.getLogger(__name__)

MIN_PROMPT_CHARS = 12

_GATING_CHECKS = ("required-fields", "keyframe-structure")


def repaired_start_prompt(action_summary: str, visual_style: str) -> str:
    return f"{action_summary}，起始构图，主体清晰，{visual_style}风格，光影明确"


def repaired_end_prompt(action_summary: str, visual_style: str) -> str:
    return f"{action_summary}，结束构图，动作收束，{visual_style}风格，镜头节奏完整"


def repair_shot(
    shot: Shot,
    *,
    shot_index: int,
    visual_style: str,
    used_action_keys: AbstractSet[str],
    valid_character_ids: Set[str],
    valid_prop_ids: Set[str],
    force_prompt_rewrite: bool = False,
) -> Shot:
    """Return a patched copy of *shot*.

    *used_action_keys* holds the normalized actions already taken by earlier
    shots of the same scene; it is read, never modified.
    """
    action = shot.action_summary.strip() or f"镜头 {shot_index + 1} 推进"
    key = normalize_match_text(action)
    if key and key in used_action_keys:
        action = f"{action}（镜头{shot_index + 1}）"

    keyframes = normalize_keyframes(shot.keyframes, action, shot_index, visual_style)
    start, end = keyframes
    if force_prompt_rewrite or len(start.visual_prompt.strip()) < MIN_PROMPT_CHARS:
        start.visual_prompt = repaired_start_prompt(action, visual_style)
    if force_prompt_rewrite or len(end.visual_prompt.strip()) < MIN_PROMPT_CHARS:
        end.visual_prompt = repaired_end_prompt(action, visual_style)

    return shot.model_copy(update={
        "action_summary": action,
        "camera_movement": shot.camera_movement.strip() or DEFAULT_CAMERA_MOVEMENT,
        "shot_size": shot.shot_size.strip() or DEFAULT_SHOT_SIZE,
        "characters": sanitize_ids(shot.characters, valid_character_ids),
        "props": sanitize_ids(shot.props, valid_prop_ids),
        "keyframes": keyframes,
    })


def needs_forced_repair(assessment: ShotQualityAssessment) -> bool:
    if assessment.grade == "fail":
        return True
    return any(not check.passed for check in assessment.checks if check.key in _GATING_CHECKS)


def apply_quality_pipeline(
    shots: Sequence[Shot],
    *,
    valid_character_ids: Set[str],
    valid_prop_ids: Set[str],
    visual_style: str,
    generated_at: str = DEFAULT_GENERATED_AT,
) -> List[Shot]:
    """Repair and grade every shot; returns new Shots with quality_assessment set."""
    previous_by_scene: Dict[str, Shot] = {}
    used_by_scene: Dict[str, Set[str]] = {}
    result: List[Shot] = []

    for index, shot in enumerate(shots):
        used = used_by_scene.setdefault(shot.scene_id, set())
        previous: Optional[Shot] = previous_by_scene.get(shot.scene_id)

        def _repair(target: Shot, force: bool) -> Shot:
            return repair_shot(
                target,
                shot_index=index,
                visual_style=visual_style,
                used_action_keys=used,
                valid_character_ids=valid_character_ids,
                valid_prop_ids=valid_prop_ids,
                force_prompt_rewrite=force,
            )

        def _assess(target: Shot) -> ShotQualityAssessment:
            return assess_shot(
                target,
                valid_character_ids=valid_character_ids,
                valid_prop_ids=valid_prop_ids,
                visual_style=visual_style,
                previous_shot_in_scene=previous,
                generated_at=generated_at,
            )

        candidate = _repair(shot, False)
        assessment = _assess(candidate)
        if needs_forced_repair(assessment):
            logger.debug("Shot %d (%s) graded %s; forcing prompt rewrite", index + 1, shot.id, assessment.grade)
            candidate = _repair(candidate, True)
            assessment = _assess(candidate)

        final = candidate.model_copy(update={"quality_assessment": assessment})
        used.add(normalize_match_text(final.action_summary))
        previous_by_scene[shot.scene_id] = final
        result.append(final)

    warnings = sum(1 for shot in result if shot.quality_assessment.grade == "warning")
    fails = sum(1 for shot in result if shot.quality_assessment.grade == "fail")
    logger.info("Quality check finished: %d shots (warning %d, fail %d)", len(result), warnings, fails)
    return result
