"""Shot normalization.

normalize_shot() turns a candidate (a collaborator dict, a reused Shot, or a
filler) into a Shot that satisfies the structural invariants:

    keyframes   exactly [start, end], both with a non-empty visual_prompt
    characters  only ids from the current character catalog, de-duplicated
    props       only ids from the current prop catalog, de-duplicated

Unknown ids are dropped silently.  Pure functions.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Set, Union

from storyboard_engine.planning.models import Keyframe, Shot

_KEYFRAME_STATUSES = frozenset({"pending", "generating", "completed", "failed"})
_STAGE_LABEL = {"start": "起始", "end": "结束"}

DEFAULT_ACTION = "镜头"


def _get(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def fallback_visual_prompt(action_summary: str, frame_type: str, visual_style: str) -> str:
    return f"{action_summary}，{_STAGE_LABEL[frame_type]}状态，{visual_style}风格"


def sanitize_ids(ids: Any, valid_ids: Set[str]) -> List[str]:
    """Stringify, keep only ids in *valid_ids*, drop duplicates (order kept)."""
    if not isinstance(ids, (list, tuple)):
        return []
    result: List[str] = []
    for raw in ids:
        value = str(raw)
        if value in valid_ids and value not in result:
            result.append(value)
    return result


def _as_dict(item: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(item, Keyframe):
        return item.model_dump(by_alias=True)
    if isinstance(item, Mapping):
        return item
    return None


def normalize_keyframes(
    keyframes: Any,
    action_summary: str,
    shot_index: int,
    visual_style: str,
) -> List[Keyframe]:
    """Return exactly [start, end], filling ids, prompts and status as needed."""
    frames: List[Mapping[str, Any]] = []
    if isinstance(keyframes, (list, tuple)):
        frames = [f for f in map(_as_dict, keyframes) if f is not None]
    action = action_summary.strip() or DEFAULT_ACTION

    result: List[Keyframe] = []
    for frame_type in ("start", "end"):
        found = next((f for f in frames if f.get("type") == frame_type), None) or {}
        prompt = _text(_get(found, "visualPrompt", "visual_prompt")).strip()
        status = _text(found.get("status"))
        result.append(
            Keyframe(
                id=_text(found.get("id")) or f"kf-{shot_index + 1}-{frame_type}",
                type=frame_type,
                visual_prompt=prompt or fallback_visual_prompt(action, frame_type, visual_style),
                status=status if status in _KEYFRAME_STATUSES else "pending",
            )
        )
    return result


def normalize_shot(
    raw: Union[Shot, Mapping[str, Any]],
    *,
    shot_index: int,
    visual_style: str,
    valid_character_ids: Set[str],
    valid_prop_ids: Set[str],
    scene_id: Optional[str] = None,
    shot_id: Optional[str] = None,
) -> Shot:
    """Coerce *raw* into a Shot satisfying the keyframe and reference invariants.

    scene_id / shot_id override whatever the candidate carries.
    """
    assessment = None
    if isinstance(raw, Shot):
        assessment = raw.quality_assessment
        data: Mapping[str, Any] = raw.model_dump(by_alias=True, exclude={"quality_assessment"})
    else:
        data = raw

    action = _text(_get(data, "actionSummary", "action_summary")).strip()
    return Shot(
        id=shot_id or _text(data.get("id")) or f"shot-{shot_index + 1}",
        scene_id=scene_id if scene_id is not None else _text(_get(data, "sceneId", "scene_id")),
        action_summary=action,
        dialogue=_text(data.get("dialogue")),
        camera_movement=_text(_get(data, "cameraMovement", "camera_movement")).strip(),
        shot_size=_text(_get(data, "shotSize", "shot_size")).strip(),
        characters=sanitize_ids(data.get("characters"), valid_character_ids),
        props=sanitize_ids(data.get("props"), valid_prop_ids),
        keyframes=normalize_keyframes(data.get("keyframes"), action, shot_index, visual_style),
        quality_assessment=assessment,
    )


def normalize_shots(
    candidates: Iterable[Union[Shot, Mapping[str, Any]]],
    *,
    scene_id: str,
    visual_style: str,
    valid_character_ids: Set[str],
    valid_prop_ids: Set[str],
) -> List[Shot]:
    return [
        normalize_shot(
            candidate,
            shot_index=idx,
            visual_style=visual_style,
            valid_character_ids=valid_character_ids,
            valid_prop_ids=valid_prop_ids,
            scene_id=scene_id,
        )
        for idx, candidate in enumerate(candidates)
    ]
