"""Shot quality rubric.

Five weighted checks, each scored 0-100 and passed at >= 70:

    required-fields     30   action summary 45 / camera movement 30 / shot size 25
    keyframe-structure  25   start 30 / end 30 / prompt usability 20 + 20
    asset-reference     20   100 without references, else 82; -45 per invalid
                             character id, -30 per invalid prop id
    scene-variation     15   vs. the previous shot of the same scene
    prompt-richness     10   average prompt length, +8 for the style keyword

The shot score is the weighted average, clamped to [0, 100] and rounded half
up.  Grade: pass >= 80, warning >= 60, fail otherwise.  The rubric is an
ordered tuple of QualityRule strategies; the aggregation never looks at
individual rules.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Set, Tuple

from storyboard_engine.planning.duration import round_half_up
from storyboard_engine.planning.models import Grade, Keyframe, QualityCheck, Shot, ShotQualityAssessment
from storyboard_engine.planning.text_match import normalize_match_text

QUALITY_SCHEMA_VERSION = 1
PASS_THRESHOLD = 70
GRADE_PASS = 80
GRADE_WARNING = 60

# Deterministic default; callers that need a real timestamp pass generated_at.
DEFAULT_GENERATED_AT = "1970-01-01T00:00:00Z"


@dataclass(frozen=True)
class AssessmentInput:
    shot: Shot
    previous_shot_in_scene: Optional[Shot]
    valid_character_ids: Set[str]
    valid_prop_ids: Set[str]
    visual_style: str

    def frame(self, frame_type: str) -> Optional[Keyframe]:
        return next((k for k in self.shot.keyframes if k.type == frame_type), None)

    def prompt_length(self, frame_type: str) -> int:
        frame = self.frame(frame_type)
        return len(frame.visual_prompt.strip()) if frame else 0


ScoreFn = Callable[[AssessmentInput], Tuple[float, str]]


@dataclass(frozen=True)
class QualityRule:
    key: str
    label: str
    weight: int
    score_fn: ScoreFn


# ── Scoring helpers ───────────────────────────────────────────────────────────


def clamp_score(value: float, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, round_half_up(value)))


def pick_quality_check(key: str, label: str, score: float, weight: int, details: str) -> QualityCheck:
    stored = clamp_score(score)
    return QualityCheck(
        key=key,
        label=label,
        score=stored,
        weight=weight,
        passed=stored >= PASS_THRESHOLD,
        details=details,
    )


def weighted_score(checks: Sequence[QualityCheck]) -> int:
    total_weight = sum(check.weight for check in checks) or 1
    return clamp_score(sum(check.score * check.weight for check in checks) / total_weight)


def grade_for_score(score: int) -> Grade:
    if score >= GRADE_PASS:
        return "pass"
    if score >= GRADE_WARNING:
        return "warning"
    return "fail"


def _filled(value: str) -> str:
    return "present" if value.strip() else "missing"


def _prompt_points(length: int) -> int:
    if length >= 14:
        return 20
    return 10 if length > 0 else 0


# ── Rules ─────────────────────────────────────────────────────────────────────


def score_required_fields(ctx: AssessmentInput) -> Tuple[float, str]:
    shot = ctx.shot
    action_len = len(normalize_match_text(shot.action_summary))
    action = 45 if action_len >= 6 else 20 if action_len > 0 else 0
    camera = 30 if shot.camera_movement.strip() else 0
    size = 25 if shot.shot_size.strip() else 0
    details = "\n".join([
        "Rule: actionSummary 45 + cameraMovement 30 + shotSize 25",
        f"actionSummary: {_filled(shot.action_summary)} ({action_len} normalized chars)",
        f"cameraMovement: {_filled(shot.camera_movement)}",
        f"shotSize: {_filled(shot.shot_size)}",
    ])
    return action + camera + size, details


def score_keyframe_structure(ctx: AssessmentInput) -> Tuple[float, str]:
    has_start = ctx.frame("start") is not None
    has_end = ctx.frame("end") is not None
    start_len = ctx.prompt_length("start")
    end_len = ctx.prompt_length("end")
    score = (
        (30 if has_start else 0)
        + (30 if has_end else 0)
        + _prompt_points(start_len)
        + _prompt_points(end_len)
    )
    details = "\n".join([
        "Rule: start/end frame 30 each + start/end prompt usability 20 each",
        f"start frame: {'present' if has_start else 'missing'}, prompt length={start_len}",
        f"end frame: {'present' if has_end else 'missing'}, prompt length={end_len}",
    ])
    return score, details


def score_asset_reference(ctx: AssessmentInput) -> Tuple[float, str]:
    shot = ctx.shot
    invalid_characters = sum(1 for cid in shot.characters if cid not in ctx.valid_character_ids)
    invalid_props = sum(1 for pid in shot.props if pid not in ctx.valid_prop_ids)
    base = 100 if not (shot.characters or shot.props) else 82
    score = max(0, base - invalid_characters * 45 - invalid_props * 30)
    details = "\n".join([
        "Rule: base 100 without references, 82 with references; "
        "-45 per invalid character id, -30 per invalid prop id",
        f"character refs: {len(shot.characters)}, invalid={invalid_characters}",
        f"prop refs: {len(shot.props)}, invalid={invalid_props}",
    ])
    return score, details


def score_scene_variation(ctx: AssessmentInput) -> Tuple[float, str]:
    previous = ctx.previous_shot_in_scene
    if previous is None:
        return 88, "Rule: adjacent shots in a scene should vary action, camera and size\nfirst shot of scene: 88"

    shot = ctx.shot
    score = 100
    notes: List[str] = []
    action = normalize_match_text(shot.action_summary)
    if action and action == normalize_match_text(previous.action_summary):
        score -= 55
        notes.append("identical action -55")
    if normalize_match_text(shot.camera_movement) == normalize_match_text(previous.camera_movement):
        score -= 20
        notes.append("same camera movement -20")
    if normalize_match_text(shot.shot_size) == normalize_match_text(previous.shot_size):
        score -= 20
        notes.append("same shot size -20")
    details = "\n".join([
        "Rule: adjacent shots in a scene should vary action, camera and size",
        f"compared with previous shot: {', '.join(notes) or 'no repetition'}; score={score}",
    ])
    return score, details


def score_prompt_richness(ctx: AssessmentInput) -> Tuple[float, str]:
    start_len = ctx.prompt_length("start")
    end_len = ctx.prompt_length("end")
    average = (start_len + end_len) / 2
    if average >= 60:
        score = 100
    elif average >= 35:
        score = 82
    elif average >= 20:
        score = 65
    else:
        score = 35

    start = ctx.frame("start")
    end = ctx.frame("end")
    combined = f"{start.visual_prompt if start else ''} {end.visual_prompt if end else ''}".lower()
    style = ctx.visual_style.lower()
    style_hit = bool(style) and style in combined
    if style_hit:
        score = min(100, score + 8)

    if not style:
        style_note = "no style keyword provided"
    else:
        style_note = f'style keyword "{style}" {"found" if style_hit else "not found"}'
    details = "\n".join([
        "Rule: longer keyframe prompts score higher; style keyword adds 8",
        f"start length={start_len}, end length={end_len}, average={round_half_up(average)}",
        style_note,
    ])
    return score, details


QUALITY_RULES: Tuple[QualityRule, ...] = (
    QualityRule("required-fields", "Required Fields", 30, score_required_fields),
    QualityRule("keyframe-structure", "Keyframe Structure", 25, score_keyframe_structure),
    QualityRule("asset-reference", "Asset Reference", 20, score_asset_reference),
    QualityRule("scene-variation", "Scene Variation", 15, score_scene_variation),
    QualityRule("prompt-richness", "Prompt Richness", 10, score_prompt_richness),
)


# ── Assessment ────────────────────────────────────────────────────────────────


def summarize(checks: Sequence[QualityCheck], grade: Grade) -> str:
    failed = [check.label for check in checks if not check.passed]
    if not failed:
        return "Structure and consistency checks passed."
    prefix = "High risk" if grade == "fail" else "Needs attention"
    return f"{prefix}: {', '.join(failed)}"


def assess_shot(
    shot: Shot,
    *,
    valid_character_ids: Set[str],
    valid_prop_ids: Set[str],
    visual_style: str,
    previous_shot_in_scene: Optional[Shot] = None,
    generated_at: str = DEFAULT_GENERATED_AT,
    rules: Sequence[QualityRule] = QUALITY_RULES,
) -> ShotQualityAssessment:
    ctx = AssessmentInput(
        shot=shot,
        previous_shot_in_scene=previous_shot_in_scene,
        valid_character_ids=valid_character_ids,
        valid_prop_ids=valid_prop_ids,
        visual_style=visual_style,
    )
    checks = []
    for rule in rules:
        score, details = rule.score_fn(ctx)
        checks.append(pick_quality_check(rule.key, rule.label, score, rule.weight, details))

    score = weighted_score(checks)
    grade = grade_for_score(score)
    return ShotQualityAssessment(
        version=QUALITY_SCHEMA_VERSION,
        score=score,
        grade=grade,
        generated_at=generated_at,
        checks=checks,
        summary=summarize(checks, grade),
    )
