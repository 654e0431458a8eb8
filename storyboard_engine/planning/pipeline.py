"""Shot planning pipeline: ScriptData → exact-count, graded List[Shot].

Public entry point
------------------
    await plan_shots(script, completer, options=..., generated_at=...) -> List[Shot]

Flow
----
    budget → per scene, in script order:
        resolve action text → reuse lookup (hit: remap ids) | generate
    → flatten + re-index (shot-1, shot-2, ...) → quality/repair loop

Scenes are processed strictly one at a time with a fixed delay between them.
Every suspension point races against the caller's CancellationToken; a
cancellation aborts the whole run with PlanningCancelled, while any other
per-scene failure degrades to filler shots.

Side effects on *script*: planning_shot_duration and shot_generation_model
are pinned to the values this run used, so the script can serve as the
previous-run input of a later reuse run.
"""
from __future__ import annotations

import logging
import time
from typing import List, Optional, Protocol, Sequence

from storyboard_engine.planning.budget import plan_budget
from storyboard_engine.planning.cancellation import CancellationToken, cancellable_sleep, ensure_not_cancelled
from storyboard_engine.planning.completion import TextCompleter
from storyboard_engine.planning.errors import ShotPlanningError
from storyboard_engine.planning.generator import ShotCandidateGenerator
from storyboard_engine.planning.models import ScriptData, Shot
from storyboard_engine.planning.normalizer import normalize_keyframes, sanitize_ids
from storyboard_engine.planning.options import PlanningOptions
from storyboard_engine.planning.prompts import ScenePromptContext
from storyboard_engine.planning.quality import DEFAULT_GENERATED_AT
from storyboard_engine.planning.repair import apply_quality_pipeline
from storyboard_engine.planning.resolver import SceneActionResolver
from storyboard_engine.planning.reuse import (
    ReuseBuckets,
    adopt_reused_group,
    build_asset_id_remap,
    build_reuse_buckets,
    build_reuse_signature,
)

logger = logging.getLogger(__name__)


# ── Progress reporting ────────────────────────────────────────────────────────


class ProgressObserver(Protocol):
    def report(self, message: str) -> None:
        ...


class LoggingProgressObserver:
    """Default observer: progress messages go to this module's logger at INFO."""

    def report(self, message: str) -> None:
        logger.info(message)


# ── Public API ────────────────────────────────────────────────────────────────


async def plan_shots(
    script: ScriptData,
    completer: TextCompleter,
    *,
    options: Optional[PlanningOptions] = None,
    previous_script: Optional[ScriptData] = None,
    previous_shots: Optional[Sequence[Shot]] = None,
    cancel_token: Optional[CancellationToken] = None,
    observer: Optional[ProgressObserver] = None,
    generated_at: str = DEFAULT_GENERATED_AT,
) -> List[Shot]:
    """Plan the complete shot list for *script*.

    Args:
        script:          The script to plan; must contain at least one scene.
        completer:       Text-completion collaborator used for scenes that are
                         not reused.
        options:         Run configuration; defaults to PlanningOptions().
        previous_script: Script of an earlier run, used for scene reuse.
        previous_shots:  Shots of that earlier run.
        cancel_token:    Shared cancellation signal.
        observer:        Receives human-readable progress messages.
        generated_at:    ISO 8601 timestamp stamped on every quality
                         assessment.  The pipeline never reads the clock for it.

    Returns:
        Shots whose per-scene counts equal the budget, ids shot-1..shot-N.

    Raises:
        PlanningCancelled: *cancel_token* fired.
        ShotPlanningError: the script has no scenes, or no shots were produced.
    """
    options = options or PlanningOptions()
    observer = observer or LoggingProgressObserver()

    if not script.scenes:
        raise ShotPlanningError("Shot planning failed: the script has no scenes")

    started = time.monotonic()
    observer.report(
        f"Generating shot list (model {options.model}, style {script.visual_style})..."
    )
    budget = plan_budget(script, options.default_shot_duration)
    script.shot_generation_model = options.model
    logger.debug(
        "Budget: target=%ss shot=%ss total=%d per_scene=%s",
        budget.target_seconds, budget.shot_duration_sec, budget.total_shots, budget.per_scene,
    )

    valid_character_ids = {c.id for c in script.characters}
    valid_prop_ids = {p.id for p in script.props}

    buckets = ReuseBuckets()
    if options.reuse_unchanged_scenes and previous_script is not None and previous_shots:
        buckets = build_reuse_buckets(
            previous_script,
            previous_shots,
            visual_style=script.visual_style,
            language=script.language,
            model=options.model,
            art_direction_seed=script.art_direction_seed,
        )
        if buckets:
            observer.report(
                f"Found {len(buckets)} reusable scene signatures; unchanged scenes will be reused"
            )
    character_remap = build_asset_id_remap(
        previous_script.characters if previous_script else [], script.characters
    )
    prop_remap = build_asset_id_remap(previous_script.props if previous_script else [], script.props)

    resolver = SceneActionResolver(script)
    generator = ShotCandidateGenerator(
        completer,
        options,
        valid_character_ids=valid_character_ids,
        valid_prop_ids=valid_prop_ids,
        cancel_token=cancel_token,
    )

    all_shots: List[Shot] = []
    for index, scene in enumerate(script.scenes):
        ensure_not_cancelled(cancel_token)
        if index > 0:
            await cancellable_sleep(options.scene_delay_sec, cancel_token)

        shots_for_scene = budget.per_scene[index]
        action = resolver.resolve(scene, index)

        if buckets:
            signature = build_reuse_signature(
                scene=scene,
                action_text=action.text,
                shot_count=shots_for_scene,
                visual_style=script.visual_style,
                language=script.language,
                model=options.model,
                art_direction_seed=script.art_direction_seed,
            )
            group = buckets.pop(signature)
            if group is not None:
                all_shots.extend(
                    adopt_reused_group(
                        group,
                        scene_id=scene.id,
                        visual_style=script.visual_style,
                        character_remap=character_remap,
                        prop_remap=prop_remap,
                        valid_character_ids=valid_character_ids,
                        valid_prop_ids=valid_prop_ids,
                    )
                )
                observer.report(
                    f"Scene '{scene.location}' unchanged; reused {len(group)} shots without generation"
                )
                continue

        if action.source not in ("direct", "none"):
            observer.report(
                f"Scene '{scene.location}' has no mapped paragraphs; using {action.source} fallback text"
            )

        ctx = ScenePromptContext(
            script=script,
            scene=scene,
            scene_index=index,
            action_text=action.text,
            action_source=action.source,
            shots_for_scene=shots_for_scene,
            total_shots=budget.total_shots,
            target_seconds=budget.target_seconds,
            shot_duration_sec=budget.shot_duration_sec,
        )
        all_shots.extend(await generator.generate(ctx))

    if not all_shots:
        raise ShotPlanningError("Shot planning failed: no shots were produced for any scene")

    shots = _reindex(all_shots, script.visual_style, valid_character_ids, valid_prop_ids)

    if options.enable_quality_check:
        shots = apply_quality_pipeline(
            shots,
            valid_character_ids=valid_character_ids,
            valid_prop_ids=valid_prop_ids,
            visual_style=script.visual_style,
            generated_at=generated_at,
        )
    else:
        shots = [shot.model_copy(update={"quality_assessment": None}) for shot in shots]
        observer.report("Quality check disabled; skipping scoring and repair")

    observer.report(
        f"Shot list complete: {len(shots)} shots in {round(time.monotonic() - started)}s"
    )
    return shots


# ── Internal helpers ──────────────────────────────────────────────────────────


def _reindex(
    shots: Sequence[Shot],
    visual_style: str,
    valid_character_ids: set,
    valid_prop_ids: set,
) -> List[Shot]:
    """Assign shot-1..shot-N and re-apply the reference and keyframe invariants."""
    return [
        shot.model_copy(update={
            "id": f"shot-{idx + 1}",
            "characters": sanitize_ids(shot.characters, valid_character_ids),
            "props": sanitize_ids(shot.props, valid_prop_ids),
            "keyframes": normalize_keyframes(shot.keyframes, shot.action_summary, idx, visual_style),
        })
        for idx, shot in enumerate(shots)
    ]
