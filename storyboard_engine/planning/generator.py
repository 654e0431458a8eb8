"""Shot candidate generation under an exact-count contract.

For every scene the generator asks the text-completion collaborator for
exactly N shots.  A wrong count triggers one repair request; afterwards the
result is truncated (keep earliest) or padded with filler shots seeded from
the last real shot.  Any failure other than cancellation turns the whole
scene into filler shots, so every scene yields exactly its budget.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, List, Mapping, Optional, Set

from storyboard_engine.planning.cancellation import CancellationToken, race_cancellation
from storyboard_engine.planning.completion import TextCompleter, clean_json_string, retry_operation
from storyboard_engine.planning.errors import PlanningCancelled
from storyboard_engine.planning.models import Keyframe, Scene, Shot
from storyboard_engine.planning.normalizer import fallback_visual_prompt, normalize_shots, sanitize_ids
from storyboard_engine.planning.options import PlanningOptions
from storyboard_engine.planning.prompts import (
    DEFAULT_CAMERA_MOVEMENT,
    DEFAULT_SHOT_SIZE,
    ScenePromptContext,
    build_count_repair_prompt,
    build_scene_prompt,
)

logger = logging.getLogger(__name__)

# Scene text used as a filler action is cut to this many characters.
FALLBACK_SUMMARY_CHARS = 220


def parse_shots_payload(text: Optional[str]) -> List[Mapping[str, Any]]:
    """Extract the candidate list from a collaborator response.

    A top-level array is taken as the list itself; an object contributes its
    "shots" array; any other shape is zero candidates.  Non-object entries
    count as empty candidates.  Raises ValueError on malformed JSON.
    """
    parsed = json.loads(clean_json_string(text))
    if isinstance(parsed, list):
        items = parsed
    elif isinstance(parsed, dict) and isinstance(parsed.get("shots"), list):
        items = parsed["shots"]
    else:
        items = []
    return [item if isinstance(item, Mapping) else {} for item in items]


def create_fallback_shots(
    scene: Scene,
    count: int,
    scene_text: str,
    *,
    visual_style: str,
    valid_character_ids: Set[str],
    valid_prop_ids: Set[str],
    seed: Optional[Shot] = None,
) -> List[Shot]:
    """Synthesize *count* filler shots for *scene*.

    With a seed, fillers copy its camera, shot size, characters and props and
    suffix its action; without one they are built from scene metadata only.
    """
    if count <= 0:
        return []

    summary = " ".join(scene_text.split())[:FALLBACK_SUMMARY_CHARS]
    base_action = ((seed.action_summary if seed else "") or summary or f"{scene.location}场景推进").strip()
    movement = (seed.camera_movement if seed else "").strip() or DEFAULT_CAMERA_MOVEMENT
    shot_size = (seed.shot_size if seed else "").strip() or DEFAULT_SHOT_SIZE
    characters = sanitize_ids(seed.characters, valid_character_ids) if seed else []
    props = sanitize_ids(seed.props, valid_prop_ids) if seed else []

    shots: List[Shot] = []
    for sequence in range(1, count + 1):
        action = f"{base_action}（补足镜头 {sequence}）"
        shots.append(
            Shot(
                id=f"fallback-{scene.id}-{sequence}",
                scene_id=scene.id,
                action_summary=action,
                camera_movement=movement,
                shot_size=shot_size,
                characters=list(characters),
                props=list(props),
                keyframes=[
                    Keyframe(
                        id=f"fallback-kf-{scene.id}-{sequence}-{frame_type}",
                        type=frame_type,
                        visual_prompt=fallback_visual_prompt(action, frame_type, visual_style),
                    )
                    for frame_type in ("start", "end")
                ],
            )
        )
    return shots


class ShotCandidateGenerator:
    """Produces exactly ctx.shots_for_scene normalized shots per scene."""

    def __init__(
        self,
        completer: TextCompleter,
        options: PlanningOptions,
        *,
        valid_character_ids: Set[str],
        valid_prop_ids: Set[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.completer = completer
        self.options = options
        self.valid_character_ids = valid_character_ids
        self.valid_prop_ids = valid_prop_ids
        self.cancel_token = cancel_token
        self._last_response = ""

    async def generate(self, ctx: ScenePromptContext) -> List[Shot]:
        scene = ctx.scene
        if not ctx.action_text.strip():
            logger.warning(
                "Scene %d has no usable paragraphs; filling %d fallback shots",
                ctx.scene_index + 1, ctx.shots_for_scene,
            )
            return self._fallback(ctx, f"{scene.location} {scene.time} {scene.atmosphere}".strip())

        started = time.monotonic()
        self._last_response = ""
        try:
            shots = await self._generate(ctx)
        except PlanningCancelled:
            raise
        except Exception as exc:
            logger.error(
                "Failed to generate shots for scene %s (index %d): %s; response snippet: %r",
                scene.id, ctx.scene_index, exc, self._last_response[:500],
            )
            return self._fallback(ctx, ctx.action_text)

        logger.info(
            "Scene %d (%s): %d shots generated in %.1fs",
            ctx.scene_index + 1, scene.location, len(shots), time.monotonic() - started,
        )
        return shots

    async def _complete(self, prompt: str, temperature: float, attempts: int) -> str:
        opts = self.options
        return await retry_operation(
            lambda: race_cancellation(
                self.completer.complete(
                    prompt,
                    opts.model,
                    temperature=temperature,
                    max_tokens=opts.max_tokens,
                    response_format="json_object",
                    timeout_sec=opts.request_timeout_sec,
                    cancel_token=self.cancel_token,
                ),
                self.cancel_token,
            ),
            max_attempts=attempts,
            base_delay_sec=opts.retry_base_delay_sec,
            cancel_token=self.cancel_token,
        )

    async def _generate(self, ctx: ScenePromptContext) -> List[Shot]:
        planned = ctx.shots_for_scene
        self._last_response = await self._complete(
            build_scene_prompt(ctx), self.options.temperature, self.options.max_attempts
        )
        candidates = parse_shots_payload(self._last_response)

        if len(candidates) != planned:
            logger.warning(
                "Scene %d returned %d shots, expected %d; requesting a corrected list",
                ctx.scene_index + 1, len(candidates), planned,
            )
            candidates = await self._repair_count(ctx, candidates)

        candidates = list(candidates[:planned])
        shots = normalize_shots(
            candidates,
            scene_id=ctx.scene.id,
            visual_style=ctx.script.visual_style,
            valid_character_ids=self.valid_character_ids,
            valid_prop_ids=self.valid_prop_ids,
        )
        missing = planned - len(shots)
        if missing > 0:
            seed = shots[-1] if shots else None
            shots.extend(self._fallback(ctx, ctx.action_text, count=missing, seed=seed))
            logger.warning(
                "Scene %d short by %d shots; padded with fallback shots", ctx.scene_index + 1, missing
            )
        return shots

    async def _repair_count(
        self, ctx: ScenePromptContext, candidates: List[Mapping[str, Any]]
    ) -> List[Mapping[str, Any]]:
        """One corrective round-trip; keeps *candidates* unless the repair yields ≥ 1 shot."""
        try:
            text = await self._complete(
                build_count_repair_prompt(ctx, len(candidates)),
                self.options.repair_temperature,
                self.options.repair_max_attempts,
            )
            repaired = parse_shots_payload(text)
        except PlanningCancelled:
            raise
        except Exception as exc:
            logger.warning("Shot count repair failed for scene %d: %s", ctx.scene_index + 1, exc)
            return candidates
        return repaired if repaired else candidates

    def _fallback(
        self,
        ctx: ScenePromptContext,
        scene_text: str,
        *,
        count: Optional[int] = None,
        seed: Optional[Shot] = None,
    ) -> List[Shot]:
        return create_fallback_shots(
            ctx.scene,
            ctx.shots_for_scene if count is None else count,
            scene_text,
            visual_style=ctx.script.visual_style,
            valid_character_ids=self.valid_character_ids,
            valid_prop_ids=self.valid_prop_ids,
            seed=seed,
        )
