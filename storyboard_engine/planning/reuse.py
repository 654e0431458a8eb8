"""Content-addressed reuse of unchanged scenes across planning runs.

A scene's ReuseSignature hashes every input that influences its generated
shots: location/time/atmosphere, the resolved action text, the planned shot
count, visual style, language, model id and art-direction seed.  A scene of
the current run whose signature matches a scene of the previous run takes
that scene's shots instead of calling the collaborator.  There is no explicit
eviction: any changed input changes the hash and the lookup simply misses.

Signatures are never persisted; buckets live for one run only.
"""
from __future__ import annotations

from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Set, Union

from storyboard_engine.planning.models import Character, Prop, Scene, ScriptData, Shot
from storyboard_engine.planning.normalizer import normalize_shot
from storyboard_engine.planning.resolver import SceneActionResolver
from storyboard_engine.planning.text_match import hash_text, normalize_match_text

# Only this much normalized action text feeds the signature.
SIGNATURE_ACTION_CHARS = 1200


def build_reuse_signature(
    *,
    scene: Scene,
    action_text: str,
    shot_count: int,
    visual_style: str,
    language: str,
    model: str,
    art_direction_seed: str = "",
) -> str:
    normalized_scene = "|".join(
        normalize_match_text(value) for value in (scene.location, scene.time, scene.atmosphere)
    )
    normalized_action = normalize_match_text(action_text)[:SIGNATURE_ACTION_CHARS]
    payload = "::".join([
        normalized_scene,
        hash_text(normalized_action),
        str(shot_count),
        normalize_match_text(visual_style),
        normalize_match_text(language),
        normalize_match_text(model),
        hash_text(normalize_match_text(art_direction_seed or "")),
    ])
    return f"scene-{hash_text(payload)}"


# ── Asset id remapping ────────────────────────────────────────────────────────


def build_asset_id_remap(
    from_items: Sequence[Union[Character, Prop]],
    to_items: Sequence[Union[Character, Prop]],
) -> Dict[str, str]:
    """Map previous-run asset ids onto current ones.

    An id still present in *to_items* maps to itself; otherwise the asset is
    matched by normalized name (first current asset with that name wins).
    Assets with no match are absent from the mapping.
    """
    to_ids = {item.id for item in to_items}
    by_name: Dict[str, str] = {}
    for item in to_items:
        key = normalize_match_text(item.name)
        if key:
            by_name.setdefault(key, item.id)

    remap: Dict[str, str] = {}
    for item in from_items:
        if item.id in to_ids:
            remap[item.id] = item.id
            continue
        mapped = by_name.get(normalize_match_text(item.name))
        if mapped:
            remap[item.id] = mapped
    return remap


def remap_ids(ids: Iterable[str], remap: Dict[str, str], valid_ids: Set[str]) -> List[str]:
    result: List[str] = []
    for raw in ids:
        mapped = remap.get(str(raw), str(raw))
        if mapped in valid_ids and mapped not in result:
            result.append(mapped)
    return result


# ── Buckets ───────────────────────────────────────────────────────────────────


class ReuseBuckets:
    """Multimap signature → FIFO queue of shot groups.

    pop() hands out each queued group at most once, so two current scenes
    with the same signature never receive the same cached group.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[List[Shot]]] = defaultdict(deque)

    def add(self, signature: str, group: Sequence[Shot]) -> None:
        self._queues[signature].append([shot.model_copy(deep=True) for shot in group])

    def pop(self, signature: str) -> Optional[List[Shot]]:
        queue = self._queues.get(signature)
        if not queue:
            return None
        return queue.popleft()

    def pending(self, signature: str) -> int:
        queue = self._queues.get(signature)
        return len(queue) if queue else 0

    def __len__(self) -> int:
        return sum(1 for queue in self._queues.values() if queue)

    def __bool__(self) -> bool:
        return len(self) > 0


def build_reuse_buckets(
    previous_script: ScriptData,
    previous_shots: Sequence[Shot],
    *,
    visual_style: str,
    language: str,
    model: str,
    art_direction_seed: str = "",
) -> ReuseBuckets:
    """Index the previous run's shots by the signature of the scene they belong to.

    The previous script's own style/language/model/seed are used where set;
    the keyword arguments (the current run's values) fill the gaps.
    """
    grouped: Dict[str, List[Shot]] = defaultdict(list)
    for shot in previous_shots:
        grouped[shot.scene_id].append(shot)

    resolver = SceneActionResolver(previous_script)
    buckets = ReuseBuckets()
    for index, scene in enumerate(previous_script.scenes):
        group = grouped.get(scene.id)
        if not group:
            continue
        signature = build_reuse_signature(
            scene=scene,
            action_text=resolver.resolve(scene, index).text,
            shot_count=len(group),
            visual_style=previous_script.visual_style or visual_style,
            language=previous_script.language or language,
            model=previous_script.shot_generation_model or model,
            art_direction_seed=previous_script.art_direction_seed or art_direction_seed,
        )
        buckets.add(signature, group)
    return buckets


def adopt_reused_group(
    group: Sequence[Shot],
    *,
    scene_id: str,
    visual_style: str,
    character_remap: Dict[str, str],
    prop_remap: Dict[str, str],
    valid_character_ids: Set[str],
    valid_prop_ids: Set[str],
) -> List[Shot]:
    """Rebind a cached group to the current scene and catalogs, then normalize it."""
    adopted: List[Shot] = []
    for idx, shot in enumerate(group):
        remapped = shot.model_copy(update={
            "characters": remap_ids(shot.characters, character_remap, valid_character_ids),
            "props": remap_ids(shot.props, prop_remap, valid_prop_ids),
        })
        adopted.append(
            normalize_shot(
                remapped,
                shot_index=idx,
                visual_style=visual_style,
                valid_character_ids=valid_character_ids,
                valid_prop_ids=valid_prop_ids,
                scene_id=scene_id,
            )
        )
    return adopted
