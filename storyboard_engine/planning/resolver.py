"""Scene-action resolution: which narrative text drives each scene's shots.

Tiers, tried in order:

    direct    paragraphs whose scene_ref_id is the scene id
    semantic  up to 3 paragraphs scoring >= SEMANTIC_THRESHOLD against the
              scene's location/time/atmosphere
    neighbor  last 2 direct paragraphs of the nearest preceding mapped scene
              and/or first 2 of the nearest following one
    global    first 2 paragraphs of the story
    none      empty text; the caller synthesizes fallback shots

The tier is reported for logging only.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Literal

from storyboard_engine.planning.models import Scene, ScriptData
from storyboard_engine.planning.text_match import tokenize_for_match

ActionSource = Literal["direct", "semantic", "neighbor", "global", "none"]

# Empirical matching constants; tunable, not derived.
SEMANTIC_THRESHOLD: float = 0.18
LOCATION_BONUS: float = 0.3
TIME_BONUS: float = 0.15
MAX_SEMANTIC_PARAGRAPHS: int = 3
NEIGHBOR_PARAGRAPHS: int = 2
GLOBAL_PARAGRAPHS: int = 2


@dataclass(frozen=True)
class SceneAction:
    text: str
    source: ActionSource


def paragraph_scene_score(paragraph_text: str, scene: Scene) -> float:
    """Token-overlap ratio of the scene query found in the paragraph, plus literal bonuses."""
    scene_query = f"{scene.location} {scene.time} {scene.atmosphere}".strip()
    scene_tokens = tokenize_for_match(scene_query)
    para_tokens = set(tokenize_for_match(paragraph_text))
    if not scene_tokens or not para_tokens:
        return 0.0

    overlap = sum(1 for token in scene_tokens if token in para_tokens)
    score = overlap / max(1, len(scene_tokens))
    if scene.location and scene.location in paragraph_text:
        score += LOCATION_BONUS
    if scene.time and scene.time in paragraph_text:
        score += TIME_BONUS
    return score


class SceneActionResolver:
    """Resolves scenes of one ScriptData; build once per run."""

    def __init__(self, script: ScriptData) -> None:
        self._scene_order: List[str] = [scene.id for scene in script.scenes]
        self._direct: Dict[str, List[str]] = {}
        self._all: List[str] = []
        for paragraph in script.story_paragraphs:
            text = paragraph.text.strip()
            if not text:
                continue
            self._all.append(text)
            self._direct.setdefault(paragraph.scene_ref_id or "", []).append(text)

    def direct_paragraphs(self, scene_id: str) -> List[str]:
        return list(self._direct.get(scene_id, []))

    def resolve(self, scene: Scene, scene_index: int) -> SceneAction:
        direct = self._direct.get(scene.id)
        if direct:
            return SceneAction("\n".join(direct), "direct")

        if not self._all:
            return SceneAction("", "none")

        scored = [(text, paragraph_scene_score(text, scene)) for text in self._all]
        semantic = sorted(
            (entry for entry in scored if entry[1] >= SEMANTIC_THRESHOLD),
            key=lambda entry: entry[1],
            reverse=True,
        )[:MAX_SEMANTIC_PARAGRAPHS]
        if semantic:
            return SceneAction("\n".join(text for text, _ in semantic), "semantic")

        neighbor = self._neighbor_texts(scene_index)
        if neighbor:
            return SceneAction("\n".join(neighbor), "neighbor")

        return SceneAction("\n".join(self._all[:GLOBAL_PARAGRAPHS]), "global")

    def _neighbor_texts(self, scene_index: int) -> List[str]:
        texts: List[str] = []
        for i in range(scene_index - 1, -1, -1):
            previous = self._direct.get(self._scene_order[i])
            if previous:
                texts.append("\n".join(previous[-NEIGHBOR_PARAGRAPHS:]))
                break
        for i in range(scene_index + 1, len(self._scene_order)):
            following = self._direct.get(self._scene_order[i])
            if following:
                texts.append("\n".join(following[:NEIGHBOR_PARAGRAPHS]))
                break
        return texts
