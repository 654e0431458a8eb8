"""ScriptData and Shot data models: the data contracts of the shot planner.

Attribute names are snake_case; JSON field names are camelCase (``sceneId``,
``actionSummary``, ``visualPrompt``) so that projects exported by the
storyboard app load unchanged.  extra="ignore" on all models gives forward
compatibility: unknown fields are silently dropped rather than rejected.
"""
from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_MODEL_CONFIG = ConfigDict(
    extra="ignore",
    populate_by_name=True,
    alias_generator=to_camel,
    coerce_numbers_to_str=True,
)

KeyframeType = Literal["start", "end"]
KeyframeStatus = Literal["pending", "generating", "completed", "failed"]
Grade = Literal["pass", "warning", "fail"]


# ── Script models ─────────────────────────────────────────────────────────────


class Scene(BaseModel):
    """A script scene.  location/time/atmosphere feed the reuse signature."""

    model_config = _MODEL_CONFIG

    id: str
    location: str = ""
    time: str = ""
    atmosphere: str = ""


class StoryParagraph(BaseModel):
    """A narrative paragraph, optionally mapped to a scene."""

    model_config = _MODEL_CONFIG

    id: str = ""
    text: str = ""
    scene_ref_id: Optional[str] = None


class Character(BaseModel):
    model_config = _MODEL_CONFIG

    id: str
    name: str = ""
    personality: str = ""
    visual_prompt: str = ""


class Prop(BaseModel):
    model_config = _MODEL_CONFIG

    id: str
    name: str = ""
    category: str = ""
    description: str = ""


class ColorPalette(BaseModel):
    model_config = _MODEL_CONFIG

    primary: str = ""
    secondary: str = ""
    accent: str = ""
    temperature: str = ""
    saturation: str = ""


class CharacterDesignRules(BaseModel):
    model_config = _MODEL_CONFIG

    proportions: str = ""
    line_weight: str = ""
    detail_level: str = ""


class ArtDirection(BaseModel):
    """Global visual-consistency rules.

    consistency_anchors is the art-direction seed: it is included in every
    shot prompt and participates in the reuse signature.
    """

    model_config = _MODEL_CONFIG

    consistency_anchors: str = ""
    color_palette: ColorPalette = Field(default_factory=ColorPalette)
    lighting_style: str = ""
    texture_style: str = ""
    mood_keywords: List[str] = []
    character_design_rules: CharacterDesignRules = Field(default_factory=CharacterDesignRules)


class ScriptData(BaseModel):
    """Structured script: the planner's only input besides the options.

    planning_shot_duration is pinned by the budgeter the first time a plan is
    computed so later changes to the video model's default clip length do not
    change an in-flight plan's arithmetic.
    """

    model_config = _MODEL_CONFIG

    title: str = ""
    genre: str = ""
    scenes: List[Scene] = []
    characters: List[Character] = []
    props: List[Prop] = []
    story_paragraphs: List[StoryParagraph] = []
    target_duration: Union[str, float] = "60s"
    visual_style: str = "3d-animation"
    language: str = "中文"
    planning_shot_duration: Optional[float] = None
    art_direction: Optional[ArtDirection] = None
    shot_generation_model: Optional[str] = None

    @property
    def art_direction_seed(self) -> str:
        return self.art_direction.consistency_anchors if self.art_direction else ""


# ── Shot models ───────────────────────────────────────────────────────────────


class Keyframe(BaseModel):
    """A start or end frame of a shot.  The planner only ever sets "pending"."""

    model_config = _MODEL_CONFIG

    id: str
    type: KeyframeType
    visual_prompt: str
    status: KeyframeStatus = "pending"


class QualityCheck(BaseModel):
    model_config = _MODEL_CONFIG

    key: str
    label: str
    score: int
    weight: int
    passed: bool
    details: str = ""


class ShotQualityAssessment(BaseModel):
    """Weighted rubric result attached to a planned shot."""

    model_config = _MODEL_CONFIG

    version: int = 1
    score: int
    grade: Grade
    generated_at: str  # ISO 8601
    checks: List[QualityCheck] = []
    summary: str = ""


class Shot(BaseModel):
    """A single planned shot.

    After normalization keyframes always holds exactly one "start" and one
    "end" entry, and characters/props only hold ids present in the script's
    catalogs.
    """

    model_config = _MODEL_CONFIG

    id: str
    scene_id: str
    action_summary: str = ""
    dialogue: str = ""
    camera_movement: str = ""
    shot_size: str = ""
    characters: List[str] = []
    props: List[str] = []
    keyframes: List[Keyframe] = []
    quality_assessment: Optional[ShotQualityAssessment] = None


class ShotPlan(BaseModel):
    """Serialized planning result: the shot list plus the baseline it was planned with."""

    model_config = _MODEL_CONFIG

    schema_version: str = "1.0.0"
    title: str = ""
    model: str = ""
    visual_style: str = ""
    planning_shot_duration: Optional[float] = None
    generated_at: str = "1970-01-01T00:00:00Z"  # ISO 8601
    shots: List[Shot] = []
