"""Prompt library for shot generation.

Static tables (visual-style descriptions, the camera movement reference) and
pure builders for the per-scene generation prompt and the count-repair
prompt.  No external state; no randomness.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from storyboard_engine.planning.models import ArtDirection, Scene, ScriptData

DEFAULT_CAMERA_MOVEMENT = "Static Shot"
DEFAULT_SHOT_SIZE = "Medium Shot"

# Scene action text beyond this many characters is not sent to the model.
MAX_ACTION_CHARS = 5000


@dataclass(frozen=True)
class CameraMovement:
    name: str
    label_cn: str
    description: str


CAMERA_MOVEMENTS: Tuple[CameraMovement, ...] = (
    CameraMovement("Horizontal Left Shot", "向左平移", "Camera moves left"),
    CameraMovement("Horizontal Right Shot", "向右平移", "Camera moves right"),
    CameraMovement("Pan Left Shot", "平行向左扫视", "Pan left"),
    CameraMovement("Pan Right Shot", "平行向右扫视", "Pan right"),
    CameraMovement("Vertical Up Shot", "向上直线运动", "Move up vertically"),
    CameraMovement("Vertical Down Shot", "向下直线运动", "Move down vertically"),
    CameraMovement("Tilt Up Shot", "向上仰角运动", "Tilt upward"),
    CameraMovement("Tilt Down Shot", "向下俯角运动", "Tilt downward"),
    CameraMovement("Zoom Out Shot", "镜头缩小/拉远", "Pull back/zoom out"),
    CameraMovement("Zoom In Shot", "镜头放大/拉近", "Push in/zoom in"),
    CameraMovement("Dolly Shot", "推镜头", "Dolly in/out movement"),
    CameraMovement("Circular Shot", "环绕拍摄", "Orbit around subject"),
    CameraMovement("Over the Shoulder Shot", "越肩镜头", "Over shoulder perspective"),
    CameraMovement("Pan Shot", "摇镜头", "Pan movement"),
    CameraMovement("Low Angle Shot", "仰视镜头", "Low angle view"),
    CameraMovement("High Angle Shot", "俯视镜头", "High angle view"),
    CameraMovement("Tracking Shot", "跟踪镜头", "Follow subject"),
    CameraMovement("Handheld Shot", "摇摄镜头", "Handheld camera"),
    CameraMovement("Static Shot", "静止镜头", "Fixed camera position"),
    CameraMovement("POV Shot", "主观视角", "Point of view"),
    CameraMovement("Bird's Eye View Shot", "俯瞰镜头", "Overhead view"),
    CameraMovement("360-Degree Circular Shot", "360度环绕", "Full circle"),
    CameraMovement("Parallel Tracking Shot", "平行跟踪", "Side tracking"),
    CameraMovement("Diagonal Tracking Shot", "对角跟踪", "Diagonal tracking"),
    CameraMovement("Rotating Shot", "旋转镜头", "Rotating movement"),
    CameraMovement("Slow Motion Shot", "慢动作", "Slow-mo effect"),
    CameraMovement("Time-Lapse Shot", "延时摄影", "Time-lapse"),
    CameraMovement("Canted Shot", "斜视镜头", "Dutch angle"),
    CameraMovement("Cinematic Dolly Zoom", "电影式变焦推轨", "Vertigo effect"),
)

STYLE_PROMPTS: Dict[str, str] = {
    "live-action": "photorealistic live-action cinematography, natural skin texture, real-world lighting, film grain",
    "anime": "Japanese anime style, clean cel shading, expressive eyes, vibrant colors",
    "2d-animation": "2D hand-drawn animation, flat colors, bold outlines, storybook composition",
    "3d-animation": "high-quality 3D animation render, soft global illumination, stylized characters, Pixar-like finish",
    "cyberpunk": "cyberpunk aesthetic, neon lighting, rain-soaked streets, high contrast teal and magenta",
    "oil-painting": "classical oil painting, visible brush strokes, rich textures, chiaroscuro lighting",
}


def get_style_prompt(visual_style: str) -> str:
    """Return the description for a known style id, else the style string itself."""
    return STYLE_PROMPTS.get(visual_style, visual_style)


def build_art_direction_block(art: Optional[ArtDirection]) -> str:
    if art is None:
        return ""
    palette = art.color_palette
    rules = art.character_design_rules
    return (
        "⚠️ GLOBAL ART DIRECTION (MANDATORY for ALL visualPrompt fields):\n"
        f"{art.consistency_anchors}\n"
        f"Color Palette: Primary={palette.primary}, Secondary={palette.secondary}, Accent={palette.accent}\n"
        f"Color Temperature: {palette.temperature}, Saturation: {palette.saturation}\n"
        f"Lighting Style: {art.lighting_style}\n"
        f"Texture: {art.texture_style}\n"
        f"Mood Keywords: {', '.join(art.mood_keywords)}\n"
        f"Character Proportions: {rules.proportions}\n"
        f"Line/Edge Style: {rules.line_weight}\n"
        f"Detail Level: {rules.detail_level}\n"
    )


def _camera_reference() -> str:
    return "\n".join(
        f"- {move.name} ({move.label_cn}) - {move.description}" for move in CAMERA_MOVEMENTS
    )


def _catalog_json(script: ScriptData) -> Tuple[str, str]:
    characters = [
        {"id": c.id, "name": c.name, "desc": c.visual_prompt or c.personality}
        for c in script.characters
    ]
    props = [
        {"id": p.id, "name": p.name, "category": p.category, "desc": p.description}
        for p in script.props
    ]
    return (
        json.dumps(characters, ensure_ascii=False),
        json.dumps(props, ensure_ascii=False),
    )


@dataclass(frozen=True)
class ScenePromptContext:
    """Everything the scene prompt needs beyond the scene itself."""

    script: ScriptData
    scene: Scene
    scene_index: int
    action_text: str
    action_source: str
    shots_for_scene: int
    total_shots: int
    target_seconds: int
    shot_duration_sec: float


def build_scene_prompt(ctx: ScenePromptContext) -> str:
    script, scene = ctx.script, ctx.scene
    style = script.visual_style
    style_prompt = get_style_prompt(style)
    has_art = script.art_direction is not None
    characters_json, props_json = _catalog_json(script)
    art_rule = " MUST follow the Global Art Direction color palette, lighting, and mood." if has_art else ""
    art_hint = " and follow Art Direction" if has_art else ""
    return f"""Act as a professional cinematographer. Generate a detailed shot list (Camera blocking) for Scene {ctx.scene_index + 1}.
Language for Text Output: {script.language}.

IMPORTANT VISUAL STYLE: {style_prompt}
All 'visualPrompt' fields MUST describe shots in this "{style}" style.
{build_art_direction_block(script.art_direction)}
Scene Details:
Location: {scene.location}
Time: {scene.time}
Atmosphere: {scene.atmosphere}

Scene Action:
"{ctx.action_text[:MAX_ACTION_CHARS]}"
Scene Action Source: {ctx.action_source}

Context:
Genre: {script.genre}
Visual Style: {style} ({style_prompt})
Target Duration (Whole Script): {script.target_duration or 'Standard'}
Shot Duration Baseline: {ctx.shot_duration_sec:g}s per shot
Total Shots Budget: {ctx.total_shots} shots
Shots for This Scene: {ctx.shots_for_scene} shots (EXACT)

Characters:
{characters_json}
Props:
{props_json}

Professional Camera Movement Reference (Choose from these categories):
{_camera_reference()}

Instructions:
1. Create EXACTLY {ctx.shots_for_scene} shots for this scene.
2. CRITICAL: Each shot should represent about {ctx.shot_duration_sec:g} seconds. Total planning formula: {ctx.target_seconds} seconds ÷ {ctx.shot_duration_sec:g} ≈ {ctx.total_shots} shots across all scenes.
3. DO NOT output more or fewer than {ctx.shots_for_scene} shots for this scene.
4. 'cameraMovement': Reference the camera movement list above or describe a custom movement.
5. 'shotSize': Specify the field of view (e.g., Extreme Close-up, Medium Shot, Wide Shot).
6. 'actionSummary': Detailed description of what happens in the shot (in {script.language}).
7. 'characters': Return ONLY IDs from provided Characters list.
8. 'props': Return ONLY IDs from provided Props list when a prop is visibly involved. Use [] if none.
9. 'visualPrompt': Detailed description for image generation in {style} style (OUTPUT IN {script.language}). Include style-specific keywords.{art_rule} Keep it under 50 words.

Output ONLY a valid JSON OBJECT with this exact structure (no markdown, no extra text):
{{
  "shots": [
    {{
      "id": "string",
      "sceneId": "{scene.id}",
      "actionSummary": "string",
      "dialogue": "string (empty if none)",
      "cameraMovement": "string",
      "shotSize": "string",
      "characters": ["string"],
      "props": ["string"],
      "keyframes": [
        {{"id": "string", "type": "start|end", "visualPrompt": "string (MUST include {style} style keywords{art_hint})"}}
      ]
    }}
  ]
}}
"""


def build_count_repair_prompt(ctx: ScenePromptContext, returned_count: int) -> str:
    scene = ctx.scene
    return f"""You previously returned {returned_count} shots for Scene {ctx.scene_index + 1}, but EXACTLY {ctx.shots_for_scene} shots are required.

Scene Details:
Location: {scene.location}
Time: {scene.time}
Atmosphere: {scene.atmosphere}

Scene Action:
"{ctx.action_text[:MAX_ACTION_CHARS]}"

Requirements:
1. Return EXACTLY {ctx.shots_for_scene} shots in JSON object format: {{"shots":[...]}}.
2. Keep story continuity and preserve the original cinematic intent.
3. Each shot represents about {ctx.shot_duration_sec:g} seconds.
4. Include fields: id, sceneId, actionSummary, dialogue, cameraMovement, shotSize, characters, props, keyframes.
5. characters/props must be arrays of valid IDs from provided context.
6. keyframes must include type=start/end and visualPrompt.
7. Output ONLY valid JSON object (no markdown).
"""
