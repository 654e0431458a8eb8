"""Planning run configuration."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from storyboard_engine.planning.budget import DEFAULT_SHOT_DURATION_SEC


class PlanningOptions(BaseModel):
    """Knobs of a planning run.

    Visual style, language and art-direction seed are read from the
    ScriptData itself; everything else that shapes the run lives here.
    """

    model_config = ConfigDict(extra="ignore")

    model: str = "gpt-5.1"
    default_shot_duration: float = Field(DEFAULT_SHOT_DURATION_SEC, gt=0)
    reuse_unchanged_scenes: bool = False
    enable_quality_check: bool = True

    # Pause between scenes to respect the collaborator's rate limits.
    scene_delay_sec: float = Field(1.2, ge=0)
    request_timeout_sec: float = Field(600.0, gt=0)
    max_attempts: int = Field(3, ge=1)
    repair_max_attempts: int = Field(2, ge=1)
    retry_base_delay_sec: float = Field(2.0, ge=0)
    temperature: float = 0.5
    repair_temperature: float = 0.4
    max_tokens: int = 8192
