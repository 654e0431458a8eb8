"""ScriptData → Shot plan planning package."""

from storyboard_engine.planning.budget import ShotBudget, plan_budget
from storyboard_engine.planning.cancellation import CancellationToken
from storyboard_engine.planning.completion import HttpChatCompleter, TextCompleter
from storyboard_engine.planning.errors import (
    CompletionError,
    PlanningCancelled,
    ShotPlanningError,
    StoryboardEngineError,
)
from storyboard_engine.planning.models import (
    Keyframe,
    QualityCheck,
    Scene,
    ScriptData,
    Shot,
    ShotQualityAssessment,
)
from storyboard_engine.planning.options import PlanningOptions
from storyboard_engine.planning.pipeline import LoggingProgressObserver, ProgressObserver, plan_shots
from storyboard_engine.planning.quality import assess_shot
from storyboard_engine.planning.repair import apply_quality_pipeline, repair_shot

__all__ = [
    "plan_shots",
    "plan_budget",
    "assess_shot",
    "repair_shot",
    "apply_quality_pipeline",
    "CancellationToken",
    "HttpChatCompleter",
    "TextCompleter",
    "ProgressObserver",
    "LoggingProgressObserver",
    "PlanningOptions",
    "ShotBudget",
    "Keyframe",
    "QualityCheck",
    "Scene",
    "ScriptData",
    "Shot",
    "ShotQualityAssessment",
    "StoryboardEngineError",
    "PlanningCancelled",
    "ShotPlanningError",
    "CompletionError",
]
