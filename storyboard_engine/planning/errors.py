"""Exception taxonomy for the shot planner."""
from __future__ import annotations

from typing import Optional


class StoryboardEngineError(Exception):
    """Base class for every error raised by storyboard_engine."""


class PlanningCancelled(StoryboardEngineError):
    """The caller cancelled the run.

    Kept distinct from every other failure so scene-level fallback logic never
    converts a cancellation into fallback shots.
    """

    def __init__(self, message: str = "Request cancelled") -> None:
        super().__init__(message)


class ShotPlanningError(StoryboardEngineError):
    """The run cannot produce any plan (e.g. a script with zero scenes)."""


class CompletionError(StoryboardEngineError):
    """Transport or HTTP failure from the text-completion collaborator."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status
