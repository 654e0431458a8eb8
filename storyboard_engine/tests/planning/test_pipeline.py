"""End-to-end tests for plan_shots() with a scripted collaborator."""
from __future__ import annotations

import asyncio
import time
from collections import Counter

import pytest

from storyboard_engine.planning.budget import plan_budget
from storyboard_engine.planning.cancellation import CancellationToken
from storyboard_engine.planning.errors import PlanningCancelled, ShotPlanningError
from storyboard_engine.planning.models import QualityCheck, ShotQualityAssessment
from storyboard_engine.planning.pipeline import plan_shots
from storyboard_engine.tests.fakes import ScriptedCompleter, fast_options, make_script, shots_response
from storyboard_engine.validator import validate_shot_plan


class _SlowCompleter:
    """Takes its time and never looks at the cancellation token."""

    def __init__(self, delay_sec: float):
        self.delay_sec = delay_sec
        self.finished = False

    async def complete(self, prompt, model, **kwargs):
        await asyncio.sleep(self.delay_sec)
        self.finished = True
        return shots_response(3, "sc1")


class _RecordingObserver:
    def __init__(self):
        self.messages = []

    def report(self, message: str) -> None:
        self.messages.append(message)


def _plan(script, completer, **kwargs):
    kwargs.setdefault("options", fast_options())
    return asyncio.run(plan_shots(script, completer, **kwargs))


def _three_scene_completer(**shot_kwargs):
    return ScriptedCompleter([
        shots_response(3, "sc1", **shot_kwargs),
        shots_response(3, "sc2", **shot_kwargs),
        shots_response(2, "sc3", **shot_kwargs),
    ])


class TestPlanShots:

    def test_exact_counts_per_scene(self):
        script = make_script()
        shots = _plan(script, _three_scene_completer())
        assert Counter(s.scene_id for s in shots) == {"sc1": 3, "sc2": 3, "sc3": 2}
        assert len(shots) == 8

    def test_scenes_in_script_order_with_sequential_ids(self):
        shots = _plan(make_script(), _three_scene_completer())
        assert [s.id for s in shots] == [f"shot-{i}" for i in range(1, 9)]
        assert [s.scene_id for s in shots] == ["sc1"] * 3 + ["sc2"] * 3 + ["sc3"] * 2

    def test_every_shot_has_start_and_end(self):
        for shot in _plan(make_script(), _three_scene_completer()):
            assert [k.type for k in shot.keyframes] == ["start", "end"]
            assert all(k.visual_prompt.strip() for k in shot.keyframes)

    def test_no_dangling_references(self):
        completer = _three_scene_completer(characters=["c1", "ghost"], props=["p1", "p404"])
        for shot in _plan(make_script(), completer):
            assert shot.characters == ["c1"]
            assert shot.props == ["p1"]

    def test_plan_satisfies_validator(self):
        script = make_script()
        shots = _plan(script, _three_scene_completer())
        assert validate_shot_plan(shots, script) == []

    def test_quality_assessments_attached(self):
        shots = _plan(make_script(), _three_scene_completer(), generated_at="2026-10-18T00:00:00Z")
        for shot in shots:
            assert shot.quality_assessment is not None
            assert shot.quality_assessment.generated_at == "2026-10-18T00:00:00Z"
            assert 0 <= shot.quality_assessment.score <= 100

    def test_quality_disabled_strips_assessments(self):
        stale = ShotQualityAssessment(
            score=10,
            grade="fail",
            generated_at="2020-01-01T00:00:00Z",
            checks=[QualityCheck(key="k", label="K", score=10, weight=1, passed=False)],
        )
        script = make_script(scenes=[{"id": "sc1", "location": "Harbor", "time": "Dusk", "atmosphere": "foggy"}])
        previous = _plan(script.model_copy(deep=True), ScriptedCompleter([shots_response(8, "sc1")]))
        previous = [s.model_copy(update={"quality_assessment": stale}) for s in previous]

        completer = ScriptedCompleter()
        shots = _plan(
            script,
            completer,
            options=fast_options(enable_quality_check=False, reuse_unchanged_scenes=True),
            previous_script=script.model_copy(deep=True),
            previous_shots=previous,
        )
        assert completer.calls == []
        assert all(s.quality_assessment is None for s in shots)

    def test_failed_scene_becomes_fallback(self):
        completer = ScriptedCompleter([
            shots_response(3, "sc1"),
            "<html>gateway error</html>",
            shots_response(2, "sc3"),
        ])
        shots = _plan(make_script(), completer)
        sc2 = [s for s in shots if s.scene_id == "sc2"]
        assert len(sc2) == 3
        assert all("补足镜头" in s.action_summary for s in sc2)

    def test_pins_script_baseline(self):
        script = make_script()
        completer = ScriptedCompleter([
            shots_response(4, "sc1"), shots_response(3, "sc2"), shots_response(3, "sc3"),
        ])
        shots = _plan(script, completer, options=fast_options(model="test-model", default_shot_duration=6))
        assert len(shots) == 10
        assert completer.repair_calls == []
        assert {c["model"] for c in completer.calls} == {"test-model"}
        assert script.planning_shot_duration == 6.0
        assert script.shot_generation_model == "test-model"

    def test_progress_reported_to_observer(self):
        observer = _RecordingObserver()
        _plan(make_script(), _three_scene_completer(), observer=observer)
        assert observer.messages[0].startswith("Generating shot list")
        assert observer.messages[-1].startswith("Shot list complete: 8 shots")

    def test_zero_scenes_raises(self):
        with pytest.raises(ShotPlanningError):
            _plan(make_script(scenes=[]), ScriptedCompleter())

    def test_budget_matches_generated_counts(self):
        script = make_script(targetDuration="2min", storyParagraphs=[])
        shots = _plan(script, ScriptedCompleter())
        budget = plan_budget(script)
        assert Counter(s.scene_id for s in shots) == {
            scene.id: n for scene, n in zip(script.scenes, budget.per_scene)
        }
        assert len(shots) == budget.total_shots == 15


class TestReuse:

    def test_replanning_reuses_every_unchanged_scene(self):
        script = make_script()
        first = _plan(script, _three_scene_completer())

        completer = ScriptedCompleter()
        second = _plan(
            make_script(),
            completer,
            options=fast_options(reuse_unchanged_scenes=True),
            previous_script=script,
            previous_shots=first,
        )
        assert completer.calls == []
        assert [s.action_summary for s in second] == [s.action_summary for s in first]
        assert [s.keyframes for s in second] == [s.keyframes for s in first]

    def test_changed_scene_is_regenerated(self):
        script = make_script()
        first = _plan(script, _three_scene_completer())

        changed = make_script()
        changed.story_paragraphs[1].text = "Marco abandons the lighthouse."
        completer = ScriptedCompleter([shots_response(3, "sc2")])
        second = _plan(
            changed,
            completer,
            options=fast_options(reuse_unchanged_scenes=True),
            previous_script=script,
            previous_shots=first,
        )
        assert len(completer.scene_calls) == 1
        assert "Marco abandons the lighthouse." in completer.scene_calls[0]["prompt"]
        assert len(second) == 8

    def test_renamed_asset_ids_are_remapped(self):
        script = make_script()
        first = _plan(script, _three_scene_completer(characters=["c1"]))

        renamed = make_script(characters=[{"id": "lena-v2", "name": "Lena"}, {"id": "c2", "name": "Marco"}])
        second = _plan(
            renamed,
            ScriptedCompleter(),
            options=fast_options(reuse_unchanged_scenes=True),
            previous_script=script,
            previous_shots=first,
        )
        assert all(s.characters == ["lena-v2"] for s in second)

    def test_reuse_disabled_calls_collaborator(self):
        script = make_script()
        first = _plan(script, _three_scene_completer())
        completer = _three_scene_completer()
        _plan(make_script(), completer, previous_script=script, previous_shots=first)
        assert len(completer.scene_calls) == 3

    def test_duplicate_signature_group_used_once(self):
        scenes = [
            {"id": "a", "location": "Harbor", "time": "Dusk", "atmosphere": "foggy"},
            {"id": "b", "location": "Harbor", "time": "Dusk", "atmosphere": "foggy"},
        ]
        paragraphs = [
            {"id": "1", "text": "Waiting by the water.", "sceneRefId": "a"},
            {"id": "2", "text": "Waiting by the water.", "sceneRefId": "b"},
        ]
        previous_script = make_script(scenes=scenes[:1], storyParagraphs=paragraphs[:1], targetDuration="16s")
        first = _plan(previous_script, ScriptedCompleter([shots_response(2, "a")]))

        current = make_script(scenes=scenes, storyParagraphs=paragraphs, targetDuration="32s")
        completer = ScriptedCompleter([shots_response(2, "b")])
        second = _plan(
            current,
            completer,
            options=fast_options(reuse_unchanged_scenes=True),
            previous_script=previous_script,
            previous_shots=first,
        )
        assert len(completer.scene_calls) == 1
        assert [s.scene_id for s in second] == ["a", "a", "b", "b"]


class TestCancellation:

    def test_pre_cancelled_token_aborts(self):
        completer = _three_scene_completer()

        async def run():
            token = CancellationToken()
            token.cancel()
            await plan_shots(make_script(), completer, options=fast_options(), cancel_token=token)

        with pytest.raises(PlanningCancelled):
            asyncio.run(run())
        assert completer.calls == []

    def test_cancel_during_scene_delay(self):
        completer = _three_scene_completer()

        async def run():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            await plan_shots(
                make_script(), completer, options=fast_options(scene_delay_sec=30), cancel_token=token
            )

        with pytest.raises(PlanningCancelled):
            asyncio.run(run())
        assert len(completer.scene_calls) == 1

    def test_cancellation_from_collaborator_aborts_run(self):
        completer = ScriptedCompleter([shots_response(3, "sc1"), PlanningCancelled()])
        with pytest.raises(PlanningCancelled):
            _plan(make_script(), completer)

    def test_in_flight_call_aborted_even_if_collaborator_ignores_token(self):
        completer = _SlowCompleter(delay_sec=5)

        async def run():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            await plan_shots(make_script(), completer, options=fast_options(), cancel_token=token)

        started = time.monotonic()
        with pytest.raises(PlanningCancelled):
            asyncio.run(run())
        assert time.monotonic() - started < 1.0
        assert completer.finished is False
