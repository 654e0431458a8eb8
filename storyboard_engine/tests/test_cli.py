"""CLI tests: file-level operations in-process, exit codes and exact messages via main()."""
from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from storyboard_engine.cli import assess_shot_plan, main, produce_shot_plan, validate_shot_plan_file
from storyboard_engine.planning.models import ScriptData
from storyboard_engine.tests.fakes import ScriptedCompleter, fast_options, make_script, shots_response

REPO_ROOT = Path(__file__).resolve().parents[2]


def _write_script(path: Path, script: ScriptData = None) -> Path:
    script = script or make_script()
    data = script.model_dump(mode="json", by_alias=True, exclude_none=True)
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


def _completer() -> ScriptedCompleter:
    return ScriptedCompleter([
        shots_response(3, "sc1", characters=["c1"]),
        shots_response(3, "sc2", characters=["c2"]),
        shots_response(2, "sc3", props=["p1"]),
    ])


def _produce(tmp_path: Path, **option_overrides):
    script_path = _write_script(tmp_path / "script.json")
    out = tmp_path / "shotplan.json"
    plan = produce_shot_plan(
        script_path,
        out,
        completer=_completer(),
        options=fast_options(**option_overrides),
        generated_at="2026-10-18T00:00:00Z",
    )
    return script_path, out, plan


def _main_exit(argv, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code, capsys.readouterr().out


class TestProduceShotPlan:

    def test_writes_canonical_plan(self, tmp_path: Path):
        _, out, plan = _produce(tmp_path)
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["schemaVersion"] == "1.0.0"
        assert data["planningShotDuration"] == 8.0
        assert data["model"] == "gpt-5.1"
        assert len(data["shots"]) == len(plan.shots) == 8
        assert out.read_text(encoding="utf-8").endswith("}")

    def test_output_is_deterministic(self, tmp_path: Path):
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()
        _, out_a, _ = _produce(first)
        _, out_b, _ = _produce(second)
        assert out_a.read_bytes() == out_b.read_bytes()

    def test_assessments_stamped(self, tmp_path: Path):
        _, _, plan = _produce(tmp_path)
        assert {s.quality_assessment.generated_at for s in plan.shots} == {"2026-10-18T00:00:00Z"}

    def test_reuse_from_previous_files(self, tmp_path: Path):
        script_path, out, first = _produce(tmp_path)
        completer = ScriptedCompleter()
        second = produce_shot_plan(
            script_path,
            tmp_path / "again.json",
            completer=completer,
            options=fast_options(reuse_unchanged_scenes=True),
            previous_script_path=script_path,
            previous_shotplan_path=out,
            generated_at="2026-10-18T00:00:00Z",
        )
        assert completer.calls == []
        assert [s.action_summary for s in second.shots] == [s.action_summary for s in first.shots]

    def test_invalid_script_not_planned(self, tmp_path: Path):
        import jsonschema

        script_path = tmp_path / "script.json"
        script_path.write_text(json.dumps({"scenes": []}), encoding="utf-8")
        completer = ScriptedCompleter()
        with pytest.raises(jsonschema.ValidationError):
            produce_shot_plan(script_path, tmp_path / "out.json", completer=completer)
        assert not (tmp_path / "out.json").exists()
        assert completer.calls == []


class TestValidateShotPlanFile:

    def test_produced_plan_is_valid(self, tmp_path: Path):
        script_path, out, _ = _produce(tmp_path)
        assert validate_shot_plan_file(out) == []
        assert validate_shot_plan_file(out, script_path) == []

    def test_count_mismatch_reported(self, tmp_path: Path):
        script_path, out, _ = _produce(tmp_path)
        data = json.loads(out.read_text(encoding="utf-8"))
        data["shots"] = data["shots"][:-1]
        out.write_text(json.dumps(data), encoding="utf-8")
        assert validate_shot_plan_file(out, script_path) == ["scene 'sc3' has 1 shots, expected 2"]


class TestAssessShotPlan:

    def test_grades_unassessed_plan(self, tmp_path: Path):
        script_path, out, _ = _produce(tmp_path, enable_quality_check=False)
        assert "qualityAssessment" not in out.read_text(encoding="utf-8")

        graded_path = tmp_path / "graded.json"
        plan = assess_shot_plan(out, script_path, graded_path, generated_at="2026-10-18T00:00:00Z")
        assert all(s.quality_assessment is not None for s in plan.shots)
        assert validate_shot_plan_file(graded_path, script_path) == []

    def test_without_output_writes_nothing(self, tmp_path: Path):
        script_path, out, _ = _produce(tmp_path, enable_quality_check=False)
        before = out.read_bytes()
        assess_shot_plan(out, script_path)
        assert out.read_bytes() == before


class TestMainExitCodes:

    def test_validate_shotplan_ok(self, tmp_path: Path, capsys):
        script_path, out, _ = _produce(tmp_path)
        code, stdout = _main_exit(["validate-shotplan", "--shotplan", str(out), "--script", str(script_path)], capsys)
        assert code == 0
        assert stdout.strip() == "OK: ShotPlan is valid"

    def test_validate_shotplan_contract_violation(self, tmp_path: Path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"schemaVersion": "9.9.9", "shots": []}), encoding="utf-8")
        code, stdout = _main_exit(["validate-shotplan", "--shotplan", str(bad)], capsys)
        assert code == 1
        assert stdout.startswith("ERROR: invalid ShotPlan")

    def test_validate_shotplan_invariant_violation(self, tmp_path: Path, capsys):
        script_path, out, _ = _produce(tmp_path)
        data = json.loads(out.read_text(encoding="utf-8"))
        data["shots"][0]["characters"] = ["c404"]
        out.write_text(json.dumps(data), encoding="utf-8")
        code, stdout = _main_exit(["validate-shotplan", "--shotplan", str(out), "--script", str(script_path)], capsys)
        assert code == 1
        assert stdout.splitlines() == [
            "ERROR: invalid ShotPlan",
            "  - shots[0] references unknown character 'c404'",
        ]

    def test_assess_shots_summary(self, tmp_path: Path, capsys):
        script_path, out, _ = _produce(tmp_path, enable_quality_check=False)
        code, stdout = _main_exit(["assess-shots", "--shotplan", str(out), "--script", str(script_path)], capsys)
        assert code == 0
        assert stdout.startswith("OK: 8 shots assessed (pass ")

    def test_plan_shots_requires_api_key(self, tmp_path: Path, capsys, monkeypatch):
        monkeypatch.delenv("STORYBOARD_API_KEY", raising=False)
        script_path = _write_script(tmp_path / "script.json")
        out = tmp_path / "shotplan.json"
        code, stdout = _main_exit(["plan-shots", "--script", str(script_path), "--output", str(out)], capsys)
        assert code == 1
        assert stdout.strip() == "ERROR: STORYBOARD_API_KEY is not set"
        assert not out.exists()

    def test_no_command_prints_help(self, capsys):
        code, stdout = _main_exit([], capsys)
        assert code == 1
        assert "plan-shots" in stdout


class TestCLIValidateScript:
    """End-to-end: run the module as a subprocess and check exact output."""

    def _run(self, *args: str):
        env = {k: v for k, v in os.environ.items() if k != "STORYBOARD_API_KEY"}
        return subprocess.run(
            [sys.executable, "-m", "storyboard_engine.cli", *args],
            capture_output=True, text=True, cwd=REPO_ROOT, env=env,
        )

    def test_valid_script_exits_0(self, tmp_path: Path):
        script_path = _write_script(tmp_path / "script.json")
        r = self._run("validate-script", "--script", str(script_path))
        assert r.returncode == 0
        assert r.stdout.strip() == "OK: ScriptData is valid"

    def test_invalid_script_exits_1(self, tmp_path: Path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"scenes": [{"id": "a"}, {"id": "a"}]}), encoding="utf-8")
        r = self._run("validate-script", "--script", str(bad))
        assert r.returncode == 1
        assert r.stdout.splitlines() == ["ERROR: invalid ScriptData", "  - scenes[1] duplicate id 'a'"]

    def test_missing_file_exits_1(self, tmp_path: Path):
        r = self._run("validate-script", "--script", str(tmp_path / "ghost.json"))
        assert r.returncode == 1
        assert r.stdout.startswith("ERROR: Script file not found")

    def test_plan_shots_without_key_exits_1(self, tmp_path: Path):
        script_path = _write_script(tmp_path / "script.json")
        r = self._run("plan-shots", "--script", str(script_path), "--output", str(tmp_path / "out.json"))
        assert r.returncode == 1
        assert r.stdout.strip() == "ERROR: STORYBOARD_API_KEY is not set"
