"""storyboard-engine CLI entry point."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

_DEFAULT_GENERATED_AT = "1970-01-01T00:00:00Z"


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="storyboard-engine",
        description="Storyboard Engine: script-to-shot planning with quality assurance",
    )
    parser.add_argument("--verbose", action="store_true", help="Log progress and debug details")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    validate_parser = sub.add_parser("validate-script", help="Validate a ScriptData JSON file")
    validate_parser.add_argument(
        "--script", required=True, metavar="script.json",
        help="Path to a ScriptData JSON file",
    )

    plan_parser = sub.add_parser(
        "plan-shots",
        help="Plan a ScriptData JSON → validated canonical ShotPlan JSON",
    )
    plan_parser.add_argument(
        "--script", required=True, metavar="script.json",
        help="Path to a ScriptData JSON file",
    )
    plan_parser.add_argument(
        "--output", required=True, metavar="shotplan.json",
        help="Destination path for the canonical ShotPlan JSON",
    )
    plan_parser.add_argument("--model", default=None, help="Shot generation model id")
    plan_parser.add_argument(
        "--shot-duration", type=float, default=None, metavar="SEC",
        help="Default seconds per shot when the script has no pinned baseline",
    )
    plan_parser.add_argument(
        "--previous-script", default=None, metavar="script.json",
        help="ScriptData of an earlier run (enables reuse of unchanged scenes)",
    )
    plan_parser.add_argument(
        "--previous-shotplan", default=None, metavar="shotplan.json",
        help="ShotPlan of an earlier run (enables reuse of unchanged scenes)",
    )
    plan_parser.add_argument(
        "--no-quality-check", action="store_true",
        help="Skip quality scoring and repair",
    )
    plan_parser.add_argument(
        "--generated-at", default=_DEFAULT_GENERATED_AT, metavar="ISO8601",
        help="Timestamp stamped on the plan and its quality assessments",
    )

    validate_plan_parser = sub.add_parser(
        "validate-shotplan",
        help="Validate a ShotPlan JSON file against the contract (and a script, if given)",
    )
    validate_plan_parser.add_argument(
        "--shotplan", required=True, metavar="shotplan.json",
        help="Path to a ShotPlan JSON file",
    )
    validate_plan_parser.add_argument(
        "--script", default=None, metavar="script.json",
        help="ScriptData the plan was produced from; enables count and reference checks",
    )

    assess_parser = sub.add_parser(
        "assess-shots",
        help="Repair and grade the shots of a ShotPlan against its script",
    )
    assess_parser.add_argument("--shotplan", required=True, metavar="shotplan.json")
    assess_parser.add_argument("--script", required=True, metavar="script.json")
    assess_parser.add_argument(
        "--output", default=None, metavar="shotplan.json",
        help="Write the graded plan here instead of printing a summary only",
    )
    assess_parser.add_argument("--generated-at", default=_DEFAULT_GENERATED_AT, metavar="ISO8601")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "validate-script":
        from storyboard_engine.validator import validate_script_file
        try:
            errors = validate_script_file(Path(args.script))
        except ValueError as exc:
            print(f"ERROR: {exc}")
            sys.exit(1)
        if errors:
            print("ERROR: invalid ScriptData")
            for error in errors:
                print(f"  - {error}")
            sys.exit(1)
        print("OK: ScriptData is valid")
        sys.exit(0)
    elif args.command == "plan-shots":
        _run_plan_shots(args)
    elif args.command == "validate-shotplan":
        import jsonschema
        try:
            errors = validate_shot_plan_file(
                Path(args.shotplan), Path(args.script) if args.script else None
            )
        except jsonschema.ValidationError as exc:
            print(f"ERROR: invalid ShotPlan: {exc.message}")
            sys.exit(1)
        except Exception as exc:
            print(f"ERROR: {exc}")
            sys.exit(1)
        if errors:
            print("ERROR: invalid ShotPlan")
            for error in errors:
                print(f"  - {error}")
            sys.exit(1)
        print("OK: ShotPlan is valid")
        sys.exit(0)
    elif args.command == "assess-shots":
        try:
            plan = assess_shot_plan(
                Path(args.shotplan),
                Path(args.script),
                Path(args.output) if args.output else None,
                generated_at=args.generated_at,
            )
        except Exception as exc:
            print(f"ERROR: {exc}")
            sys.exit(1)
        grades = [shot.quality_assessment.grade for shot in plan.shots]
        print(
            f"OK: {len(grades)} shots assessed "
            f"(pass {grades.count('pass')}, warning {grades.count('warning')}, fail {grades.count('fail')})"
        )
        sys.exit(0)
    else:
        parser.print_help()
        sys.exit(1)


def _run_plan_shots(args: argparse.Namespace) -> None:
    import jsonschema
    from storyboard_engine.planning.completion import HttpChatCompleter
    from storyboard_engine.planning.errors import StoryboardEngineError
    from storyboard_engine.planning.options import PlanningOptions

    completer = HttpChatCompleter()
    if not completer.settings.api_key:
        print("ERROR: STORYBOARD_API_KEY is not set")
        sys.exit(1)

    overrides = {"enable_quality_check": not args.no_quality_check}
    if args.model:
        overrides["model"] = args.model
    if args.shot_duration:
        overrides["default_shot_duration"] = args.shot_duration
    if args.previous_script and args.previous_shotplan:
        overrides["reuse_unchanged_scenes"] = True

    try:
        plan = produce_shot_plan(
            Path(args.script),
            Path(args.output),
            completer=completer,
            options=PlanningOptions(**overrides),
            previous_script_path=Path(args.previous_script) if args.previous_script else None,
            previous_shotplan_path=Path(args.previous_shotplan) if args.previous_shotplan else None,
            generated_at=args.generated_at,
        )
    except jsonschema.ValidationError as exc:
        print(f"ERROR: invalid ScriptData: {exc.message}")
        sys.exit(1)
    except (StoryboardEngineError, ValueError, OSError) as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)
    print(f"OK: {len(plan.shots)} shots written to {args.output}")
    sys.exit(0)


# ── File-level operations ─────────────────────────────────────────────────────


def load_script_file(script_path: Path):
    """Read a ScriptData JSON file, checking it against ScriptData.v1.json first.

    Raises ``jsonschema.ValidationError`` on contract violations.
    """
    from storyboard_engine.contract_validate import validate_script_contract
    from storyboard_engine.schemas.script_v1 import load_script

    raw_data = json.loads(script_path.read_text(encoding="utf-8"))
    validate_script_contract(raw_data)
    return load_script(raw_data)


def produce_shot_plan(
    script_path: Path,
    output_path: Path,
    *,
    completer=None,
    options=None,
    previous_script_path: Optional[Path] = None,
    previous_shotplan_path: Optional[Path] = None,
    generated_at: str = _DEFAULT_GENERATED_AT,
):
    """Plan shots for a script file, validate the result, write the ShotPlan.

    Raises ``jsonschema.ValidationError`` if:
    - the input ScriptData does not conform to ``ScriptData.v1.json``, or
    - the produced ShotPlan does not conform to ``ShotPlan.v1.json``.

    The output file is never written when validation fails.
    """
    from storyboard_engine.contract_validate import validate_shot_plan_model
    from storyboard_engine.planning.completion import HttpChatCompleter
    from storyboard_engine.planning.models import ShotPlan
    from storyboard_engine.planning.options import PlanningOptions
    from storyboard_engine.planning.pipeline import plan_shots
    from storyboard_engine.schemas.shotplan_v1 import canonical_json_bytes, load_shot_plan

    script = load_script_file(script_path)
    options = options or PlanningOptions()
    previous_script = load_script_file(previous_script_path) if previous_script_path else None
    previous_shots = load_shot_plan(previous_shotplan_path).shots if previous_shotplan_path else None

    shots = asyncio.run(
        plan_shots(
            script,
            completer or HttpChatCompleter(),
            options=options,
            previous_script=previous_script,
            previous_shots=previous_shots,
            generated_at=generated_at,
        )
    )
    plan = ShotPlan(
        title=script.title,
        model=options.model,
        visual_style=script.visual_style,
        planning_shot_duration=script.planning_shot_duration,
        generated_at=generated_at,
        shots=shots,
    )

    # Validate BEFORE writing
    validate_shot_plan_model(plan)
    output_path.write_bytes(canonical_json_bytes(plan))
    logger.info("Wrote %d shots to %s", len(shots), output_path)
    return plan


def validate_shot_plan_file(shotplan_path: Path, script_path: Optional[Path] = None) -> List[str]:
    """Check a ShotPlan file against ShotPlan.v1.json and, with a script, the plan invariants.

    Raises ``jsonschema.ValidationError`` on contract violations; returns the
    invariant errors (empty list = valid).
    """
    from storyboard_engine.contract_validate import validate_shot_plan_contract
    from storyboard_engine.schemas.shotplan_v1 import load_shot_plan
    from storyboard_engine.validator import validate_shot_plan

    data = json.loads(shotplan_path.read_text(encoding="utf-8"))
    validate_shot_plan_contract(data)
    if script_path is None:
        return []

    plan = load_shot_plan(data)
    script = load_script_file(script_path)
    if script.planning_shot_duration is None:
        script.planning_shot_duration = plan.planning_shot_duration
    return validate_shot_plan(plan.shots, script)


def assess_shot_plan(
    shotplan_path: Path,
    script_path: Path,
    output_path: Optional[Path] = None,
    *,
    generated_at: str = _DEFAULT_GENERATED_AT,
):
    """Run the repair/quality loop over an existing plan without calling any model."""
    from storyboard_engine.planning.repair import apply_quality_pipeline
    from storyboard_engine.schemas.shotplan_v1 import canonical_json_bytes, load_shot_plan

    plan = load_shot_plan(shotplan_path)
    script = load_script_file(script_path)
    shots = apply_quality_pipeline(
        plan.shots,
        valid_character_ids={c.id for c in script.characters},
        valid_prop_ids={p.id for p in script.props},
        visual_style=plan.visual_style or script.visual_style,
        generated_at=generated_at,
    )
    plan = plan.model_copy(update={"shots": shots, "generated_at": generated_at})
    if output_path is not None:
        output_path.write_bytes(canonical_json_bytes(plan))
    return plan


if __name__ == "__main__":
    main()
