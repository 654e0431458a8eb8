import json
from functools import lru_cache
from pathlib import Path

SCHEMAS_DIR = Path(__file__).resolve().parent / "contracts" / "schemas"


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict:
    """Read a packaged JSON Schema contract (ScriptData.v1.json, ShotPlan.v1.json).

    Loaded once per process; callers must not mutate the returned dict.
    """
    schema_path = SCHEMAS_DIR / name
    if not schema_path.exists():
        raise FileNotFoundError(f"Missing contract schema: {schema_path}")
    return json.loads(schema_path.read_text(encoding="utf-8"))
