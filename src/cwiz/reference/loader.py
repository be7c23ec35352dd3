"""Static reference data loader.

Loads the YAML files shipped under ``cwiz/data``: US states with their
federal judicial districts, client entity types, and the wizard step list.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import yaml

from cwiz.models import StepDefinition

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def load_reference(name: str, data_dir: str | Path = DATA_DIR) -> dict:
    """Load a reference YAML file."""
    path = Path(data_dir) / f"{name}.yaml"
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache(maxsize=None)
def _jurisdictions() -> dict:
    return load_reference("jurisdictions")


def us_states() -> list[tuple[str, str]]:
    """Return (code, name) pairs in file order."""
    return [(code, info["name"]) for code, info in _jurisdictions().get("states", {}).items()]


def state_name(code: str, default: str = "") -> str:
    info = _jurisdictions().get("states", {}).get(code.upper() if code else "")
    return info["name"] if info else default


def federal_districts(state_code: str) -> list[str]:
    """Federal judicial districts for a state code (empty for unknown states)."""
    info = _jurisdictions().get("states", {}).get(state_code.upper() if state_code else "")
    return list(info.get("districts", [])) if info else []


def entity_types() -> list[str]:
    return [e["value"] for e in _jurisdictions().get("entity_types", [])]


@lru_cache(maxsize=None)
def step_definitions() -> tuple[StepDefinition, ...]:
    data = load_reference("steps")
    return tuple(StepDefinition(**s) for s in data.get("steps", []))


def step_title(number: int) -> str:
    for step in step_definitions():
        if step.number == number:
            return step.title
    return f"Step {number}"


def sample_draft() -> dict:
    """Field values for the pre-filled test draft."""
    return dict(load_reference("sample_draft").get("draft", {}))
