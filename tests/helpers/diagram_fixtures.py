from __future__ import annotations

from functools import cache, lru_cache
from pathlib import Path
from typing import Any

import orjson

from domain.models import Diagram


@lru_cache(maxsize=1)
def repo_root() -> Path:
    for parent in Path(__file__).resolve().parents:
        if (parent / "pyproject.toml").exists():
            return parent
    raise RuntimeError("Repository root not found")


@cache
def _load_diagram_payload_cached(name: str) -> dict[str, Any]:
    fixture_path = repo_root() / "examples" / "diagrams" / name
    payload = orjson.loads(fixture_path.read_bytes())
    if not isinstance(payload, dict):
        raise TypeError(f"Expected dict payload in {fixture_path}")
    return payload


def load_diagram_payload(name: str) -> dict[str, Any]:
    return orjson.loads(orjson.dumps(_load_diagram_payload_cached(name)))


def load_diagram_fixture(name: str) -> Diagram:
    return Diagram.model_validate(load_diagram_payload(name))
