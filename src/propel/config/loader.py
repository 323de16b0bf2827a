"""Read engine configs from YAML, apply command-line overrides, and persist resolved runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from .schema import EngineConfig

RESOLVED_CONFIG_NAME = "config_resolved.yaml"


def _read_payload(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")
    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError(f"Config file {path} must hold a mapping, got {type(payload).__name__}")
    return payload


def _split_override(override: str) -> Tuple[List[str], Any]:
    """Turn ``update_rule.learning_rate=0.05`` into (["update_rule", "learning_rate"], 0.05).

    Values are decoded as JSON when possible so numbers, lists and booleans keep their
    types; anything else stays a string.
    """
    key, separator, raw = override.partition("=")
    if not separator:
        raise ValueError(f"Override '{override}' must be in key=value format")
    path = key.strip().split(".")
    if not all(path):
        raise ValueError(f"Override '{override}' has an empty key segment")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return path, value


def _apply_override(payload: Dict[str, Any], override: str) -> None:
    path, value = _split_override(override)
    section = payload
    for name in path[:-1]:
        child = section.setdefault(name, {})
        if not isinstance(child, dict):
            raise ValueError(f"Override '{override}' descends into non-mapping key '{name}'")
        section = child
    section[path[-1]] = value


def load_config(path: str | Path, overrides: Optional[Iterable[str]] = None) -> EngineConfig:
    payload = _read_payload(Path(path))
    for override in overrides or ():
        _apply_override(payload, override)
    return EngineConfig.model_validate(payload)


def save_run_config(config: EngineConfig, output_dir: str | Path, *, filename: str = RESOLVED_CONFIG_NAME) -> Path:
    """Write the fully resolved config next to a run's other outputs and return its path."""
    target = Path(output_dir) / filename
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False), encoding="utf-8")
    return target
