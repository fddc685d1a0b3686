"""Checklist Config Loader — reads the YAML rule set and deep-merges deployment overrides.

Invariants:
    - The packaged checklist_config.yml is always the base layer
    - An override file is merged key-by-key (nested dicts merge, lists/scalars replace)
    - A configured override path that does not exist is an error, not a silent default
"""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CHECKLIST_PATH = Path(__file__).resolve().parent.parent / "checklist_config.yml"


def _load_yaml(path: Path) -> dict[str, Any]:
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def load_checklist_config(override_path: str | Path | None = None) -> dict[str, Any]:
    """Packaged defaults, optionally deep-merged with an override YAML file."""
    config = _load_yaml(DEFAULT_CHECKLIST_PATH)
    if override_path:
        path = Path(override_path)
        if not path.exists():
            raise FileNotFoundError(f"Checklist config not found: {path}")
        config = deep_merge(config, _load_yaml(path))
        logger.info("Loaded checklist overrides from %s", path)
    return config
