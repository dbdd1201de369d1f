# -*- coding: utf-8 -*-
"""
YAML config loading shared by the rule table, program catalogue and checklists.

Design
------
- Files live in <package>/config; LOANDOC_RULES_DIR overrides the folder.
- Every file is parsed with yaml.safe_load and validated against a JSON schema.
- Loaders raise ConfigError; callers decide whether to fail open or closed.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml
from jsonschema import ValidationError as SchemaError
from jsonschema import validate as json_validate

from ..errors import ConfigError

LOGGER = logging.getLogger(__name__)

# <package>/config
_DEFAULT_CONFIG_DIR: Path = Path(__file__).resolve().parents[1] / "config"


def config_dir() -> Path:
    override = (os.getenv("LOANDOC_RULES_DIR") or "").strip()
    return Path(override) if override else _DEFAULT_CONFIG_DIR


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {path} must be a mapping")
    return data


def load_config(filename: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    """Load <config_dir>/<filename> and validate it against ``schema``."""
    path = config_dir() / filename
    data = _read_yaml(path)
    try:
        json_validate(instance=data, schema=schema)
    except SchemaError as exc:
        raise ConfigError(f"{path}: {str(exc).splitlines()[0]}") from exc
    LOGGER.debug("Loaded config %s", path)
    return data
