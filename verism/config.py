"""VERISM Configuration — Project-level .verismrc.yml support.

Loads configuration from .verismrc.yml (or .verismrc.yaml, .verismrc.json)
found by walking up from the working directory. Command-line flags
override file values.

Example .verismrc.yml:
    concurrent: true        # emit tokens and exchange operations
    collect_errors: true    # report every error, not just the first
    format: json            # "text" or "json"
    log_level: info
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

FORMATS = ("text", "json")
LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass
class VerismConfig:
    """Project-level VERISM configuration."""
    concurrent: bool = False
    collect_errors: bool = False
    # Output: "text" or "json"
    format: str = "text"
    log_level: str = "warning"
    # Path the configuration was loaded from, if any
    source: str = ""


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".verismrc.yml",
    ".verismrc.yaml",
    ".verismrc.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> VerismConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, or it cannot be read, returns defaults.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return VerismConfig()

    try:
        with open(path, "r") as f:
            content = f.read()
    except (IOError, OSError) as e:
        logger.warning("cannot read config %s: %s", path, e)
        return VerismConfig()

    try:
        if path.endswith(".json"):
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        logger.warning("cannot parse config %s: %s", path, e)
        return VerismConfig()

    if not isinstance(data, dict):
        data = {}
    config = _dict_to_config(data)
    config.source = path
    logger.debug("loaded config from %s", path)
    return config


def _dict_to_config(data: Dict[str, Any]) -> VerismConfig:
    """Convert a parsed dict to VerismConfig."""
    config = VerismConfig()

    if "concurrent" in data:
        config.concurrent = bool(data["concurrent"])
    if "collect_errors" in data:
        config.collect_errors = bool(data["collect_errors"])
    if "format" in data:
        fmt = str(data["format"]).lower()
        if fmt in FORMATS:
            config.format = fmt
        else:
            logger.warning("ignoring unknown output format %r", data["format"])
    if "log_level" in data:
        level = str(data["log_level"]).lower()
        if level in LOG_LEVELS:
            config.log_level = level
        else:
            logger.warning("ignoring unknown log level %r", data["log_level"])
    return config
