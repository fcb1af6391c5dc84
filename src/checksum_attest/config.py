"""Discovery configuration.

A ``DiscoveryConfig`` is built once per run from three layers, later layers
winning: built-in defaults, the optional JSON config file, command-line flags.
Pattern lists are combined (config file first) rather than replaced.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConfigurationError

CATEGORY_FIELDS = (
    "include_terraform",
    "include_python",
    "include_config",
    "include_scripts",
    "include_docs",
)


class DiscoveryConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    include_terraform: bool = True
    include_python: bool = True
    include_config: bool = True
    include_scripts: bool = True
    include_docs: bool = True
    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()


def load_config_file(path: Path, *, required: bool = False) -> DiscoveryConfig | None:
    """Parse a config file, or return None when an optional file is absent."""
    if not path.is_file():
        if required:
            raise ConfigurationError(f"Configuration file not found: {path}")
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a JSON object")
    try:
        cfg = DiscoveryConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e
    logging.debug("Loaded configuration from %s", path)
    return cfg


def build_config(
    file_config: DiscoveryConfig | None = None,
    *,
    toggles: dict[str, bool | None] | None = None,
    include_patterns: list[str] | None = None,
    exclude_patterns: list[str] | None = None,
) -> DiscoveryConfig:
    """Layer CLI values over the config file (or defaults when there is none).

    ``toggles`` maps category field names to a flag value; ``None`` means the
    flag was not given and the lower layer stands.
    """
    base = file_config or DiscoveryConfig()
    update: dict[str, Any] = {}
    for name, value in (toggles or {}).items():
        if name not in CATEGORY_FIELDS:
            raise ConfigurationError(f"Unknown category toggle: {name}")
        if value is not None:
            update[name] = value
    update["include_patterns"] = base.include_patterns + tuple(include_patterns or ())
    update["exclude_patterns"] = base.exclude_patterns + tuple(exclude_patterns or ())
    return base.model_copy(update=update)
