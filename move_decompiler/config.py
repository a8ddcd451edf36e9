"""Run configuration loaded from an optional JSON file."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

LOG = logging.getLogger(__name__)

__all__ = ["DecompilerConfig", "load_config"]


@dataclass
class DecompilerConfig:
    jobs: int = 1
    debug_dir: Optional[str] = None
    log_level: str = "INFO"
    emit_lints_as_comments: bool = False

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "DecompilerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            LOG.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        config = cls(**{key: payload[key] for key in payload if key in known})
        if not isinstance(config.jobs, int) or isinstance(config.jobs, bool) or config.jobs < 1:
            LOG.warning("Invalid jobs value %r, using 1", config.jobs)
            config.jobs = 1
        return config

    def merged(self, **overrides: Any) -> "DecompilerConfig":
        """Return a copy with every non-``None`` override applied."""

        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({key: value for key, value in overrides.items() if value is not None})
        return DecompilerConfig(**values)


def load_config(path: Optional[Path]) -> DecompilerConfig:
    """Load configuration from ``path`` if present."""

    if path is None or not Path(path).exists():
        return DecompilerConfig()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except json.JSONDecodeError:
        LOG.warning("Invalid config file %s, using defaults", path)
        return DecompilerConfig()
    if not isinstance(payload, dict):
        LOG.warning("Config file %s is not a JSON object, using defaults", path)
        return DecompilerConfig()
    return DecompilerConfig.from_mapping(payload)
