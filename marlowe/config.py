"""
Engine configuration.

Defaults live in module constants; a YAML file can override them:

    default_window_ms: 86400000
    allow_let_assert: false
    deposit_collisions: keep-first   # or: error
    cache_continuations: true
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .core.errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_WINDOW_MS = 24 * 60 * 60 * 1000  # one day
DEPOSIT_COLLISION_POLICIES = ("keep-first", "error")


@dataclass(frozen=True)
class EngineConfig:
    """
    default_window_ms: width of the default execution window when no timeout
        bounds it.
    allow_let_assert: reduce Let/Assert with full semantics instead of
        rejecting them as unsupported.
    deposit_collisions: what the applicable-actions engine does when two
        cases describe the same deposit.
    cache_continuations: memoize resolved continuations within a session.
    """
    default_window_ms: int = DEFAULT_WINDOW_MS
    allow_let_assert: bool = False
    deposit_collisions: str = "keep-first"
    cache_continuations: bool = True

    def __post_init__(self):
        if isinstance(self.default_window_ms, bool) or not isinstance(self.default_window_ms, int):
            raise ConfigError(f"default_window_ms must be an integer, got {self.default_window_ms!r}")
        if self.default_window_ms <= 0:
            raise ConfigError(f"default_window_ms must be positive, got {self.default_window_ms}")
        for name in ("allow_let_assert", "cache_continuations"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be a boolean, got {getattr(self, name)!r}")
        if self.deposit_collisions not in DEPOSIT_COLLISION_POLICIES:
            raise ConfigError(
                f"deposit_collisions must be one of {', '.join(DEPOSIT_COLLISION_POLICIES)}, "
                f"got {self.deposit_collisions!r}"
            )


DEFAULT_CONFIG = EngineConfig()


def config_from_dict(data: Optional[Dict[str, Any]]) -> EngineConfig:
    """Build a config from a mapping, rejecting unknown keys."""
    if data is None:
        return DEFAULT_CONFIG
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(map(str, unknown))}")
    return EngineConfig(**data)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    config = config_from_dict(data)
    logger.info("Loaded engine configuration from %s", path)
    return config
