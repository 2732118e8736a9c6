"""
Configuration for pathdiag

Defaults for probe options, optionally overridden from a JSON file.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from .exceptions import ValidationError
from .models import Mode, ProbeOptions

logger = logging.getLogger(__name__)

CONFIG_ENV = "PATHDIAG_CONFIG"
DEFAULT_CONFIG_PATH = Path(".pathdiag.json")


@dataclass
class Config:
    """Default values used when an option is not given on the command line"""
    count: int = 4
    delay: float = 1.0
    buffer_size: int = 32
    max_hops: int = 128
    timeout: float = 5.0
    resolve_destination: bool = False
    verbose: bool = False

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from JSON file; missing file gives defaults"""
        config = cls()
        if not path.exists():
            return config

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in config file {path}", str(e)) from e

        if not isinstance(data, dict):
            raise ValidationError(f"Config file {path} must contain a JSON object")

        defaults = {f.name: f.default for f in fields(cls)}
        for key, value in data.items():
            if key in defaults:
                setattr(config, key, _coerce(key, value, defaults[key], path))
            else:
                logger.debug("Ignoring unknown config key %r in %s", key, path)

        return config

    def probe_options(self, mode: Mode = Mode.PING, **overrides) -> ProbeOptions:
        """Build validated ProbeOptions, using config values for anything not overridden"""
        values = {
            "mode": mode,
            "count": self.count,
            "delay": self.delay,
            "buffer_size": self.buffer_size,
            "max_hops": self.max_hops,
            "timeout": self.timeout,
            "resolve_destination": self.resolve_destination,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ProbeOptions(**values)


def _coerce(key: str, value, default, path: Path):
    """Check a config value against the type of its default"""
    # bool is a subclass of int
    if isinstance(default, bool) or isinstance(value, bool):
        valid = isinstance(default, bool) and isinstance(value, bool)
    elif isinstance(default, float):
        valid = isinstance(value, (int, float))
    else:
        valid = isinstance(value, int)

    if not valid:
        raise ValidationError(
            f"Invalid value for '{key}' in config file {path}",
            f"expected {type(default).__name__}, got {value!r}",
        )
    return float(value) if isinstance(default, float) else value


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the process configuration instance"""
    global _config
    if _config is None:
        config_path = Path(os.environ.get(CONFIG_ENV, str(DEFAULT_CONFIG_PATH)))
        _config = Config.from_file(config_path)
    return _config


def set_config(config: Optional[Config]) -> None:
    """Replace the process configuration instance"""
    global _config
    _config = config
