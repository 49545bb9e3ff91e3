"""
Client configuration.

Sources, lowest to highest precedence: built-in defaults, the YAML file,
GUIDE_* environment variables, then explicit overrides (CLI options).
"""

from __future__ import annotations
import dataclasses
import os
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from guide.models import DEFAULT_ENTRY
from shared.log import get_logger

logger = get_logger(__name__)

CHANNEL = "the_guide"
DEMO_KEY = "demo"
DEFAULT_INITIAL_ENTRY = "Mostly Harmless."
DEFAULT_AUTO_PUBLISH_TEXT = "Harmless."
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_ENV_KEYS = {
    "publish_key": "GUIDE_PUBLISH_KEY",
    "subscribe_key": "GUIDE_SUBSCRIBE_KEY",
    "client_id": "GUIDE_CLIENT_ID",
}


class ConfigError(ValueError):
    """Raised for unreadable config files and invalid values."""
    pass


class DecodeFailurePolicy(str, Enum):
    """What the store does with a received payload that is not an EntryUpdate."""
    DROP = "drop"               # log it, display nothing
    SUBSTITUTE = "substitute"   # display it with "null" for missing fields


@dataclass(frozen=True)
class GuideConfig:
    publish_key: str = DEMO_KEY
    subscribe_key: str = DEMO_KEY
    client_id: Optional[str] = None
    default_entry: str = DEFAULT_ENTRY
    initial_entry: str = DEFAULT_INITIAL_ENTRY
    auto_publish_on_subscribe: bool = True
    auto_publish_text: str = DEFAULT_AUTO_PUBLISH_TEXT
    decode_failure: DecodeFailurePolicy = DecodeFailurePolicy.DROP
    surface_errors: bool = False
    log_level: Optional[str] = None

    def __post_init__(self) -> None:
        # Frozen, so normalize through object.__setattr__
        if self.client_id is None:
            object.__setattr__(self, "client_id", str(uuid.uuid4()))
        try:
            object.__setattr__(self, "decode_failure", DecodeFailurePolicy(self.decode_failure))
        except ValueError:
            choices = ", ".join(p.value for p in DecodeFailurePolicy)
            raise ConfigError(f"decode_failure must be one of: {choices}") from None

        for name in ("publish_key", "subscribe_key", "client_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"'{name}' must be a non-empty string")
        for name in ("auto_publish_on_subscribe", "surface_errors"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"'{name}' must be true or false")
        for name in ("default_entry", "initial_entry", "auto_publish_text"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"'{name}' must be a string")
        if not self.auto_publish_text.strip():
            raise ConfigError("'auto_publish_text' must not be empty")
        if self.log_level is not None and (
            not isinstance(self.log_level, str) or self.log_level.upper() not in LOG_LEVELS
        ):
            raise ConfigError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")

    def merged(self, **overrides: Any) -> "GuideConfig":
        """Return a copy with every non-None override applied"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["decode_failure"] = self.decode_failure.value
        return data


def default_config_path() -> Path:
    env_path = os.getenv("GUIDE_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".guide" / "config.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("No config file at %s; using defaults", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error reading {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")

    known = {f.name for f in dataclasses.fields(GuideConfig)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(sorted(unknown)))
    return {k: v for k, v in data.items() if k in known}


def _read_env() -> Dict[str, str]:
    return {
        name: os.environ[var]
        for name, var in _ENV_KEYS.items()
        if os.environ.get(var)
    }


def load_config(path: Optional[Path] = None, **overrides: Any) -> GuideConfig:
    values: Dict[str, Any] = {}
    values.update(_read_yaml(path or default_config_path()))
    values.update(_read_env())
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return GuideConfig(**values)
    except TypeError as e:
        raise ConfigError(str(e)) from e
