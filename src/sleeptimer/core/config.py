"""User settings stored as ``config.json`` next to the timer state."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from sleeptimer.core.store import DEFAULT_CONFIG_DIR
from sleeptimer.core.timer import ConfigError

logger = logging.getLogger(__name__)

_CONFIG_FILE = "config.json"


@dataclass
class Settings:
    show_notifications: bool = True
    dedup_window_seconds: float = 5.0
    liveness_period_seconds: int = 30
    countdown_interval_seconds: float = 1.0
    read_retry_delays: list[float] = field(default_factory=lambda: [0.1, 0.2, 0.4])
    action_retry_delays: list[float] = field(default_factory=lambda: [0.5, 1.0])
    pause_command: str | None = "playerctl --player={resource} pause"
    exists_command: str | None = "playerctl --player={resource} status"
    notify_command: str | None = "notify-send {title} {message}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_delays(value: Any) -> bool:
    return isinstance(value, list) and all(_is_number(v) and v >= 0 for v in value)


def _is_command(value: Any) -> bool:
    return value is None or isinstance(value, str)


_TYPE_CHECKS = {
    "show_notifications": lambda v: isinstance(v, bool),
    "dedup_window_seconds": _is_number,
    "liveness_period_seconds": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "countdown_interval_seconds": lambda v: _is_number(v) and v > 0,
    "read_retry_delays": _is_delays,
    "action_retry_delays": _is_delays,
    "pause_command": _is_command,
    "exists_command": _is_command,
    "notify_command": _is_command,
}


def load_settings(config_dir: Path | None = None) -> Settings:
    """Read ``config.json`` from *config_dir*, merged over the defaults.

    A missing file yields the defaults.  Unknown keys are logged and ignored.
    Raises :class:`ConfigError` if the file is unreadable or not an object.
    """
    path = (config_dir if config_dir is not None else DEFAULT_CONFIG_DIR) / _CONFIG_FILE
    if not path.exists():
        return Settings()

    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot load {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    known = {f.name for f in fields(Settings)}
    for key in sorted(set(data) - known):
        logger.warning("Ignoring unknown setting %r in %s", key, path)

    values = {k: v for k, v in data.items() if k in known}
    for key, value in values.items():
        if not _TYPE_CHECKS[key](value):
            raise ConfigError(f"{key} has an invalid value: {value!r}")

    settings = Settings(**values)
    if settings.liveness_period_seconds < 1:
        raise ConfigError("liveness_period_seconds must be at least 1")
    if settings.dedup_window_seconds < 0:
        raise ConfigError("dedup_window_seconds must not be negative")
    return settings
