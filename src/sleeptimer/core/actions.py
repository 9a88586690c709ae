"""Default collaborators: shell-command ports and a status-file broadcaster.

Commands are configured as templates such as
``"playerctl --player={resource} pause"``.  A template is split with
:func:`shlex.split` before formatting, so substituted values never reach a
shell.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Any, Sequence
from urllib.parse import urlparse

from sleeptimer.core.retry import retry_with_backoff
from sleeptimer.core.store import DEFAULT_CONFIG_DIR
from sleeptimer.core.timer import ActionPortError

logger = logging.getLogger(__name__)

_COMMAND_TIMEOUT_SECONDS = 10
_STATUS_FILE = "status.json"

_CATEGORY_HOSTS = (
    ("netflix.com", "netflix"),
    ("primevideo.com", "amazon"),
    ("amazon.com", "amazon"),
    ("disneyplus.com", "disney"),
    ("youtube.com", "youtube"),
    ("crunchyroll.com", "crunchyroll"),
    ("hbomax.com", "hbo"),
    ("max.com", "hbo"),
)


def detect_category(url: str | None) -> str:
    """Classify a resource by the streaming site its URL points at."""
    if not url:
        return "generic"
    hostname = (urlparse(url).hostname or "").lower()
    for suffix, category in _CATEGORY_HOSTS:
        if hostname == suffix or hostname.endswith("." + suffix):
            return category
    return "generic"


def _run_command(template: str, **values: str) -> subprocess.CompletedProcess:
    argv = [token.format(**values) for token in shlex.split(template)]
    logger.debug("Running %s", argv)
    try:
        return subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=_COMMAND_TIMEOUT_SECONDS,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise ActionPortError(f"{argv[0]} failed: {exc}") from exc


class CommandExistenceCheck:
    """Resource exists if the configured command exits 0."""

    def __init__(self, template: str | None) -> None:
        self._template = template

    def __call__(self, resource_id: str) -> bool:
        if self._template is None:
            return True
        try:
            _run_command(self._template, resource=resource_id)
        except ActionPortError as exc:
            logger.info("Resource %r not found: %s", resource_id, exc)
            return False
        return True


class CommandPauseAction:
    """Pause *resource_id* by running the configured command, retrying on failure.

    Returns ``False`` without running anything when no command is configured.
    """

    def __init__(self, template: str | None, retry_delays: Sequence[float] = ()) -> None:
        self._template = template
        self._retry_delays = list(retry_delays)

    def __call__(self, resource_id: str) -> bool:
        if self._template is None:
            logger.warning("No pause_command configured; cannot pause %r", resource_id)
            return False
        template = self._template
        retry_with_backoff(
            lambda: _run_command(template, resource=resource_id),
            self._retry_delays,
            retry_on=(ActionPortError,),
        )
        logger.info("Paused %r", resource_id)
        return True


class CommandNotifier:
    """Log every notification and, if configured, show it through a command."""

    def __init__(self, template: str | None) -> None:
        self._template = template

    def __call__(self, title: str, message: str) -> None:
        logger.info("%s: %s", title, message)
        if self._template is not None:
            _run_command(self._template, title=title, message=message)


class StatusFileBroadcaster:
    """Publish each snapshot to ``<config_dir>/status.json`` for observers."""

    def __init__(self, config_dir: Path | None = None) -> None:
        self._config_dir: Path = config_dir if config_dir is not None else DEFAULT_CONFIG_DIR

    @property
    def path(self) -> Path:
        return self._config_dir / _STATUS_FILE

    def __call__(self, snapshot: dict[str, Any]) -> None:
        self._config_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(snapshot))
        os.replace(tmp, self.path)
