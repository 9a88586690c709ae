"""Message-passing surface over the engine.

Every call returns a plain ``{"success": ..., "data"|"error": ...}`` dict and
never raises, so callers on the far side of a pipe or socket can always
serialize the outcome.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from sleeptimer.core.engine import TimerEngine
from sleeptimer.core.timefmt import parse_duration
from sleeptimer.core.timer import InvalidDurationError, TimerError, TimerRecord

logger = logging.getLogger(__name__)


def ok(data: Any = None) -> dict[str, Any]:
    return {"success": True, "data": data}


def fail(error: str, code: str = "invalid_request") -> dict[str, Any]:
    return {"success": False, "error": error, "code": code}


def _record_data(record: TimerRecord | None) -> dict[str, Any] | None:
    return record.to_dict() if record is not None else None


class TimerService:
    """Wraps each engine operation into a result dict."""

    def __init__(self, engine: TimerEngine) -> None:
        self._engine = engine

    def start(self, duration_seconds: int, resource_id: str, url: str | None = None) -> dict[str, Any]:
        return self._call(lambda: _record_data(self._engine.start(duration_seconds, resource_id, url)))

    def stop(self) -> dict[str, Any]:
        return self._call(lambda: _record_data(self._engine.stop()))

    def pause(self) -> dict[str, Any]:
        return self._call(lambda: _record_data(self._engine.pause()))

    def resume(self) -> dict[str, Any]:
        return self._call(lambda: _record_data(self._engine.resume()))

    def extend(self, additional_seconds: int) -> dict[str, Any]:
        return self._call(lambda: _record_data(self._engine.extend(additional_seconds)))

    def status(self) -> dict[str, Any]:
        return self._call(self._engine.status)

    def settings(self) -> dict[str, Any]:
        return ok(self._engine.settings.to_dict())

    # -- message dispatch ----------------------------------------------------

    def handle_message(self, message: Any) -> dict[str, Any]:
        """Dispatch ``{"action": ..., ...}`` to the matching operation."""
        if not isinstance(message, dict) or not isinstance(message.get("action"), str):
            return fail("Invalid message format")
        handler = _HANDLERS.get(message["action"])
        if handler is None:
            return fail(f"Unknown action: {message['action']}")
        try:
            return handler(self, message)
        except InvalidDurationError as exc:
            return fail(str(exc), exc.code)
        except _ParameterError as exc:
            return fail(str(exc))

    def _call(self, action: Callable[[], Any]) -> dict[str, Any]:
        try:
            return ok(action())
        except TimerError as exc:
            logger.info("Operation failed: %s", exc)
            return fail(str(exc), exc.code)


class _ParameterError(Exception):
    pass


def _require_str(message: dict[str, Any], name: str, required: bool = True) -> str | None:
    value = message.get(name)
    if value is None:
        if required:
            raise _ParameterError(f"Missing required parameter: {name}")
        return None
    if not isinstance(value, str) or not value:
        raise _ParameterError(f"Invalid {name} type (expected non-empty string)")
    return value


def _duration_param(message: dict[str, Any], name: str) -> int:
    """Accept an integer number of seconds or a duration string like ``"5m"``."""
    value = message.get(name)
    if value is None:
        raise _ParameterError(f"Missing required parameter: {name}")
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _ParameterError(f"Invalid {name} type (expected number or string)")
    return parse_duration(str(value))


def _start(service: TimerService, message: dict[str, Any]) -> dict[str, Any]:
    duration = _duration_param(message, "duration")
    resource_id = _require_str(message, "resourceId")
    url = _require_str(message, "url", required=False)
    return service.start(duration, resource_id, url)


def _extend(service: TimerService, message: dict[str, Any]) -> dict[str, Any]:
    return service.extend(_duration_param(message, "seconds"))


_HANDLERS: dict[str, Callable[[TimerService, dict[str, Any]], dict[str, Any]]] = {
    "startTimer": _start,
    "stopTimer": lambda service, _: service.stop(),
    "pauseTimer": lambda service, _: service.pause(),
    "resumeTimer": lambda service, _: service.resume(),
    "extendTimer": _extend,
    "getTimerStatus": lambda service, _: service.status(),
    "getSettings": lambda service, _: service.settings(),
}

ALLOWED_ACTIONS = frozenset(_HANDLERS)
