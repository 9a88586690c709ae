"""Collaborator interfaces the engine consumes but does not implement."""

from __future__ import annotations

from typing import Any, Protocol


class ResourceExistenceCheck(Protocol):
    def __call__(self, resource_id: str) -> bool: ...


class PauseAction(Protocol):
    """Tell the controlled resource to stop playing.  Best-effort."""

    def __call__(self, resource_id: str) -> bool: ...


class NotifyAction(Protocol):
    def __call__(self, title: str, message: str) -> None: ...


class BroadcastStatus(Protocol):
    """Fan a status snapshot out to observers.  Best-effort."""

    def __call__(self, snapshot: dict[str, Any]) -> None: ...
