"""Domain exceptions mapped to HTTP responses by the error handler."""

from __future__ import annotations


class UpstreamUnavailableError(Exception):
    """A collaborator service could not be reached or returned bad data."""

    def __init__(self, service: str, reason: str = "") -> None:
        self.service = service
        self.reason = reason
        super().__init__(f"{service}_unavailable: {reason}" if reason else f"{service}_unavailable")


class RecomputeInProgressError(Exception):
    """Another full recompute holds the recompute lock."""


class InvalidTransitionError(ValueError):
    """Raised when a moderation record is moved out of a terminal state."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition: {current} -> {target}")
