"""Exceptions raised by the harness and the control plane it drives."""

from __future__ import annotations


class InvalidArgumentError(ValueError):
    """Bad or missing benchmark option."""

    def __init__(self, message: str, usage: str = ""):
        super().__init__(message)
        self.usage = usage


class ControlPlaneError(Exception):
    """Base class for errors returned by a control-plane call."""


class SafeModeError(ControlPlaneError):
    """Namespace modification attempted while in maintenance mode."""


class PathNotEmptyError(ControlPlaneError):
    """Non-recursive delete of a non-empty directory."""


class LeaseError(ControlPlaneError):
    """File is not open for writing by the calling client."""


class UnknownNodeError(ControlPlaneError):
    """Call from a storage node that never registered."""


class NotEnoughNodesError(ControlPlaneError):
    """No live storage node is available to place a chunk."""


class ConcurrentStageError(RuntimeError):
    """Two threads tried to run stages of the same pipeline task."""
