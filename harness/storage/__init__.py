"""In-memory control plane used as the server under test."""

from harness.storage.control_plane import InMemoryControlPlane

__all__ = ["InMemoryControlPlane"]
