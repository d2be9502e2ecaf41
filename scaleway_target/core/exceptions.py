"""Custom exception hierarchy for the Scaleway target.

All target-specific exceptions inherit from ScalewayTargetError, enabling
callers to catch every target error with a single except clause while still
branching on lookup misses and timeouts.
"""

from __future__ import annotations


class ScalewayTargetError(Exception):
    """Base exception for all Scaleway target errors."""


class ConfigurationError(ScalewayTargetError):
    """Raised for invalid configuration or missing required settings."""


class InvalidScaleError(ConfigurationError):
    """Raised when a scale request asks for a negative number of instances."""

    def __init__(self, n: int) -> None:
        self.n = n
        super().__init__(f"n cannot be smaller than 0, got: {n}")


class ProviderError(ScalewayTargetError):
    """Raised when a call to the Scaleway API fails."""


class ActionTimeoutError(ProviderError):
    """Raised when a server action does not complete within its bound."""

    def __init__(self, instance_id: str, action: str, timeout: float) -> None:
        self.instance_id = instance_id
        self.action = action
        self.timeout = timeout
        super().__init__(
            f"Server {instance_id} did not complete {action} within {timeout:.0f}s"
        )


class VolumeCleanupError(ProviderError):
    """Raised when volume cleanup stops partway through a teardown.

    Volumes already deleted are not restored; ``remaining`` lists the ones
    left behind so they can be cleaned up by hand.
    """

    def __init__(
        self,
        instance_id: str,
        deleted: tuple[str, ...],
        remaining: tuple[str, ...],
        cause: Exception,
    ) -> None:
        self.instance_id = instance_id
        self.deleted = deleted
        self.remaining = remaining
        super().__init__(
            f"Volume cleanup for server {instance_id} failed: {cause} "
            f"(deleted={list(deleted)}, remaining={list(remaining)})"
        )


class InstanceNotFoundError(ScalewayTargetError):
    """Raised when a cluster node cannot be mapped to a Scaleway server."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"could not find server with hostname '{name}'")


class NomadError(ScalewayTargetError):
    """Raised when a call to the Nomad API fails."""
