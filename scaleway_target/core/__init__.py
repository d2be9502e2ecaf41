from .exceptions import (
    ActionTimeoutError,
    ConfigurationError,
    InstanceNotFoundError,
    InvalidScaleError,
    NomadError,
    ProviderError,
    ScalewayTargetError,
    VolumeCleanupError,
)

__all__ = [
    "ActionTimeoutError",
    "ConfigurationError",
    "InstanceNotFoundError",
    "InvalidScaleError",
    "NomadError",
    "ProviderError",
    "ScalewayTargetError",
    "VolumeCleanupError",
]
