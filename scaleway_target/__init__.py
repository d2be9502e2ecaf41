"""Scaleway Instances target for the Nomad autoscaler.

Example:

    from scaleway_target import ScalewayTarget, ScalingAction, ScaleDirection

    target = ScalewayTarget()
    target.set_config({"secret_key": "...", "project_id": "...", "zone": "fr-par-1"})
    await target.scale(ScalingAction(ScaleDirection.UP, count=5), policy)
"""

from scaleway_target.config import Blueprint, ServerOpt, TargetConfig
from scaleway_target.core.exceptions import (
    ActionTimeoutError,
    ConfigurationError,
    InstanceNotFoundError,
    InvalidScaleError,
    NomadError,
    ProviderError,
    ScalewayTargetError,
    VolumeCleanupError,
)
from scaleway_target.observability import LogConfig, setup_logging, teardown_logging
from scaleway_target.target import (
    DRY_RUN_COUNT,
    PluginInfo,
    ScaleDirection,
    ScaleReport,
    ScalewayTarget,
    ScalingAction,
    TargetStatus,
)

__version__ = "0.1.0"

__all__ = [
    "ActionTimeoutError",
    "Blueprint",
    "ConfigurationError",
    "DRY_RUN_COUNT",
    "InstanceNotFoundError",
    "InvalidScaleError",
    "LogConfig",
    "NomadError",
    "PluginInfo",
    "ProviderError",
    "ScaleDirection",
    "ScaleReport",
    "ScalewayTarget",
    "ScalewayTargetError",
    "ScalingAction",
    "ServerOpt",
    "TargetConfig",
    "TargetStatus",
    "VolumeCleanupError",
    "setup_logging",
    "teardown_logging",
]
