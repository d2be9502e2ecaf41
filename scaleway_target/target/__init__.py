from .orchestrator import (
    DRY_RUN_COUNT,
    MAX_WORKERS,
    ScaleDirection,
    ScaleReport,
    ScalingAction,
    WorkResult,
    WorkUnit,
    compute_delta,
    run_work_units,
    scale_down,
    scale_up,
)
from .plugin import PluginInfo, ScalewayTarget, TargetStatus
from .scale_in import ScaleInCoordinator, ScaleInPlan
from .state import PoolState, StateGuard

__all__ = [
    "DRY_RUN_COUNT",
    "MAX_WORKERS",
    "PluginInfo",
    "PoolState",
    "ScaleDirection",
    "ScaleInCoordinator",
    "ScaleInPlan",
    "ScaleReport",
    "ScalewayTarget",
    "ScalingAction",
    "StateGuard",
    "TargetStatus",
    "WorkResult",
    "WorkUnit",
    "compute_delta",
    "run_work_units",
    "scale_down",
    "scale_up",
]
