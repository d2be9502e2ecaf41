"""Scale-up/scale-down orchestration over a bounded worker pool.

Each scale call turns into one ``WorkUnit`` per server to create or delete.
A fixed number of workers (never more than ``MAX_WORKERS``) drain a shared
queue of units; the call returns once every worker has exited. A failing
unit is logged and recorded in the ``ScaleReport`` and never stops its
siblings.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

from loguru import logger

from scaleway_target.config import Blueprint, ServerOpt
from scaleway_target.core.exceptions import InvalidScaleError
from scaleway_target.infra.protocols import ComputeProvider
from scaleway_target.scaleway.instance import Instance
from scaleway_target.scaleway.lifecycle import (
    POWER_OFF_TIMEOUT,
    POWER_ON_TIMEOUT,
    deprovision,
    provision,
)

if TYPE_CHECKING:
    from .scale_in import ScaleInCoordinator

MAX_WORKERS = 5

# Count the autoscaler sends when a policy only wants a plan, not a change.
DRY_RUN_COUNT = -1

log = logger.bind(component="orchestrator")


# =============================================================================
# Actions
# =============================================================================


class ScaleDirection(StrEnum):
    UP = "up"
    DOWN = "down"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class ScalingAction:
    direction: ScaleDirection
    count: int
    reason: str = ""

    @property
    def dry_run(self) -> bool:
        return self.count == DRY_RUN_COUNT


def compute_delta(action: ScalingAction, observed: int) -> int:
    """Signed difference between the requested and the observed count."""
    return action.count - observed


# =============================================================================
# Work units
# =============================================================================


@dataclass(frozen=True, slots=True)
class WorkUnit:
    """One server to create (from ``blueprint``) or delete (``instance``)."""

    kind: Literal["create", "delete"]
    blueprint: Blueprint | None = None
    instance: Instance | None = None

    @classmethod
    def create(cls, blueprint: Blueprint) -> WorkUnit:
        return cls(kind="create", blueprint=blueprint)

    @classmethod
    def delete(cls, instance: Instance) -> WorkUnit:
        return cls(kind="delete", instance=instance)


@dataclass(frozen=True, slots=True)
class WorkResult:
    unit: WorkUnit
    instance_id: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class ScaleReport:
    """Outcome of one scale call, one result per work unit."""

    results: tuple[WorkResult, ...] = ()
    workers: int = 0

    @property
    def succeeded(self) -> tuple[WorkResult, ...]:
        return tuple(r for r in self.results if r.ok)

    @property
    def failed(self) -> tuple[WorkResult, ...]:
        return tuple(r for r in self.results if not r.ok)

    @property
    def ok(self) -> bool:
        return not self.failed


type UnitFn = Callable[[WorkUnit], Awaitable[str | None]]


async def run_work_units(
    units: Sequence[WorkUnit],
    fn: UnitFn,
    *,
    max_workers: int = MAX_WORKERS,
) -> ScaleReport:
    """Run ``fn`` over ``units`` with ``min(len(units), max_workers)`` workers.

    Blocks until every worker has drained the queue and exited.
    """
    workers = min(len(units), max_workers)
    if workers == 0:
        return ScaleReport()

    queue: asyncio.Queue[WorkUnit] = asyncio.Queue()
    for unit in units:
        queue.put_nowait(unit)

    results: list[WorkResult] = []

    async def worker(index: int) -> None:
        while True:
            try:
                unit = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            subject = unit.instance.id if unit.instance else None
            try:
                instance_id = await fn(unit)
            except Exception as e:
                log.bind(instance_id=subject or "-").error(
                    "Error while running {kind} unit on worker {w}: {err}",
                    kind=unit.kind, w=index, err=e,
                )
                results.append(WorkResult(unit, subject, e))
            else:
                results.append(WorkResult(unit, instance_id))

    log.debug("Dispatching {n} units to {w} workers", n=len(units), w=workers)
    await asyncio.gather(*(worker(i) for i in range(workers)))
    return ScaleReport(results=tuple(results), workers=workers)


# =============================================================================
# Scale operations
# =============================================================================


async def scale_up(
    provider: ComputeProvider,
    blueprint: Blueprint,
    n: int,
    opt: ServerOpt | None = None,
    *,
    timeout: float = POWER_ON_TIMEOUT,
) -> ScaleReport:
    """Create ``n`` servers from ``blueprint``."""
    if n < 0:
        raise InvalidScaleError(n)

    async def create(unit: WorkUnit) -> str:
        assert unit.blueprint is not None
        server = await provision(provider, unit.blueprint, opt, timeout=timeout)
        return server.id

    return await run_work_units([WorkUnit.create(blueprint)] * n, create)


async def scale_down(
    provider: ComputeProvider,
    coordinator: ScaleInCoordinator,
    blueprint: Blueprint,
    n: int,
    config: Mapping[str, str],
    *,
    timeout: float = POWER_OFF_TIMEOUT,
) -> ScaleReport:
    """Remove ``n`` servers, bracketed by the cluster's scale-in hooks.

    Only servers the pre-scale-in step selected and drained become delete
    units. The post-scale-in step runs once every delete unit has finished.
    """
    if n < 0:
        raise InvalidScaleError(n)
    if n == 0:
        return ScaleReport()

    plan = await coordinator.select_candidates(blueprint, config, n)

    async def delete(unit: WorkUnit) -> str:
        assert unit.instance is not None
        await deprovision(provider, unit.instance, timeout=timeout)
        return unit.instance.id

    units = [WorkUnit.delete(plan.instance_for(node)) for node in plan.nodes]
    report = await run_work_units(units, delete)

    await coordinator.run_post_scale_in(config, plan.nodes)
    return report
