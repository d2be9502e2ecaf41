"""Nomad autoscaler target plugin for Scaleway Instances.

The autoscaler decides how many servers a pool needs; this plugin makes the
Scaleway side match and reports back whether the pool is ready to be
evaluated again.

Example:
    target = ScalewayTarget()
    target.set_config({"secret_key": "...", "project_id": "...", "zone": "fr-par-1"})

    policy = {"name": "nomad-client", "commercial_type": "DEV1-S", "node_class": "web"}
    status = await target.status(policy)
    await target.scale(ScalingAction(ScaleDirection.UP, count=status.count + 2), policy)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field

from loguru import logger

from scaleway_target.config import Blueprint, ServerOpt, TargetConfig
from scaleway_target.core.exceptions import ConfigurationError
from scaleway_target.infra.protocols import ClusterHooks, ComputeProvider
from scaleway_target.nomad.client import NomadClient
from scaleway_target.nomad.scaleutils import NomadClusterHooks
from scaleway_target.observability import LogConfig, setup_logging, teardown_logging
from scaleway_target.scaleway.client import ScalewayClient
from scaleway_target.scaleway.inventory import list_all

from .orchestrator import (
    ScaleDirection,
    ScaleReport,
    ScalingAction,
    compute_delta,
    scale_down,
    scale_up,
)
from .scale_in import ScaleInCoordinator
from .state import StateGuard

PLUGIN_NAME = "scaleway"
PLUGIN_TYPE = "target"

# Ceiling for a whole scale call, drains and power waits included.
SCALE_DEADLINE = 60 * 60.0


@dataclass(frozen=True, slots=True)
class PluginInfo:
    name: str
    plugin_type: str


@dataclass(frozen=True, slots=True)
class TargetStatus:
    ready: bool
    count: int = 0
    meta: dict[str, str] = field(default_factory=dict)


class ScalewayTarget:
    """Target plugin entry point: ``set_config``, ``scale`` and ``status``.

    ``provider`` and ``hooks`` can be injected directly (tests, embedding);
    otherwise ``set_config`` builds the Scaleway and Nomad clients.
    """

    def __init__(
        self,
        provider: ComputeProvider | None = None,
        hooks: ClusterHooks | None = None,
        *,
        deadline: float = SCALE_DEADLINE,
    ) -> None:
        self.state = StateGuard()
        # Serializes scale calls; the guard stays Active while any is pending.
        self._scale_lock = asyncio.Lock()
        self.deadline = deadline
        self.provider = provider
        self.coordinator = ScaleInCoordinator(provider, hooks) if provider is not None else None
        self._log = logger.bind(component="plugin", provider=PLUGIN_NAME)
        self._log_handlers: list[int] = []

    def plugin_info(self) -> PluginInfo:
        return PluginInfo(name=PLUGIN_NAME, plugin_type=PLUGIN_TYPE)

    def set_config(self, config: Mapping[str, str]) -> None:
        """Build the Scaleway and Nomad clients from the plugin settings.

        ``log_level`` or ``log_file`` in the settings also installs the
        package log sinks.
        """
        if "log_level" in config or "log_file" in config:
            teardown_logging(self._log_handlers)
            self._log_handlers = setup_logging(LogConfig.from_map(config))
        self._log.debug("Set config with keys {keys}", keys=sorted(config))
        target_config = TargetConfig.from_map(config)
        if not target_config.secret_key:
            raise ConfigurationError("secret_key is required (or SCW_SECRET_KEY)")

        client = ScalewayClient(target_config)
        coordinator = ScaleInCoordinator(client)
        coordinator.hooks = NomadClusterHooks(
            NomadClient(target_config.nomad), lookup=coordinator.lookup_remote_id,
        )
        self.provider = client
        self.coordinator = coordinator

    def _require_provider(self) -> tuple[ComputeProvider, ScaleInCoordinator]:
        if self.provider is None or self.coordinator is None:
            raise ConfigurationError("plugin is not configured, call set_config first")
        return self.provider, self.coordinator

    async def scale(
        self, action: ScalingAction, config: Mapping[str, str]
    ) -> ScaleReport | None:
        """Converge the pool described by ``config`` toward ``action.count``.

        Failures of individual creates or deletes are logged and returned in
        the report; they do not make this call raise. Configuration, listing
        and scale-in hook failures do.

        Overlapping calls run one at a time, each against a fresh listing.
        The guard stays Active until the last of them returns.
        """
        log = self._log.bind(direction=str(action.direction))
        log.debug("Received scale action count={count} reason={reason}",
                  count=action.count, reason=action.reason)

        with self.state.active():
            # Nothing to plan: Scaleway has no dry-run mode.
            if action.dry_run:
                return None
            if action.direction == ScaleDirection.NONE:
                return None

            blueprint = Blueprint.from_map(config)
            opt = ServerOpt.from_map(config)
            provider, coordinator = self._require_provider()

            if self._scale_lock.locked():
                log.debug("Waiting for the scale call in flight to finish")
            async with self._scale_lock, asyncio.timeout(self.deadline):
                servers = await list_all(provider, blueprint)
                delta = compute_delta(action, servers.count())
                log.debug("Scaling with {n} current servers, delta {delta}",
                          n=servers.count(), delta=delta)

                match action.direction:
                    case ScaleDirection.UP:
                        report = await scale_up(provider, blueprint, delta, opt)
                    case ScaleDirection.DOWN:
                        report = await scale_down(provider, coordinator, blueprint, -delta, config)
                    case _:
                        log.warning("Unknown scale direction: {d}", d=action.direction)
                        return None

        if report.failed:
            log.error(
                "Scale finished with {failed} of {total} units failed",
                failed=len(report.failed), total=len(report.results),
            )
        else:
            log.info("Scale finished, {total} units succeeded", total=len(report.results))
        return report

    async def status(self, config: Mapping[str, str]) -> TargetStatus:
        """Report readiness and current server count of the pool.

        While a scale call is in flight the pool is reported not ready and
        no remote call is made.
        """
        if self.state.is_active:
            return TargetStatus(ready=False)

        provider, coordinator = self._require_provider()
        if coordinator.hooks is not None and not await coordinator.hooks.is_pool_ready(config):
            return TargetStatus(ready=False)

        blueprint = Blueprint.from_map(config)

        self._log.debug("Fetching servers from Scaleway")
        servers = await list_all(provider, blueprint)
        self._log.debug("Finished fetching servers from Scaleway")

        return TargetStatus(ready=servers.ready(), count=servers.count())

    async def close(self) -> None:
        for resource in (self.provider, self.coordinator and self.coordinator.hooks):
            closer = getattr(resource, "close", None)
            if closer is not None:
                await closer()
        if self._log_handlers:
            teardown_logging(self._log_handlers)
            self._log_handlers = []
