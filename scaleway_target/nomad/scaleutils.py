"""Nomad implementation of the cluster scale-in hooks.

Nodes belong to the pool when they match every configured ``node_class``,
``datacenter`` and ``node_pool``. Scale-in picks ready, eligible nodes by
create index, keeps only those whose server is part of the Scaleway pool,
then drains them before the servers are deleted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_delay,
    wait_fixed,
)

from scaleway_target.config import PoolConfig, parse_zone
from scaleway_target.core.exceptions import (
    ConfigurationError,
    InstanceNotFoundError,
    NomadError,
)
from scaleway_target.infra.protocols import SelectedNode

from .client import NodeStub, NomadClient

# Maps node attributes (and the policy zone, None for the default) to a server id.
type RemoteIdLookup = Callable[[Mapping[str, str], str | None], Awaitable[str]]

# Extra time allowed on top of the drain deadline for Nomad to report completion.
DRAIN_GRACE = 60.0

log = logger.bind(component="scaleutils")


class _DrainPendingError(Exception):
    """Node still has a drain strategy - poll again."""


def _in_pool(node: NodeStub, pool: PoolConfig) -> bool:
    if pool.node_class and node.get("NodeClass") != pool.node_class:
        return False
    if pool.datacenter and node.get("Datacenter") != pool.datacenter:
        return False
    if pool.node_pool and node.get("NodePool") != pool.node_pool:
        return False
    return True


def select_nodes(nodes: Sequence[NodeStub], pool: PoolConfig) -> list[NodeStub]:
    """Scale-in candidates of the pool, in removal order."""
    eligible = [
        n for n in nodes
        if _in_pool(n, pool)
        and n.get("Status") == "ready"
        and n.get("SchedulingEligibility") == "eligible"
        and not n.get("Drain")
    ]
    newest_first = pool.selector_strategy == "newest_create_index"
    return sorted(eligible, key=lambda n: n.get("CreateIndex", 0), reverse=newest_first)


class NomadClusterHooks:
    def __init__(
        self,
        client: NomadClient,
        lookup: RemoteIdLookup,
        *,
        poll_interval: float = 5.0,
    ) -> None:
        self.client = client
        self.lookup = lookup
        self._poll_interval = poll_interval

    async def close(self) -> None:
        await self.client.close()

    async def _pool_nodes(self, pool: PoolConfig) -> list[NodeStub]:
        return [n for n in await self.client.list_nodes() if _in_pool(n, pool)]

    async def is_pool_ready(self, config: Mapping[str, str]) -> bool:
        """False while any pool node is still initializing or draining."""
        pool = PoolConfig.from_map(config)
        for node in await self._pool_nodes(pool):
            if node.get("Status") == "initializing" or node.get("Drain"):
                log.bind(node_id=node["ID"]).debug(
                    "Pool not ready: node status={status} drain={drain}",
                    status=node.get("Status"), drain=node.get("Drain"),
                )
                return False
        return True

    async def pre_scale_in(
        self, config: Mapping[str, str], remote_ids: Sequence[str], n: int
    ) -> list[SelectedNode]:
        pool = PoolConfig.from_map(config)
        zone = parse_zone(config.get("zone"))
        wanted = set(remote_ids)

        selected: list[SelectedNode] = []
        for stub in select_nodes(await self.client.list_nodes(), pool):
            if len(selected) >= n:
                break
            node = await self.client.get_node(stub["ID"])
            try:
                remote_id = await self.lookup(node.get("Attributes") or {}, zone)
            except (InstanceNotFoundError, ConfigurationError) as e:
                log.bind(node_id=stub["ID"]).warning("Skipping node: {err}", err=e)
                continue
            if remote_id not in wanted:
                continue
            selected.append(SelectedNode(node_id=stub["ID"], remote_id=remote_id))

        if len(selected) < n:
            log.warning("Only {found} of {n} nodes could be selected for scale-in",
                        found=len(selected), n=n)

        try:
            async with asyncio.TaskGroup() as tg:
                for node in selected:
                    tg.create_task(self._drain(node.node_id, pool))
        except ExceptionGroup as eg:
            # The group has already cancelled and awaited the other drains.
            for extra in eg.exceptions[1:]:
                log.warning("Drain also failed: {err}", err=extra)
            raise eg.exceptions[0] from None
        return selected

    async def _drain(self, node_id: str, pool: PoolConfig) -> None:
        await self.client.drain_node(
            node_id,
            deadline=pool.drain_deadline,
            ignore_system_jobs=pool.drain_ignore_system_jobs,
        )
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(pool.drain_deadline + DRAIN_GRACE),
                wait=wait_fixed(self._poll_interval),
                retry=retry_if_exception_type(_DrainPendingError),
            ):
                with attempt:
                    node = await self.client.get_node(node_id)
                    if node.get("DrainStrategy"):
                        raise _DrainPendingError(node_id)
        except RetryError as e:
            raise NomadError(f"Node {node_id} did not finish draining") from e
        log.bind(node_id=node_id).info("Node drained")

    async def post_scale_in(
        self, config: Mapping[str, str], nodes: Sequence[SelectedNode]
    ) -> None:
        pool = PoolConfig.from_map(config)
        if not pool.purge:
            return
        for node in nodes:
            await self.client.purge_node(node.node_id)
