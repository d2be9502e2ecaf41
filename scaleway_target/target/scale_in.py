"""Identity translation around the cluster's scale-in hooks.

The cluster knows nodes, Scaleway knows servers. Before servers are removed
the cluster hooks pick and drain nodes; this module maps servers to nodes
(hostname lookup) and the selected nodes back to servers so they can be
deleted.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from loguru import logger

from scaleway_target.config import Blueprint, ServerFilter
from scaleway_target.core.exceptions import ConfigurationError, InstanceNotFoundError
from scaleway_target.infra.protocols import ClusterHooks, ComputeProvider, SelectedNode
from scaleway_target.scaleway.instance import Instance, Inventory
from scaleway_target.scaleway.inventory import list_all

HOSTNAME_ATTRIBUTE = "unique.hostname"

log = logger.bind(component="scale_in")


@dataclass(frozen=True, slots=True)
class ScaleInPlan:
    """Nodes selected for removal and the inventory they were picked from."""

    nodes: tuple[SelectedNode, ...]
    inventory: Inventory

    def __len__(self) -> int:
        return len(self.nodes)

    def instance_for(self, node: SelectedNode) -> Instance:
        instance = self.inventory.with_id(node.remote_id)
        if instance is None:
            raise InstanceNotFoundError(node.remote_id)
        return instance


class ScaleInCoordinator:
    def __init__(self, provider: ComputeProvider, hooks: ClusterHooks | None = None) -> None:
        self.provider = provider
        self.hooks = hooks

    def _require_hooks(self) -> ClusterHooks:
        if self.hooks is None:
            raise ConfigurationError("cluster hooks are not configured")
        return self.hooks

    async def select_candidates(
        self, blueprint: Blueprint, config: Mapping[str, str], n: int
    ) -> ScaleInPlan:
        """Let the cluster pick and drain ``n`` nodes backed by the pool's servers."""
        inventory = await list_all(self.provider, blueprint)
        selected = await self._require_hooks().pre_scale_in(config, inventory.ids(), n)

        nodes: list[SelectedNode] = []
        for node in selected:
            if inventory.with_id(node.remote_id) is None:
                log.bind(node_id=node.node_id).warning(
                    "Selected node maps to server {rid} outside the pool, skipping",
                    rid=node.remote_id,
                )
                continue
            nodes.append(node)

        log.debug("Selected {n} of {want} nodes for removal", n=len(nodes), want=n)
        return ScaleInPlan(nodes=tuple(nodes), inventory=inventory)

    async def run_post_scale_in(
        self, config: Mapping[str, str], nodes: Sequence[SelectedNode]
    ) -> None:
        await self._require_hooks().post_scale_in(config, nodes)

    async def lookup_remote_id(
        self, attributes: Mapping[str, str], zone: str | None = None
    ) -> str:
        """Translate a cluster node to the id of the server it runs on.

        Servers are matched on the node's ``unique.hostname`` attribute,
        in ``zone`` when given (the pool's zone), else the default zone.

        Raises:
            ConfigurationError: The node has no hostname attribute.
            InstanceNotFoundError: No server carries that name.
        """
        name = attributes.get(HOSTNAME_ATTRIBUTE)
        if not name:
            raise ConfigurationError(
                f"attribute {HOSTNAME_ATTRIBUTE} does not exist or has no value"
            )

        inventory = await list_all(self.provider, ServerFilter(name=name, zone=zone))
        server = inventory.with_name(name)
        if server is None:
            raise InstanceNotFoundError(name)
        return server.id
