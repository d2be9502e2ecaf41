"""Capability protocols at the edges of the orchestration core.

The core only ever talks to the compute provider and to the cluster
coordination system through these narrow surfaces, so it can be exercised
against in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from scaleway_target.config import Blueprint, ServerFilter
    from scaleway_target.scaleway.instance import Instance, ServerAction


# =============================================================================
# Compute provider
# =============================================================================


@runtime_checkable
class ComputeProvider(Protocol):
    """Remote compute operations used by the lifecycle driver and fetcher."""

    async def list_servers(
        self, server_filter: ServerFilter, *, page: int, per_page: int
    ) -> list[Instance]:
        """Return one page of servers matching ``server_filter``."""
        ...

    async def create_server(self, blueprint: Blueprint) -> Instance: ...

    async def set_user_data(self, instance: Instance, data: Mapping[str, str]) -> None: ...

    async def action_and_wait(
        self, instance: Instance, action: ServerAction, *, timeout: float
    ) -> Instance:
        """Run ``action`` and block until the server settles or ``timeout`` passes."""
        ...

    async def delete_server(self, instance: Instance) -> None: ...

    async def delete_volume(self, zone: str, volume_id: str) -> None: ...


# =============================================================================
# Cluster coordination
# =============================================================================


@dataclass(frozen=True, slots=True)
class SelectedNode:
    """A cluster node chosen for removal and the server backing it."""

    node_id: str
    remote_id: str


@runtime_checkable
class ClusterHooks(Protocol):
    """Pre/post scale-in steps run by the cluster orchestrator."""

    async def pre_scale_in(
        self, config: Mapping[str, str], remote_ids: Sequence[str], n: int
    ) -> list[SelectedNode]:
        """Pick and drain up to ``n`` nodes whose servers are in ``remote_ids``."""
        ...

    async def post_scale_in(
        self, config: Mapping[str, str], nodes: Sequence[SelectedNode]
    ) -> None: ...

    async def is_pool_ready(self, config: Mapping[str, str]) -> bool: ...
