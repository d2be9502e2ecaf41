"""Paginated inventory listing."""

from __future__ import annotations

from loguru import logger

from scaleway_target.config import Blueprint, ServerFilter
from scaleway_target.infra.protocols import ComputeProvider

from .instance import Instance, Inventory

PAGE_SIZE = 100

log = logger.bind(component="inventory")


async def list_all(
    provider: ComputeProvider,
    selector: Blueprint | ServerFilter,
    *,
    page_size: int = PAGE_SIZE,
) -> Inventory:
    """Fetch every server matching ``selector``, page by page.

    Pages are requested from 1 upward until one comes back empty, and are
    concatenated in arrival order. A failing page aborts the whole listing;
    nothing partial is returned.

    A selector without name, zone, commercial type or tags matches every
    server of the account in the default zone.
    """
    server_filter = selector.filter() if isinstance(selector, Blueprint) else selector

    instances: list[Instance] = []
    page = 1
    while True:
        batch = await provider.list_servers(server_filter, page=page, per_page=page_size)
        page += 1
        if not batch:
            break
        instances.extend(batch)

    log.debug("Fetched {n} servers in {pages} pages", n=len(instances), pages=page - 1)
    return Inventory(tuple(instances))
