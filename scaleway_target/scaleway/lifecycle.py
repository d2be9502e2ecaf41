"""Lifecycle operations (provision, deprovision) for single Scaleway servers.

Both operations are plain step sequences with no state kept between calls;
the Scaleway API is the only record of where a server is in its lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from scaleway_target.config import Blueprint, ServerOpt
from scaleway_target.core.exceptions import VolumeCleanupError
from scaleway_target.infra.protocols import ComputeProvider

from .instance import Instance, ServerAction

POWER_ON_TIMEOUT = 3 * 60.0
POWER_OFF_TIMEOUT = 5 * 60.0


@dataclass(frozen=True, slots=True)
class TeardownReport:
    """What a successful deprovision removed."""

    instance_id: str
    volume_ids: tuple[str, ...]


async def provision(
    provider: ComputeProvider,
    blueprint: Blueprint,
    opt: ServerOpt | None = None,
    *,
    timeout: float = POWER_ON_TIMEOUT,
) -> Instance:
    """Create a server from the blueprint and bring it into service.

    Steps: create, apply user data (when ``opt`` carries any), power on and
    wait. The first failing step aborts the sequence; the server may then be
    left behind stopped and is picked up by the next inventory listing.

    Args:
        provider: Compute provider to act on.
        blueprint: Template for the new server.
        opt: Post-create configuration.
        timeout: Upper bound for the power-on wait, in seconds.

    Returns:
        The running server.
    """
    server = await provider.create_server(blueprint)
    log = logger.bind(component="lifecycle", instance_id=server.id)
    log.debug("Server created")

    if opt is not None and opt.user_data:
        await provider.set_user_data(server, opt.user_data)
        log.debug("Applied {n} user data keys", n=len(opt.user_data))

    running = await provider.action_and_wait(server, ServerAction.POWERON, timeout=timeout)
    log.info("Server running")
    return running


async def deprovision(
    provider: ComputeProvider,
    instance: Instance,
    *,
    timeout: float = POWER_OFF_TIMEOUT,
) -> TeardownReport:
    """Take a server out of service and delete it with its volumes.

    Steps run strictly in order: power off and wait, delete the server,
    delete each volume. Scaleway refuses to delete a running server or an
    attached volume, and a server that failed to power off may still be
    serving, so a power-off failure stops the sequence before any deletion.

    Raises:
        VolumeCleanupError: A volume could not be deleted. Volumes deleted
            before it stay deleted; the rest are listed as remaining.
    """
    log = logger.bind(component="lifecycle", instance_id=instance.id)

    await provider.action_and_wait(instance, ServerAction.POWEROFF, timeout=timeout)
    log.debug("Server powered off")

    await provider.delete_server(instance)
    log.debug("Server deleted")

    deleted: list[str] = []
    for index, volume_id in enumerate(instance.volume_ids):
        try:
            await provider.delete_volume(instance.zone, volume_id)
        except Exception as e:
            raise VolumeCleanupError(
                instance.id,
                deleted=tuple(deleted),
                remaining=instance.volume_ids[index:],
                cause=e,
            ) from e
        deleted.append(volume_id)

    log.info("Server removed with {n} volumes", n=len(deleted))
    return TeardownReport(instance_id=instance.id, volume_ids=tuple(deleted))
