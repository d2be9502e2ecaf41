"""Scaleway Instance API support: client, inventory listing and lifecycle."""

from .client import DEFAULT_ZONE, ScalewayClient
from .instance import Instance, InstanceStatus, Inventory, ServerAction
from .inventory import PAGE_SIZE, list_all
from .lifecycle import (
    POWER_OFF_TIMEOUT,
    POWER_ON_TIMEOUT,
    TeardownReport,
    deprovision,
    provision,
)

__all__ = [
    "DEFAULT_ZONE",
    "PAGE_SIZE",
    "POWER_OFF_TIMEOUT",
    "POWER_ON_TIMEOUT",
    "Instance",
    "InstanceStatus",
    "Inventory",
    "ScalewayClient",
    "ServerAction",
    "TeardownReport",
    "deprovision",
    "list_all",
    "provision",
]
