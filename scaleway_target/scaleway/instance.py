"""Local views of Scaleway servers.

An ``Instance`` is a snapshot of remote truth, never authoritative: the
Scaleway API is re-queried on every scale or status call rather than cached.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum

from .types import ServerResponse


class InstanceStatus(StrEnum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    STOPPED_IN_PLACE = "stopped in place"
    LOCKED = "locked"
    DELETING = "deleting"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> InstanceStatus:
        try:
            return cls(value or "unknown")
        except ValueError:
            return cls.UNKNOWN

    @property
    def transient(self) -> bool:
        return self in (InstanceStatus.STARTING, InstanceStatus.STOPPING)


class ServerAction(StrEnum):
    POWERON = "poweron"
    POWEROFF = "poweroff"

    @property
    def target_states(self) -> frozenset[InstanceStatus]:
        match self:
            case ServerAction.POWERON:
                return frozenset({InstanceStatus.RUNNING})
            case ServerAction.POWEROFF:
                return frozenset({InstanceStatus.STOPPED, InstanceStatus.STOPPED_IN_PLACE})


@dataclass(frozen=True, slots=True)
class Instance:
    """One Scaleway server."""

    id: str
    zone: str
    name: str = ""
    commercial_type: str = ""
    tags: tuple[str, ...] = ()
    status: InstanceStatus = InstanceStatus.UNKNOWN
    volume_ids: tuple[str, ...] = ()

    @classmethod
    def from_response(cls, data: ServerResponse) -> Instance:
        # Volume slots are keyed "0", "1", ...; keep slot order.
        volumes = data.get("volumes") or {}
        ordered = sorted(volumes.items(), key=lambda kv: int(kv[0]) if kv[0].isdigit() else 0)
        return cls(
            id=data["id"],
            zone=data.get("zone", ""),
            name=data.get("name", ""),
            commercial_type=data.get("commercial_type", ""),
            tags=tuple(data.get("tags") or ()),
            status=InstanceStatus.parse(data.get("state")),
            volume_ids=tuple(v["id"] for _, v in ordered if v),
        )


@dataclass(frozen=True, slots=True)
class Inventory:
    """Point-in-time listing of the servers matching a blueprint."""

    instances: tuple[Instance, ...] = ()

    def __len__(self) -> int:
        return len(self.instances)

    def __getitem__(self, index: int) -> Instance:
        return self.instances[index]

    def __iter__(self) -> Iterator[Instance]:
        return iter(self.instances)

    def count(self) -> int:
        return len(self.instances)

    def ready(self) -> bool:
        """Whether every server is running."""
        return all(i.status is InstanceStatus.RUNNING for i in self.instances)

    def ids(self) -> list[str]:
        return [i.id for i in self.instances]

    def with_id(self, instance_id: str) -> Instance | None:
        return next((i for i in self.instances if i.id == instance_id), None)

    def with_ids(self, *ids: str) -> Inventory:
        found = (self.with_id(i) for i in ids)
        return Inventory(tuple(i for i in found if i is not None))

    def with_name(self, name: str) -> Instance | None:
        return next((i for i in self.instances if i.name == name), None)
