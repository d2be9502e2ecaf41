"""Scaleway Instance API response types.

TypedDicts for API responses - no conversion needed.
"""

from __future__ import annotations

from typing import NotRequired, TypedDict


class VolumeResponse(TypedDict):
    """Volume attached to a server."""

    id: str
    name: str
    volume_type: str
    size: int
    zone: str


class ServerResponse(TypedDict):
    """Server as returned by the list, get and create endpoints."""

    id: str
    name: str
    zone: str
    commercial_type: str
    state: str
    tags: list[str]
    volumes: dict[str, VolumeResponse]
    project: NotRequired[str]
    hostname: NotRequired[str]


class ListServersResponse(TypedDict):
    servers: list[ServerResponse]


class ServerEnvelope(TypedDict):
    server: ServerResponse


class TaskResponse(TypedDict):
    """Asynchronous task started by a server action."""

    id: str
    description: str
    status: str
    href_from: NotRequired[str]


class TaskEnvelope(TypedDict):
    task: TaskResponse
