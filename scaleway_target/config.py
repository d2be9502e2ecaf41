"""Decoding of the flat string maps handed over by the Nomad autoscaler.

The autoscaler passes every setting as ``dict[str, str]``: plugin settings to
``set_config`` and policy target settings to ``scale``/``status``. This module
turns those maps into immutable, typed values. Unknown keys are ignored, since
the same map also carries keys meant for the autoscaler itself.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from scaleway_target.core.exceptions import ConfigurationError

type RawConfig = Mapping[str, str]

PROVENANCE_TAGS: tuple[str, ...] = ("nomad", "client", "autoscaler")

DEFAULT_API_URL = "https://api.scaleway.com"
DEFAULT_NOMAD_ADDRESS = "http://127.0.0.1:4646"
DEFAULT_DRAIN_DEADLINE = 15 * 60.0

_ZONE_RE = re.compile(r"^[a-z]{2}-[a-z]{3}-[0-9]+$")
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


# =============================================================================
# Value parsers
# =============================================================================


def parse_bool(value: str | None, *, key: str) -> bool:
    """Parse a strict ``"true"``/``"false"`` value. Missing means False."""
    match value:
        case None:
            return False
        case "true":
            return True
        case "false":
            return False
        case _:
            raise ConfigurationError(f"{key}: text is not a boolean: {value!r}")


def parse_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def parse_zone(value: str | None) -> str | None:
    if not value:
        return None
    if not _ZONE_RE.match(value):
        raise ConfigurationError(f"invalid zone: {value!r}")
    return value


def parse_duration(value: str | None, *, default: float, key: str) -> float:
    """Parse a Go style duration (``"15m"``, ``"1h30m"``, ``"90s"``) into seconds."""
    if not value:
        return default
    if value.isdigit():
        return float(value)
    matches = list(_DURATION_RE.finditer(value))
    if not matches or "".join(m.group(0) for m in matches) != value:
        raise ConfigurationError(f"{key}: invalid duration: {value!r}")
    return sum(float(m.group(1)) * _DURATION_UNITS[m.group(2)] for m in matches)


def _file_or_literal(text: str) -> str:
    """Return the contents of ``text`` when it names an existing file, else ``text``."""
    try:
        path = Path(text)
        is_file = path.is_file()
    except (OSError, ValueError):
        return text
    if not is_file:
        return text
    try:
        return path.read_text()
    except OSError as e:
        raise ConfigurationError(f"could not read {text}: {e}") from e


def parse_user_data(value: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs separated by commas or newlines.

    The whole value and each individual value may be a path to a local file,
    in which case the file contents are used instead.
    """
    if value is None:
        return {}
    text = _file_or_literal(value)
    data: dict[str, str] = {}
    for line in text.replace(",", "\n").split("\n"):
        key, sep, raw = line.partition("=")
        if sep and key:
            data[key] = _file_or_literal(raw)
    return data


# =============================================================================
# Blueprint
# =============================================================================


@dataclass(frozen=True, slots=True)
class ServerFilter:
    """Listing filter derived from a blueprint's non-empty fields."""

    name: str | None = None
    zone: str | None = None
    commercial_type: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Blueprint:
    """Description of the servers making up one pool.

    Used both as a template for new servers and as the filter that finds the
    existing ones. ``tags`` always starts with the provenance tags.
    """

    name: str = ""
    zone: str | None = None
    commercial_type: str = ""
    tags: tuple[str, ...] = PROVENANCE_TAGS
    image: str | None = None
    security_group: str | None = None
    placement_group: str | None = None
    dynamic_ip: bool = False
    enable_ipv6: bool = False

    @classmethod
    def from_map(cls, config: RawConfig) -> Blueprint:
        return cls(
            name=config.get("name", ""),
            zone=parse_zone(config.get("zone")),
            commercial_type=config.get("commercial_type", ""),
            tags=PROVENANCE_TAGS + parse_list(config.get("tags")),
            image=config.get("image"),
            security_group=config.get("security_group"),
            placement_group=config.get("placement_group"),
            dynamic_ip=parse_bool(config.get("dynamic_ip"), key="dynamic_ip"),
            enable_ipv6=parse_bool(config.get("enable_ipv6"), key="enable_ipv6"),
        )

    def filter(self) -> ServerFilter:
        return ServerFilter(
            name=self.name or None,
            zone=self.zone,
            commercial_type=self.commercial_type or None,
            tags=self.tags,
        )


@dataclass(frozen=True, slots=True)
class ServerOpt:
    """Post-create configuration applied to every new server."""

    user_data: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_map(cls, config: RawConfig) -> ServerOpt:
        return cls(user_data=parse_user_data(config.get("user_data")))


# =============================================================================
# Plugin configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class NomadConfig:
    """Connection settings for the Nomad API."""

    address: str = DEFAULT_NOMAD_ADDRESS
    token: str | None = None
    region: str | None = None
    namespace: str | None = None

    @classmethod
    def from_map(cls, config: RawConfig) -> NomadConfig:
        return cls(
            address=config.get("nomad_address") or os.environ.get("NOMAD_ADDR") or DEFAULT_NOMAD_ADDRESS,
            token=config.get("nomad_token") or os.environ.get("NOMAD_TOKEN"),
            region=config.get("nomad_region") or os.environ.get("NOMAD_REGION"),
            namespace=config.get("nomad_namespace") or os.environ.get("NOMAD_NAMESPACE"),
        )


@dataclass(frozen=True, slots=True)
class TargetConfig:
    """Plugin level settings, given once through ``set_config``.

    Unset credentials fall back to the standard ``SCW_*`` environment
    variables.
    """

    access_key: str | None = None
    secret_key: str | None = None
    organization_id: str | None = None
    project_id: str | None = None
    region: str | None = None
    zone: str | None = None
    api_url: str = DEFAULT_API_URL
    nomad: NomadConfig = field(default_factory=NomadConfig)

    @classmethod
    def from_map(cls, config: RawConfig) -> TargetConfig:
        return cls(
            access_key=config.get("access_key") or os.environ.get("SCW_ACCESS_KEY"),
            secret_key=config.get("secret_key") or os.environ.get("SCW_SECRET_KEY"),
            organization_id=config.get("organization_id") or os.environ.get("SCW_DEFAULT_ORGANIZATION_ID"),
            project_id=config.get("project_id") or os.environ.get("SCW_DEFAULT_PROJECT_ID"),
            region=config.get("region") or os.environ.get("SCW_DEFAULT_REGION"),
            zone=parse_zone(config.get("zone") or os.environ.get("SCW_DEFAULT_ZONE")),
            api_url=config.get("api_url") or os.environ.get("SCW_API_URL") or DEFAULT_API_URL,
            nomad=NomadConfig.from_map(config),
        )


# =============================================================================
# Cluster pool settings
# =============================================================================

type SelectorStrategy = Literal["newest_create_index", "oldest_create_index"]


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """Which Nomad nodes form the pool and how they are scaled in."""

    node_class: str | None = None
    datacenter: str | None = None
    node_pool: str | None = None
    selector_strategy: SelectorStrategy = "newest_create_index"
    drain_deadline: float = DEFAULT_DRAIN_DEADLINE
    drain_ignore_system_jobs: bool = False
    purge: bool = False

    @classmethod
    def from_map(cls, config: RawConfig) -> PoolConfig:
        strategy = config.get("node_selector_strategy") or "newest_create_index"
        if strategy not in ("newest_create_index", "oldest_create_index"):
            raise ConfigurationError(f"unsupported node_selector_strategy: {strategy!r}")
        pool = cls(
            node_class=config.get("node_class"),
            datacenter=config.get("datacenter"),
            node_pool=config.get("node_pool"),
            selector_strategy=strategy,  # type: ignore[arg-type]
            drain_deadline=parse_duration(
                config.get("node_drain_deadline"),
                default=DEFAULT_DRAIN_DEADLINE,
                key="node_drain_deadline",
            ),
            drain_ignore_system_jobs=parse_bool(
                config.get("node_drain_ignore_system_jobs"),
                key="node_drain_ignore_system_jobs",
            ),
            purge=parse_bool(config.get("node_purge"), key="node_purge"),
        )
        if not (pool.node_class or pool.datacenter or pool.node_pool):
            raise ConfigurationError(
                "one of node_class, datacenter or node_pool is required to identify the pool"
            )
        return pool
