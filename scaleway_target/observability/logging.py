"""Logging configuration for the Scaleway target.

Modules log through loguru with bound context (``component``, ``instance_id``,
``node_id``...). The package is silent until the host process calls
``setup_logging``; the autoscaler plugin settings can carry ``log_level`` and
``log_file`` to drive it.

Example:
    from scaleway_target.observability import LogConfig, setup_logging

    handler_ids = setup_logging(LogConfig.from_map({"log_level": "DEBUG"}))
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, cast, get_args

from loguru import logger

PACKAGE = "scaleway_target"

logger.disable(PACKAGE)

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

# Rendered in this order after the location, as ``[key=value ...]``.
CONTEXT_KEYS = ("component", "provider", "direction", "zone", "instance_id", "node_id")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> "
    "<cyan>{name}</cyan><dim>{extra[_ctx]}</dim> {message}"
)

FILE_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZZ} {level: <7} {name}:{line}{extra[_ctx]} {message}"


def _render_context(record: Any) -> None:
    extra = record["extra"]
    pairs = " ".join(f"{key}={extra[key]}" for key in CONTEXT_KEYS if key in extra)
    extra["_ctx"] = f" [{pairs}]" if pairs else ""


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where and how verbosely the target logs.

    Attributes:
        level: Minimum level for the console sink. The file sink always
            records DEBUG and above.
        file: Log file path; None disables the file sink.
        console: Log to stderr.
        rotation: Size or age at which the log file rotates.
        retention: Rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10

    @classmethod
    def from_map(cls, config: Mapping[str, str]) -> LogConfig:
        level = config.get("log_level", "INFO").upper()
        if level not in get_args(LogLevel.__value__):
            level = "INFO"
        return cls(level=cast(LogLevel, level), file=config.get("log_file") or None)


def setup_logging(config: LogConfig) -> list[int]:
    """Enable package logging and install sinks; returns handler ids."""
    logger.remove()
    logger.configure(patcher=_render_context)
    logger.enable(PACKAGE)

    handler_ids: list[int] = []
    if config.console:
        handler_ids.append(logger.add(
            sys.stderr, level=config.level, format=CONSOLE_FORMAT, colorize=True, filter=PACKAGE,
        ))
    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(logger.add(
            config.file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            diagnose=False,
            filter=PACKAGE,
        ))
    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable(PACKAGE)
