"""Process-wide single-flight flag for scale operations."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum


class PoolState(Enum):
    IDLE = 0
    ACTIVE = 1


class StateGuard:
    """Idle/Active flag shared by ``scale`` and ``status``.

    While Active, ``status`` reports the pool as not ready without calling
    any remote API. Lives for the whole process and starts Idle.

    ``active()`` counts its holders: overlapping blocks keep the guard
    Active until the last one exits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = PoolState.IDLE
        self._holders = 0

    def set_active(self) -> None:
        with self._lock:
            self._state = PoolState.ACTIVE

    def set_idle(self) -> None:
        with self._lock:
            self._state = PoolState.IDLE

    def get(self) -> PoolState:
        with self._lock:
            return self._state

    @property
    def is_active(self) -> bool:
        return self.get() is PoolState.ACTIVE

    @property
    def holders(self) -> int:
        with self._lock:
            return self._holders

    @contextmanager
    def active(self) -> Iterator[None]:
        """Hold the Active state for the duration of the block."""
        with self._lock:
            self._holders += 1
            self._state = PoolState.ACTIVE
        try:
            yield
        finally:
            with self._lock:
                self._holders -= 1
                if self._holders == 0:
                    self._state = PoolState.IDLE
