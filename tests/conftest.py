from __future__ import annotations

from collections.abc import Iterator

import pytest
from loguru import logger


@pytest.fixture
def captured_logs() -> Iterator[list[dict]]:
    """Records emitted by the package while the test runs."""
    records: list[dict] = []
    logger.enable("scaleway_target")
    hid = logger.add(lambda m: records.append(m.record), level="TRACE", filter="scaleway_target")
    yield records
    logger.remove(hid)
    logger.disable("scaleway_target")
