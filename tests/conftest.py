from __future__ import annotations

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def _quiet_loguru():
    """Keep loguru's default stderr sink out of test output; caplog is not used."""
    logger.remove()
    yield
