"""Shared test fixtures."""

import pytest
from loguru import logger

from ado_github_migrate.utils.logging import clear_secrets


@pytest.fixture
def log_records():
    """Capture ``(level, message)`` pairs logged through loguru."""
    records = []
    handler_id = logger.add(
        lambda message: records.append(
            (message.record['level'].name, message.record['message'])
        ),
        level='DEBUG',
        format='{message}',
    )
    yield records
    logger.remove(handler_id)


@pytest.fixture(autouse=True)
def reset_secrets():
    """Secrets registered by one test must not leak into the next."""
    yield
    clear_secrets()
