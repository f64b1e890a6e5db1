"""Shared fixtures."""

import pytest

from poe.api import set_runtime
from poe.observability import get_metrics


@pytest.fixture(autouse=True)
def reset_process_state():
    """Metrics and the shared runtime are process-wide."""
    get_metrics().reset()
    yield
    get_metrics().reset()
    set_runtime(None)
