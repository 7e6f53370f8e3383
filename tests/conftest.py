import pytest

from trackx import _tracking


@pytest.fixture(autouse=True)
def _reset_scheduler():
    """Each test gets its own loop; don't let scheduler state outlive it."""
    yield
    _tracking.set_scheduler(None)
    _tracking._pending.clear()
