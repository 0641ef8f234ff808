from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _detach_event_sink():
    """Commands attach a module-level sink; detach it after every test."""
    from invcols.logging.events import reset_sink

    reset_sink()
    yield
    reset_sink()
