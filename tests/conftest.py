"""Shared pytest fixtures for tendril tests."""

import pytest

from tendril import default_context, frames, microtasks
from tendril.scheduler import DEFAULT_FRAME_RATE, set_frame_rate


@pytest.fixture(autouse=True)
def reset_scheduling():
    """Start every test with empty queues and an empty tracking stack."""
    microtasks.clear()
    frames.clear()
    default_context.reset()
    yield
    microtasks.clear()
    frames.clear()
    default_context.reset()
    set_frame_rate(DEFAULT_FRAME_RATE)
