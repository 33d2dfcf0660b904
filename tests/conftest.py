"""Shared fixtures for router tests."""

import pytest

from arbiter.config import RouterConfig
from arbiter.router import SessionRouter
from tests.helpers import FakeClock, FakeProvider, RecordingCallbacks


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return RecordingCallbacks()


@pytest.fixture
def config(tmp_path):
    # Long timer intervals: tests drive the watchdog and probes explicitly.
    return RouterConfig(
        watchdog_interval=3600.0,
        context_poll_interval=3600.0,
        session_file=tmp_path / "session.json",
    )


@pytest.fixture
def make_router(provider, recorder, clock, config):
    def factory(store=None, sleep=None) -> SessionRouter:
        async def no_sleep(delay: float) -> None:
            return None

        return SessionRouter(
            provider,
            recorder.build(),
            store=store,
            config=config,
            clock=clock,
            sleep=sleep or no_sleep,
        )

    return factory
