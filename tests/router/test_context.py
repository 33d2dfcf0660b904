"""Tests for context-usage parsing and polling."""

import pytest

from arbiter.provider.base import (
    CancellationHandle,
    ContentEvent,
    InitEvent,
    ResultEvent,
)
from arbiter.router.context import (
    CONTEXT_CRITICAL,
    CONTEXT_PROBE_PROMPT,
    CONTEXT_WARNING,
    ContextEstimator,
    context_warning,
    parse_context_percent,
    parse_token_count,
)
from arbiter.router.session import ManagerSession, Role, WorkerSession
from tests.helpers import FakeProvider

CONTEXT_OUTPUT = """
## Context Usage

**Model:** claude-sonnet
**Tokens:** 36.0k / 200.0k (18%)

| Category | Tokens | Percentage |
"""


def probe_options(role, external_id, cancel):
    from arbiter.config import RouterConfig
    from arbiter.router.options import build_session_options

    return build_session_options(
        role,
        cancel,
        RouterConfig(),
        resume_id=external_id,
        structured=False,
        fork=True,
    )


class TestParsing:
    def test_tokens_line(self):
        assert parse_context_percent(CONTEXT_OUTPUT) == 18.0

    def test_token_ratio_fallback(self):
        assert parse_context_percent("used 50k / 200k so far") == 25.0

    def test_clamped_to_hundred(self):
        assert parse_context_percent("**Tokens:** 250k / 200k (125%)") == 100.0

    def test_garbage(self):
        assert parse_context_percent("I cannot do that") is None
        assert parse_context_percent("") is None

    def test_parse_token_count(self):
        assert parse_token_count("36.0k") == 36000
        assert parse_token_count("1,234") == 1234


class TestContextWarning:
    def test_thresholds(self):
        assert context_warning(None) is None
        assert context_warning(50.0) is None
        assert context_warning(70.0) is None
        assert context_warning(71.0) == CONTEXT_WARNING
        assert context_warning(85.0) == CONTEXT_WARNING
        assert context_warning(86.0) == CONTEXT_CRITICAL


class TestContextEstimator:
    @pytest.mark.asyncio
    async def test_probe_forks_the_session(self):
        provider = FakeProvider()
        provider.script(
            "probe", [InitEvent("fork-1"), ContentEvent(text=CONTEXT_OUTPUT)]
        )
        estimator = ContextEstimator(provider, probe_options)

        assert await estimator.probe(Role.WORKER, "wrk-1") == 18.0

        (call,) = provider.calls_for("probe")
        assert call.prompt == CONTEXT_PROBE_PROMPT
        assert call.options.resume_id == "wrk-1"
        assert call.options.fork_session is True
        assert call.options.output_schema is None

    @pytest.mark.asyncio
    async def test_poll_updates_sessions_with_ids(self):
        provider = FakeProvider()
        provider.script(
            "probe",
            [ResultEvent(text="**Tokens:** 20k / 200k (10%)")],
            [ContentEvent(text="**Tokens:** 150k / 200k (75%)")],
        )
        updates = []
        estimator = ContextEstimator(
            provider, probe_options, on_update=lambda: updates.append(True)
        )
        manager = ManagerSession(external_id="mgr-1")
        worker = WorkerSession(ordinal=1, external_id="wrk-1")
        fresh = WorkerSession(ordinal=2)

        changed = await estimator.poll_once(
            [(Role.MANAGER, manager), (Role.WORKER, worker), (Role.WORKER, fresh)]
        )

        assert changed is True
        assert manager.context_percent == 10.0
        assert worker.context_percent == 75.0
        assert fresh.context_percent is None
        assert len(provider.calls_for("probe")) == 2
        assert updates == [True]

    @pytest.mark.asyncio
    async def test_unparseable_probe_keeps_previous_value(self):
        provider = FakeProvider()
        provider.script("probe", [ContentEvent(text="Unknown command")])
        estimator = ContextEstimator(provider, probe_options)
        worker = WorkerSession(ordinal=1, external_id="wrk-1", context_percent=42.0)

        changed = await estimator.poll_once([(Role.WORKER, worker)])

        assert changed is False
        assert worker.context_percent == 42.0

    @pytest.mark.asyncio
    async def test_failed_probe_keeps_previous_value(self):
        provider = FakeProvider()
        provider.script("probe", [InitEvent("fork"), ConnectionError("gone")])
        estimator = ContextEstimator(provider, probe_options)
        manager = ManagerSession(external_id="mgr-1", context_percent=33.0)

        await estimator.poll_once([(Role.MANAGER, manager)])

        assert manager.context_percent == 33.0

    @pytest.mark.asyncio
    async def test_probe_does_not_touch_activity(self):
        provider = FakeProvider()
        provider.script("probe", [ContentEvent(text=CONTEXT_OUTPUT)])
        estimator = ContextEstimator(provider, probe_options)
        worker = WorkerSession(ordinal=1, external_id="wrk-1", last_activity_time=5.0)

        await estimator.poll_once([(Role.WORKER, worker)])

        assert worker.last_activity_time == 5.0

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        estimator = ContextEstimator(FakeProvider(), probe_options, interval=3600)
        estimator.start(lambda: [])
        assert estimator.running
        estimator.stop()
        assert not estimator.running

    def test_probe_options_require_a_session(self):
        with pytest.raises(ValueError):
            probe_options(Role.MANAGER, None, CancellationHandle())
