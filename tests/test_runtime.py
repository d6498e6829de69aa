"""Tests for SchedulerRuntime construction and lifecycle."""

import asyncio

import pytest

from coursegen.core.config import Settings
from coursegen.runtime import SchedulerRuntime, create_runtime

pytestmark = pytest.mark.integration


@pytest.fixture
def settings():
    """Settings with a small admission ceiling and fast retries."""
    return Settings(
        _env_file=None,
        admission_initial_max_concurrent=3,
        queue_concurrent_limit=2,
        queue_retry_delays_ms=[1],
        maintenance_interval_seconds=0.01,
    )


def test_runtime_builds_components_from_settings(settings, generator):
    """Each runtime owns its own controller and queue configured from Settings."""
    runtime = SchedulerRuntime(settings, generator)
    other = SchedulerRuntime(settings, generator)

    assert runtime.admission.max_concurrent_global == 3
    assert runtime.queue.config.concurrent_limit == 2
    assert runtime.service.admission is runtime.admission
    assert runtime.admission is not other.admission
    assert runtime.queue is not other.queue


@pytest.mark.asyncio
async def test_runtime_context_manager_runs_and_stops(settings, generator, metadata_payload, eventually):
    """Inside the context the service works and maintenance adapts limits; exit stops both."""
    async with SchedulerRuntime(settings, generator) as runtime:
        assert runtime.running is True
        bundle = await asyncio.wait_for(runtime.service.generate_course("user-1", metadata_payload), timeout=2)
        await eventually(lambda: runtime.admission.max_concurrent_global > 3)

    assert runtime.running is False
    assert len(bundle.modules) == 3


@pytest.mark.asyncio
async def test_create_runtime_configures_logging(settings, generator, monkeypatch):
    """create_runtime configures structlog from the settings before building."""
    calls = []
    monkeypatch.setattr(
        "coursegen.runtime.configure_structlog",
        lambda log_level, json_logs, library_log_level: calls.append((log_level, json_logs, library_log_level)),
    )

    runtime = create_runtime(generator, settings)

    assert calls == [("INFO", True, "WARNING")]
    assert runtime.settings is settings
