"""Shared test fixtures for all test groups."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from coursegen.generation.fake import FakeContentGenerator
from coursegen.queue.schemas import MetadataPayload, ModulePayload


class FakeClock:
    """Manually advanced UTC clock, callable like ``utc_now``."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 6, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, ms: float = 0) -> None:
        self.now += timedelta(seconds=seconds, milliseconds=ms)


async def _eventually(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def clock():
    """Fresh FakeClock starting at a fixed UTC instant."""
    return FakeClock()


@pytest.fixture
def eventually():
    """Await until a zero-arg predicate is true (fails after 2 seconds)."""
    return _eventually


@pytest.fixture
def generator():
    """FakeContentGenerator with happy_path scenario (default)."""
    return FakeContentGenerator(scenario="happy_path")


@pytest.fixture
def failing_generator():
    """FakeContentGenerator whose every call fails."""
    return FakeContentGenerator(scenario="always_fail")


@pytest.fixture
def blocking_generator():
    """FakeContentGenerator whose calls wait until release() is called."""
    fake = FakeContentGenerator(scenario="blocking")
    yield fake
    fake.release()


@pytest.fixture
def metadata_payload():
    """Sample metadata payload."""
    return MetadataPayload(prompt="Python", level="beginner", interests=["automation"])


@pytest.fixture
def module_payload():
    """Sample module payload."""
    return ModulePayload(
        course_title="Course on Python",
        module_title="Fundamentals of Python",
        module_order=2,
        total_modules=5,
        course_description="Learn Python from scratch.",
    )
