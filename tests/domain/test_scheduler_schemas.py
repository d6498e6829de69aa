"""Test scheduler schemas: enums, payloads, configs and request ids."""

import re

import pytest
from pydantic import ValidationError

from coursegen.queue.schemas import (
    PAYLOAD_TYPES,
    RETRY_DELAYS_MS,
    AdmissionConfig,
    MetadataPayload,
    ModulePayload,
    Priority,
    QueueConfig,
    TaskKind,
    TaskStatus,
    make_request_id,
    parse_priority,
)

pytestmark = pytest.mark.unit


def test_task_kind_is_closed():
    """TaskKind has exactly the metadata and module variants."""
    assert {kind.value for kind in TaskKind} == {"metadata", "module"}
    assert set(PAYLOAD_TYPES) == set(TaskKind)


def test_priority_values():
    """Lower value means higher priority."""
    assert Priority.HIGH == 1
    assert Priority.MEDIUM == 2
    assert Priority.LOW == 3


def test_parse_priority_accepts_tiers_only():
    """parse_priority maps 1-3 to Priority and rejects anything else."""
    assert parse_priority(1) is Priority.HIGH
    assert parse_priority(Priority.LOW) is Priority.LOW

    for value in (0, 4, -2):
        with pytest.raises(ValueError):
            parse_priority(value)


def test_task_status_has_5_states():
    """TaskStatus covers the queued, in-flight, retry, fallback and succeeded states."""
    assert {status.value for status in TaskStatus} == {
        "queued",
        "in_flight",
        "retry_scheduled",
        "fallback_invoked",
        "succeeded",
    }


def test_default_retry_delays():
    """Default retry delays are 5s, 15s, 45s, 120s."""
    assert QueueConfig().retry_delays_ms == RETRY_DELAYS_MS == [5000, 15000, 45000, 120000]


@pytest.mark.parametrize(
    "attempts,expected",
    [(1, 5000), (2, 15000), (3, 45000), (4, 120000), (7, 120000)],
)
def test_retry_delay_clamps_to_last_entry(attempts, expected):
    """Delay index is min(attempts - 1, len - 1)."""
    assert QueueConfig().retry_delay_ms(attempts) == expected


def test_queue_config_rejects_empty_delays():
    """An empty retry delay list is invalid."""
    with pytest.raises(ValidationError):
        QueueConfig(retry_delays_ms=[])


def test_admission_config_defaults():
    """Defaults: ceiling 5 within [2, 8], one per submitter, 3 retries, 5 minute staleness."""
    config = AdmissionConfig()
    assert config.initial_max_concurrent == 5
    assert (config.min_concurrent, config.max_concurrent) == (2, 8)
    assert config.per_submitter_limit == 1
    assert config.max_retries == 3
    assert config.stale_after_seconds == 300
    assert config.avg_processing_ms == 30000


def test_admission_config_rejects_initial_outside_bounds():
    """initial_max_concurrent must lie within [min, max]."""
    with pytest.raises(ValidationError):
        AdmissionConfig(initial_max_concurrent=9)
    with pytest.raises(ValidationError):
        AdmissionConfig(min_concurrent=6, max_concurrent=4, initial_max_concurrent=5)


def test_metadata_payload_requires_prompt():
    """MetadataPayload rejects an empty prompt."""
    with pytest.raises(ValidationError):
        MetadataPayload(prompt="")


def test_module_payload_order_is_1_indexed():
    """ModulePayload rejects module_order 0."""
    with pytest.raises(ValidationError):
        ModulePayload(course_title="C", module_title="M", module_order=0, total_modules=3)


def test_request_id_format(clock):
    """Ids are <kind>_<submitter>_<epoch ms>_<9 char suffix> and unique."""
    first = make_request_id(TaskKind.MODULE, "user-7", clock())
    second = make_request_id(TaskKind.MODULE, "user-7", clock())

    epoch_ms = int(clock().timestamp() * 1000)
    assert re.fullmatch(rf"module_user-7_{epoch_ms}_[0-9a-f]{{9}}", first)
    assert first != second
