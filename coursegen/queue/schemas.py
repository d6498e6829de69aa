"""Scheduler schemas, default capacity constants and task records."""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

# Admission Controller defaults
DEFAULT_MAX_CONCURRENT_GLOBAL = 5
MIN_CONCURRENT_GLOBAL = 2
MAX_CONCURRENT_GLOBAL = 8
MAX_CONCURRENT_PER_SUBMITTER = 1
MAX_ADMISSION_RETRIES = 3
AVERAGE_PROCESSING_MS = 30_000
STALE_AFTER_SECONDS = 300  # 5 minutes in the active set
MAINTENANCE_INTERVAL_SECONDS = 60

# Utilization thresholds for adjust_limits (percent)
HIGH_UTILIZATION_PCT = 90
LOW_UTILIZATION_PCT = 50
BACKLOG_THRESHOLD = 10

# Task Scheduler defaults
QUEUE_CONCURRENT_LIMIT = 3
QUEUE_MAX_ATTEMPTS = 4
RETRY_DELAYS_MS = [5_000, 15_000, 45_000, 120_000]

# EMA weight for the scheduler's average wait (0.3 = 30% new, 70% historical)
WAIT_EMA_ALPHA = 0.3

GenerationResult = dict[str, Any]


class TaskKind(str, Enum):
    """Kinds of generation work. Every kind needs a generator and a fallback."""

    METADATA = "metadata"
    MODULE = "module"


class Priority(IntEnum):
    """Lower value drains first."""

    HIGH = 1
    MEDIUM = 2
    LOW = 3


class TaskStatus(str, Enum):
    """Task lifecycle states inside the generation queue."""

    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    RETRY_SCHEDULED = "retry_scheduled"
    FALLBACK_INVOKED = "fallback_invoked"
    SUCCEEDED = "succeeded"


class Resolution(str, Enum):
    """How a succeeded task got its content."""

    GENERATED = "generated"
    FALLBACK = "fallback"
    EMERGENCY = "emergency"


class MetadataPayload(BaseModel):
    """Input for generating course metadata."""

    prompt: str = Field(min_length=1)
    level: str = "beginner"
    interests: list[str] = []
    language: str = "en"


class ModulePayload(BaseModel):
    """Input for generating the content of one course module."""

    course_title: str
    module_title: str
    module_order: int = Field(ge=1)
    total_modules: int = Field(ge=1)
    course_description: str = ""
    level: str = "beginner"
    language: str = "en"


Payload = MetadataPayload | ModulePayload

PAYLOAD_TYPES: dict[TaskKind, type[BaseModel]] = {
    TaskKind.METADATA: MetadataPayload,
    TaskKind.MODULE: ModulePayload,
}


class AdmissionConfig(BaseModel):
    """Injectable limits for the Admission Controller."""

    initial_max_concurrent: int = DEFAULT_MAX_CONCURRENT_GLOBAL
    min_concurrent: int = Field(default=MIN_CONCURRENT_GLOBAL, ge=1)
    max_concurrent: int = MAX_CONCURRENT_GLOBAL
    per_submitter_limit: int = Field(default=MAX_CONCURRENT_PER_SUBMITTER, ge=1)
    max_retries: int = Field(default=MAX_ADMISSION_RETRIES, ge=1)
    avg_processing_ms: int = Field(default=AVERAGE_PROCESSING_MS, ge=0)
    stale_after_seconds: float = Field(default=STALE_AFTER_SECONDS, gt=0)
    high_utilization_pct: float = HIGH_UTILIZATION_PCT
    low_utilization_pct: float = LOW_UTILIZATION_PCT
    backlog_threshold: int = Field(default=BACKLOG_THRESHOLD, ge=0)
    maintenance_interval_seconds: float = Field(default=MAINTENANCE_INTERVAL_SECONDS, gt=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "AdmissionConfig":
        if self.min_concurrent > self.max_concurrent:
            raise ValueError("min_concurrent must not exceed max_concurrent")
        if not self.min_concurrent <= self.initial_max_concurrent <= self.max_concurrent:
            raise ValueError("initial_max_concurrent must lie within [min_concurrent, max_concurrent]")
        if self.low_utilization_pct >= self.high_utilization_pct:
            raise ValueError("low_utilization_pct must be below high_utilization_pct")
        return self


class QueueConfig(BaseModel):
    """Injectable limits for the generation queue."""

    concurrent_limit: int = Field(default=QUEUE_CONCURRENT_LIMIT, ge=1)
    max_attempts: int = Field(default=QUEUE_MAX_ATTEMPTS, ge=1)
    retry_delays_ms: list[int] = Field(default_factory=lambda: list(RETRY_DELAYS_MS))

    @field_validator("retry_delays_ms")
    @classmethod
    def check_delays(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("retry_delays_ms must not be empty")
        if any(delay < 0 for delay in value):
            raise ValueError("retry delays must be non-negative")
        return value

    def retry_delay_ms(self, attempts: int) -> int:
        """Delay before the next attempt after ``attempts`` failed attempts."""
        index = min(max(attempts, 1) - 1, len(self.retry_delays_ms) - 1)
        return self.retry_delays_ms[index]


class AdmissionResult(BaseModel):
    """Outcome of registering a request with the Admission Controller."""

    request_id: str
    can_proceed: bool
    wait_time: int | None = None  # ms, advisory
    position: int | None = None  # 1-indexed


class AdmissionStats(BaseModel):
    """Read-only snapshot of the Admission Controller."""

    active_requests: int
    queued_requests: int
    total_capacity: int
    utilization_percent: int
    average_wait_time: int


class QueueStats(BaseModel):
    """Read-only snapshot of the generation queue."""

    pending: int
    processing: int
    failed: int
    avg_wait_time: int
    completed: int = 0
    fallbacks: int = 0
    emergencies: int = 0


@dataclass
class AdmissionRequest:
    """Admission bookkeeping entry. Holds no payload."""

    id: str
    submitter_id: str
    kind: TaskKind
    priority: int
    created_at: datetime
    retries: int = 0
    activated_at: datetime | None = None


@dataclass
class GenerationTask:
    """Unit of generation work owned by the generation queue."""

    id: str
    submitter_id: str
    kind: TaskKind
    payload: Payload
    priority: int
    max_attempts: int
    created_at: datetime
    scheduled_at: datetime
    attempts: int = 0
    status: TaskStatus = TaskStatus.QUEUED
    resolution: Resolution | None = None
    last_error: str | None = None
    started_at: datetime | None = None
    on_success: Callable[[GenerationResult], Any] | None = field(default=None, repr=False)
    on_error: Callable[[BaseException], Any] | None = field(default=None, repr=False)


def make_request_id(kind: TaskKind, submitter_id: str, now: datetime) -> str:
    """Build an id of the form ``<kind>_<submitter>_<epoch ms>_<random suffix>``."""
    return f"{kind.value}_{submitter_id}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def parse_priority(priority: int) -> Priority:
    """Coerce a caller-supplied priority to a Priority tier.

    Raises:
        ValueError: If the value is not 1, 2 or 3
    """
    try:
        return Priority(priority)
    except ValueError:
        raise ValueError(f"priority must be 1 (high) to 3 (low), got {priority!r}") from None
