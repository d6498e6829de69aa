from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from coursegen.queue.schemas import (
    AVERAGE_PROCESSING_MS,
    BACKLOG_THRESHOLD,
    DEFAULT_MAX_CONCURRENT_GLOBAL,
    HIGH_UTILIZATION_PCT,
    LOW_UTILIZATION_PCT,
    MAINTENANCE_INTERVAL_SECONDS,
    MAX_ADMISSION_RETRIES,
    MAX_CONCURRENT_GLOBAL,
    MAX_CONCURRENT_PER_SUBMITTER,
    MIN_CONCURRENT_GLOBAL,
    QUEUE_CONCURRENT_LIMIT,
    QUEUE_MAX_ATTEMPTS,
    RETRY_DELAYS_MS,
    STALE_AFTER_SECONDS,
    AdmissionConfig,
    QueueConfig,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COURSEGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Course Generation Scheduler"
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = True
    library_log_level: str = "WARNING"

    # Admission Controller
    admission_initial_max_concurrent: int = DEFAULT_MAX_CONCURRENT_GLOBAL
    admission_min_concurrent: int = MIN_CONCURRENT_GLOBAL
    admission_max_concurrent: int = MAX_CONCURRENT_GLOBAL
    admission_per_submitter_limit: int = MAX_CONCURRENT_PER_SUBMITTER
    admission_max_retries: int = MAX_ADMISSION_RETRIES
    admission_avg_processing_ms: int = AVERAGE_PROCESSING_MS
    admission_stale_after_seconds: float = STALE_AFTER_SECONDS
    admission_high_utilization_pct: float = HIGH_UTILIZATION_PCT
    admission_low_utilization_pct: float = LOW_UTILIZATION_PCT
    admission_backlog_threshold: int = BACKLOG_THRESHOLD
    maintenance_interval_seconds: float = MAINTENANCE_INTERVAL_SECONDS

    # Generation queue
    queue_concurrent_limit: int = QUEUE_CONCURRENT_LIMIT
    queue_max_attempts: int = QUEUE_MAX_ATTEMPTS
    queue_retry_delays_ms: list[int] = list(RETRY_DELAYS_MS)  # env: COURSEGEN_QUEUE_RETRY_DELAYS_MS='[5000,15000]'

    def admission_config(self) -> AdmissionConfig:
        return AdmissionConfig(
            initial_max_concurrent=self.admission_initial_max_concurrent,
            min_concurrent=self.admission_min_concurrent,
            max_concurrent=self.admission_max_concurrent,
            per_submitter_limit=self.admission_per_submitter_limit,
            max_retries=self.admission_max_retries,
            avg_processing_ms=self.admission_avg_processing_ms,
            stale_after_seconds=self.admission_stale_after_seconds,
            high_utilization_pct=self.admission_high_utilization_pct,
            low_utilization_pct=self.admission_low_utilization_pct,
            backlog_threshold=self.admission_backlog_threshold,
            maintenance_interval_seconds=self.maintenance_interval_seconds,
        )

    def queue_config(self) -> QueueConfig:
        return QueueConfig(
            concurrent_limit=self.queue_concurrent_limit,
            max_attempts=self.queue_max_attempts,
            retry_delays_ms=self.queue_retry_delays_ms,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
