"""SchedulerRuntime: the long-lived owner of one AdmissionController and one GenerationQueue.

Construct it once per process (or per test) and pass it where needed:

    async with create_runtime(generator) as runtime:
        bundle = await runtime.service.generate_course("user-1", MetadataPayload(prompt="SQL"))
"""

import structlog

from coursegen.core.clock import Clock, utc_now
from coursegen.core.config import Settings, get_settings
from coursegen.core.logging import configure_structlog
from coursegen.generation.base import ContentGenerator
from coursegen.queue.admission import AdmissionController
from coursegen.queue.generation_queue import GenerationQueue
from coursegen.services.course_generation_service import CourseGenerationService

logger = structlog.get_logger(__name__)


class SchedulerRuntime:
    """Builds the scheduler components from Settings and runs their background loops."""

    def __init__(self, settings: Settings, generator: ContentGenerator, clock: Clock = utc_now) -> None:
        self.settings = settings
        self.admission = AdmissionController(settings.admission_config(), clock=clock)
        self.queue = GenerationQueue(generator, settings.queue_config(), clock=clock)
        self.service = CourseGenerationService(self.admission, self.queue)
        self.running = False

    async def start(self) -> None:
        if self.running:
            return
        self.queue.start()
        self.admission.start_maintenance()
        self.running = True
        logger.info(
            "scheduler_runtime_started",
            app_name=self.settings.app_name,
            max_concurrent_global=self.admission.max_concurrent_global,
            queue_concurrent_limit=self.queue.config.concurrent_limit,
        )

    async def stop(self) -> None:
        if not self.running:
            return
        await self.admission.stop_maintenance()
        await self.queue.stop()
        self.running = False
        logger.info(
            "scheduler_runtime_stopped",
            admission=self.admission.get_stats().model_dump(),
            queue=self.queue.get_queue_stats().model_dump(),
        )

    async def __aenter__(self) -> "SchedulerRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def create_runtime(generator: ContentGenerator, settings: Settings | None = None) -> SchedulerRuntime:
    """Configure logging from settings and build a runtime around ``generator``."""
    settings = settings or get_settings()
    configure_structlog(
        log_level="DEBUG" if settings.debug else settings.log_level,
        json_logs=settings.json_logs and not settings.debug,
        library_log_level=settings.library_log_level,
    )
    return SchedulerRuntime(settings, generator)
