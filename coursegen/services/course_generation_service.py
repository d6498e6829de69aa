"""CourseGenerationService: admission-gated course generation with guaranteed content.

Wires the AdmissionController (per-submitter fairness, global ceiling) in front of
the GenerationQueue (retries, fallback and emergency content).
"""

import structlog
from pydantic import BaseModel

from coursegen.queue.admission import AdmissionController
from coursegen.queue.generation_queue import GenerationQueue
from coursegen.queue.schemas import (
    GenerationResult,
    MetadataPayload,
    ModulePayload,
    Priority,
    TaskKind,
)

logger = structlog.get_logger(__name__)


class CourseBundle(BaseModel):
    """Course metadata with the generated content of each of its modules."""

    metadata: GenerationResult
    modules: list[GenerationResult]


class CourseGenerationService:
    """Generates course metadata and modules on behalf of submitters.

    Constructor uses dependency injection so tests can supply isolated
    controller and queue instances.

    Args:
        admission: Gate limiting concurrent generation per submitter and globally
        queue: Scheduler that always resolves with content
    """

    def __init__(self, admission: AdmissionController, queue: GenerationQueue) -> None:
        self.admission = admission
        self.queue = queue

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_metadata(
        self,
        submitter_id: str,
        payload: MetadataPayload,
        priority: int = Priority.MEDIUM,
    ) -> GenerationResult:
        """Generate course metadata once the submitter is admitted.

        Raises:
            AdmissionDroppedError: If the admission layer drops the request
        """
        return await self.admission.run_admitted(
            submitter_id,
            TaskKind.METADATA,
            lambda: self.queue.submit(submitter_id, TaskKind.METADATA, payload, priority),
            priority,
        )

    async def generate_module(
        self,
        submitter_id: str,
        payload: ModulePayload,
        priority: int = Priority.MEDIUM,
    ) -> GenerationResult:
        """Generate one module once the submitter is admitted.

        Raises:
            AdmissionDroppedError: If the admission layer drops the request
        """
        return await self.admission.run_admitted(
            submitter_id,
            TaskKind.MODULE,
            lambda: self.queue.submit(submitter_id, TaskKind.MODULE, payload, priority),
            priority,
        )

    async def generate_course(
        self,
        submitter_id: str,
        payload: MetadataPayload,
        priority: int = Priority.MEDIUM,
    ) -> CourseBundle:
        """Generate metadata, then every module it lists, in order.

        Args:
            submitter_id: Identity of the requesting user
            payload: Prompt, level and interests for the course
            priority: Priority applied to every generation step

        Returns:
            CourseBundle with metadata and one content dict per listed module
        """
        log = logger.bind(submitter_id=submitter_id)
        metadata = await self.generate_metadata(submitter_id, payload, priority)

        module_payloads = self.build_module_payloads(metadata, payload)
        log.info("course_metadata_ready", title=metadata.get("title"), modules=len(module_payloads))

        modules = []
        for module_payload in module_payloads:
            modules.append(await self.generate_module(submitter_id, module_payload, priority))

        log.info("course_generation_completed", modules=len(modules))
        return CourseBundle(metadata=metadata, modules=modules)

    @staticmethod
    def build_module_payloads(metadata: GenerationResult, source: MetadataPayload) -> list[ModulePayload]:
        """Derive one ModulePayload per entry of the metadata's module list."""
        module_titles = [str(title) for title in metadata.get("module_list", []) if title]
        course_title = metadata.get("title") or source.prompt

        return [
            ModulePayload(
                course_title=course_title,
                module_title=title,
                module_order=order,
                total_modules=len(module_titles),
                course_description=metadata.get("description", ""),
                level=source.level,
                language=metadata.get("language", source.language),
            )
            for order, title in enumerate(module_titles, start=1)
        ]
