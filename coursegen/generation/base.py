"""ContentGenerator Protocol: the boundary toward the AI content generation service.

Implementations are network-bound, rate-limited and may be slow or fail at any
time. The generation queue treats every exception they raise as a failed attempt.

Implementations MUST provide:
- generate_course_metadata: course title, description and module list from a prompt
- generate_module_content: content chunks and quiz for one module
"""

from typing import Protocol, runtime_checkable

from coursegen.queue.schemas import GenerationResult, MetadataPayload, ModulePayload


@runtime_checkable
class ContentGenerator(Protocol):
    """Protocol for the external content generation collaborator."""

    async def generate_course_metadata(self, payload: MetadataPayload) -> GenerationResult:
        """Generate course metadata.

        Args:
            payload: Prompt, learner level and interests

        Returns:
            Dict with at least title, description, total_modules and module_list
        """
        ...

    async def generate_module_content(self, payload: ModulePayload) -> GenerationResult:
        """Generate the content of a single module.

        Args:
            payload: Course context and the module's title and order

        Returns:
            Dict with title, description, chunks, quiz and total_chunks
        """
        ...
