"""FakeContentGenerator: Scenario-based test double for the ContentGenerator protocol.

Scenarios:
- happy_path: Returns realistic content instantly
- always_fail: Every call raises GenerationError (collaborator unreachable)
- flaky: The first ``failures`` calls raise, later calls succeed
- slow: Every call sleeps ``delay`` seconds before succeeding
- blocking: Every call waits until ``release()`` is called

All scenarios record calls and track how many are running at once.
"""

import asyncio

from coursegen.core.exceptions import GenerationError
from coursegen.queue.schemas import GenerationResult, MetadataPayload, ModulePayload, TaskKind


class FakeContentGenerator:
    """Deterministic stand-in for the AI content generation service."""

    VALID_SCENARIOS = {"happy_path", "always_fail", "flaky", "slow", "blocking"}

    def __init__(self, scenario: str = "happy_path", failures: int = 2, delay: float = 0.05):
        """Initialize FakeContentGenerator with a named scenario.

        Args:
            scenario: One of VALID_SCENARIOS
            failures: Number of leading calls that fail in the flaky scenario
            delay: Seconds each call takes in the slow scenario

        Raises:
            ValueError: If scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(
                f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}"
            )
        self.scenario = scenario
        self.failures = failures
        self.delay = delay
        self.calls: list[tuple[TaskKind, MetadataPayload | ModulePayload]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._gate = asyncio.Event()

    def release(self) -> None:
        """Let every pending and future call of the blocking scenario finish."""
        self._gate.set()

    async def generate_course_metadata(self, payload: MetadataPayload) -> GenerationResult:
        await self._call(TaskKind.METADATA, payload)
        return {
            "title": f"Mastering {payload.prompt}",
            "description": f"A hands-on course that takes a {payload.level} learner through {payload.prompt}.",
            "prerequisites": [] if payload.level == "beginner" else [f"Some experience with {payload.prompt}"],
            "total_modules": 3,
            "module_list": [
                f"Getting Started with {payload.prompt}",
                f"Core {payload.prompt} Patterns",
                f"Shipping a {payload.prompt} Project",
            ],
            "topics": [payload.prompt, *payload.interests],
            "language": payload.language,
        }

    async def generate_module_content(self, payload: ModulePayload) -> GenerationResult:
        await self._call(TaskKind.MODULE, payload)
        return {
            "title": payload.module_title,
            "description": f"Module {payload.module_order} of {payload.total_modules} in {payload.course_title}.",
            "module_order": payload.module_order,
            "chunks": [
                {"title": f"{payload.module_title}: overview", "content": f"## {payload.module_title}\n\nOverview."},
                {"title": f"{payload.module_title}: practice", "content": "## Practice\n\nWork through the exercise."},
            ],
            "quiz": {
                "title": f"Quiz: {payload.module_title}",
                "questions": [
                    {
                        "question": f"What is the main goal of {payload.module_title}?",
                        "options": ["Understand it", "Skip it", "Ignore it", "Forget it"],
                        "correct_answer": 0,
                        "explanation": "Understanding is the goal.",
                    },
                ],
            },
            "total_chunks": 2,
        }

    async def _call(self, kind: TaskKind, payload: MetadataPayload | ModulePayload) -> None:
        self.calls.append((kind, payload))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.scenario == "always_fail":
                raise GenerationError(kind.value, "AI service unavailable (503)")

            if self.scenario == "flaky" and len(self.calls) <= self.failures:
                raise GenerationError(kind.value, "Rate limit exceeded. Retry later.")

            if self.scenario == "slow":
                await asyncio.sleep(self.delay)

            if self.scenario == "blocking":
                await self._gate.wait()
        finally:
            self.in_flight -= 1
