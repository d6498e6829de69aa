"""GenerationQueue: owns generation tasks, runs them with bounded concurrency,
retries failures with escalating delays and always resolves with content.

A single dispatcher coroutine starts eligible tasks (highest priority first,
``scheduled_at <= now``, not already in flight) whenever it is woken by an
enqueue, a finished attempt, ``notify()`` or the next retry becoming due.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, assert_never

import structlog

from coursegen.core.clock import Clock, elapsed_ms, utc_now
from coursegen.core.exceptions import (
    InvalidTransitionError,
    SchedulerStoppedError,
    UnknownRequestError,
)
from coursegen.generation.base import ContentGenerator
from coursegen.generation.fallback import emergency_content, generate_fallback_content
from coursegen.queue.priority import PriorityQueue
from coursegen.queue.schemas import (
    PAYLOAD_TYPES,
    WAIT_EMA_ALPHA,
    GenerationResult,
    GenerationTask,
    Payload,
    Priority,
    QueueConfig,
    QueueStats,
    Resolution,
    TaskKind,
    TaskStatus,
    make_request_id,
    parse_priority,
)

logger = structlog.get_logger(__name__)

FallbackGenerator = Callable[[TaskKind, Payload], GenerationResult]

# Valid status transitions. QUEUED/RETRY_SCHEDULED -> FALLBACK_INVOKED only on shutdown.
TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.QUEUED: {TaskStatus.IN_FLIGHT, TaskStatus.FALLBACK_INVOKED},
    TaskStatus.IN_FLIGHT: {TaskStatus.SUCCEEDED, TaskStatus.RETRY_SCHEDULED, TaskStatus.FALLBACK_INVOKED},
    TaskStatus.RETRY_SCHEDULED: {TaskStatus.QUEUED, TaskStatus.FALLBACK_INVOKED},
    TaskStatus.FALLBACK_INVOKED: {TaskStatus.SUCCEEDED},
    TaskStatus.SUCCEEDED: set(),
}


class GenerationQueue:
    """Bounded-concurrency generation scheduler with retry, fallback and emergency content.

    Usage:
        queue = GenerationQueue(generator, QueueConfig(concurrent_limit=3))
        task_id = queue.enqueue("user-1", TaskKind.METADATA, MetadataPayload(prompt="Rust"))
        content = await queue.result(task_id)

        # or in one step
        content = await queue.submit("user-1", TaskKind.METADATA, MetadataPayload(prompt="Rust"))
    """

    def __init__(
        self,
        generator: ContentGenerator,
        config: QueueConfig | None = None,
        clock: Clock = utc_now,
        fallback: FallbackGenerator = generate_fallback_content,
    ) -> None:
        self.generator = generator
        self.config = config or QueueConfig()
        self._clock = clock
        self._fallback = fallback

        self._tasks: PriorityQueue[GenerationTask] = PriorityQueue()
        self._in_flight: set[str] = set()
        self._futures: dict[str, asyncio.Future[GenerationResult]] = {}
        self._attempts: set[asyncio.Task] = set()

        self._wake = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._dispatcher: asyncio.Task | None = None
        self._stopped = False

        self._completed = 0
        self._fallbacks = 0
        self._emergencies = 0
        self._avg_wait_ms: float | None = None

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def enqueue(
        self,
        submitter_id: str,
        kind: TaskKind,
        payload: Payload,
        priority: int = Priority.MEDIUM,
        on_success: Callable[[GenerationResult], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
        max_attempts: int | None = None,
    ) -> str:
        """Queue a generation task and wake the dispatcher.

        Must be called from a running event loop. The returned id can be passed
        to ``result()`` until the task resolves.

        Raises:
            ValueError: If submitter_id is empty, priority is outside 1-3 or the payload does not match kind
            SchedulerStoppedError: If the queue has been stopped
        """
        if self._stopped:
            raise SchedulerStoppedError("Generation queue is stopped")
        if not submitter_id:
            raise ValueError("submitter_id must not be empty")
        if not isinstance(payload, PAYLOAD_TYPES[kind]):
            raise ValueError(
                f"{kind.value} task needs {PAYLOAD_TYPES[kind].__name__}, got {type(payload).__name__}"
            )

        loop = asyncio.get_running_loop()
        now = self._clock()
        task = GenerationTask(
            id=make_request_id(kind, submitter_id, now),
            submitter_id=submitter_id,
            kind=kind,
            payload=payload,
            priority=int(parse_priority(priority)),
            max_attempts=max_attempts or self.config.max_attempts,
            created_at=now,
            scheduled_at=now,
            on_success=on_success,
            on_error=on_error,
        )

        position = self._tasks.push(task)
        self._futures[task.id] = loop.create_future()
        self._idle.clear()

        logger.info(
            "generation_task_enqueued",
            task_id=task.id,
            submitter_id=submitter_id,
            kind=kind.value,
            priority=task.priority,
            position=position,
        )

        self._ensure_dispatcher()
        self._wake.set()
        return task.id

    def result(self, task_id: str) -> asyncio.Future[GenerationResult]:
        """Future resolving with the task's content. Never resolves with an exception.

        Raises:
            UnknownRequestError: If the task is unknown or already resolved
        """
        future = self._futures.get(task_id)
        if future is None:
            raise UnknownRequestError(task_id)
        return future

    async def submit(
        self,
        submitter_id: str,
        kind: TaskKind,
        payload: Payload,
        priority: int = Priority.MEDIUM,
    ) -> GenerationResult:
        """Enqueue a task and wait for its content."""
        task_id = self.enqueue(submitter_id, kind, payload, priority)
        return await asyncio.shield(self.result(task_id))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the dispatcher on the running event loop."""
        self._stopped = False
        self._ensure_dispatcher()
        self._wake.set()

    def notify(self) -> None:
        """Ask the dispatcher to re-evaluate eligible tasks now."""
        self._wake.set()

    async def join(self) -> None:
        """Wait until every queued task has resolved."""
        await self._idle.wait()

    async def stop(self) -> None:
        """Stop dispatching, let in-flight attempts finish, resolve the rest with fallback content."""
        self._stopped = True
        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is not None:
            dispatcher.cancel()
            try:
                await dispatcher
            except asyncio.CancelledError:
                pass

        if self._attempts:
            await asyncio.gather(*self._attempts, return_exceptions=True)

        remaining = list(self._tasks)
        for task in remaining:
            logger.warning("generation_task_resolved_on_shutdown", task_id=task.id, attempts=task.attempts)
            self._fall_back(task)

        logger.info("generation_queue_stopped", resolved_on_shutdown=len(remaining))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> GenerationTask | None:
        """Snapshot access to a task that has not resolved yet."""
        return self._tasks.get(task_id)

    def get_queue_stats(self) -> QueueStats:
        processing = len(self._in_flight)
        return QueueStats(
            pending=len(self._tasks) - processing,
            processing=processing,
            failed=self._fallbacks + self._emergencies,
            avg_wait_time=round(self._avg_wait_ms or 0),
            completed=self._completed,
            fallbacks=self._fallbacks,
            emergencies=self._emergencies,
        )

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_loop())

    async def _dispatch_loop(self) -> None:
        logger.info("generation_dispatcher_started", concurrent_limit=self.config.concurrent_limit)

        while True:
            self._wake.clear()
            try:
                timeout = self._start_eligible()
            except Exception as exc:
                logger.warning(
                    "generation_dispatch_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                timeout = None
            try:
                await asyncio.wait_for(self._wake.wait(), timeout)
            except TimeoutError:
                pass

    def _start_eligible(self) -> float | None:
        """Start as many eligible tasks as capacity allows.

        Returns:
            Seconds until the next retry becomes due, or None to wait for a wake-up.
        """
        now = self._clock()
        while len(self._in_flight) < self.config.concurrent_limit:
            task = self._tasks.find_first(
                lambda t: t.id not in self._in_flight and t.scheduled_at <= now
            )
            if task is None:
                break
            self._start(task, now)

        if len(self._in_flight) >= self.config.concurrent_limit:
            return None

        upcoming = [task.scheduled_at for task in self._tasks if task.id not in self._in_flight]
        if not upcoming:
            return None
        return max((min(upcoming) - now).total_seconds(), 0.0)

    def _start(self, task: GenerationTask, now: datetime) -> None:
        if task.status == TaskStatus.RETRY_SCHEDULED:
            self._transition(task, TaskStatus.QUEUED)
        self._transition(task, TaskStatus.IN_FLIGHT)
        self._in_flight.add(task.id)

        if task.started_at is None:
            task.started_at = now
            self._record_wait(elapsed_ms(task.created_at, now))

        attempt = asyncio.create_task(self._execute(task))
        self._attempts.add(attempt)
        attempt.add_done_callback(self._attempts.discard)

    async def _execute(self, task: GenerationTask) -> None:
        task.attempts += 1
        with structlog.contextvars.bound_contextvars(task_id=task.id, submitter_id=task.submitter_id):
            logger.info(
                "generation_attempt_started",
                kind=task.kind.value,
                attempt=task.attempts,
                max_attempts=task.max_attempts,
            )
            try:
                result = await self._generate(task)
            except asyncio.CancelledError as exc:
                if asyncio.current_task().cancelling():
                    self._requeue_cancelled(task)
                    raise
                self._handle_failure(task, exc)
            except Exception as exc:
                self._handle_failure(task, exc)
            else:
                logger.info("generation_attempt_succeeded", attempt=task.attempts)
                self._resolve(task, result, Resolution.GENERATED)
            finally:
                self._in_flight.discard(task.id)
                self._wake.set()

    async def _generate(self, task: GenerationTask) -> GenerationResult:
        match task.kind:
            case TaskKind.METADATA:
                return await self.generator.generate_course_metadata(task.payload)
            case TaskKind.MODULE:
                return await self.generator.generate_module_content(task.payload)
            case _:
                assert_never(task.kind)

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _requeue_cancelled(self, task: GenerationTask) -> None:
        """Make a task whose attempt was cancelled eligible again without spending an attempt."""
        task.attempts -= 1
        task.scheduled_at = self._clock()
        self._transition(task, TaskStatus.RETRY_SCHEDULED)
        logger.warning("generation_attempt_cancelled", attempt=task.attempts + 1)

    def _handle_failure(self, task: GenerationTask, exc: BaseException) -> None:
        task.last_error = str(exc)
        logger.warning(
            "generation_attempt_failed",
            attempt=task.attempts,
            max_attempts=task.max_attempts,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        self._call_safely(task.on_error, exc, hook_name="on_error")

        if task.attempts < task.max_attempts:
            delay_ms = self.config.retry_delay_ms(task.attempts)
            task.scheduled_at = self._clock() + timedelta(milliseconds=delay_ms)
            self._transition(task, TaskStatus.RETRY_SCHEDULED)
            logger.info(
                "generation_retry_scheduled",
                attempt=task.attempts,
                delay_ms=delay_ms,
                scheduled_at=task.scheduled_at.isoformat(),
            )
            return

        self._fall_back(task)

    def _fall_back(self, task: GenerationTask) -> None:
        self._transition(task, TaskStatus.FALLBACK_INVOKED)
        try:
            result = self._fallback(task.kind, task.payload)
        except Exception as exc:
            logger.error(
                "generation_fallback_failed",
                task_id=task.id,
                kind=task.kind.value,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            result = emergency_content(task.kind)
            logger.error("generation_emergency_content_used", task_id=task.id, kind=task.kind.value)
            self._resolve(task, result, Resolution.EMERGENCY)
            return

        logger.warning(
            "generation_fallback_used",
            task_id=task.id,
            kind=task.kind.value,
            attempts=task.attempts,
            last_error=task.last_error,
        )
        self._resolve(task, result, Resolution.FALLBACK)

    def _resolve(self, task: GenerationTask, result: GenerationResult, resolution: Resolution) -> None:
        self._tasks.remove(task.id)
        task.resolution = resolution
        self._transition(task, TaskStatus.SUCCEEDED)

        match resolution:
            case Resolution.GENERATED:
                self._completed += 1
            case Resolution.FALLBACK:
                self._fallbacks += 1
            case Resolution.EMERGENCY:
                self._emergencies += 1
            case _:
                assert_never(resolution)

        future = self._futures.pop(task.id, None)
        if future is not None and not future.done():
            future.set_result(result)
        self._call_safely(task.on_success, result, hook_name="on_success")

        if not self._tasks:
            self._idle.set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, task: GenerationTask, target: TaskStatus) -> None:
        if target not in TRANSITIONS[task.status]:
            raise InvalidTransitionError(task.id, task.status.value, target.value)
        task.status = target

    def _record_wait(self, wait_ms: float) -> None:
        if self._avg_wait_ms is None:
            self._avg_wait_ms = wait_ms
        else:
            self._avg_wait_ms = WAIT_EMA_ALPHA * wait_ms + (1 - WAIT_EMA_ALPHA) * self._avg_wait_ms

    def _call_safely(self, hook: Callable[[Any], Any] | None, value: Any, hook_name: str) -> None:
        if hook is None:
            return
        try:
            hook(value)
        except Exception as exc:
            logger.warning(
                "generation_callback_failed",
                callback=hook_name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
