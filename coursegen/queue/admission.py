"""AdmissionController: global and per-submitter gate in front of the generation collaborator.

Requests are either active (allowed to call the collaborator now) or waiting in a
priority queue. The global ceiling adapts to load between the configured bounds.
All mutation is synchronous and happens on the event loop thread.
"""

import asyncio
import math
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TypeVar

import structlog

from coursegen.core.clock import Clock, utc_now
from coursegen.core.exceptions import AdmissionDroppedError, UnknownRequestError
from coursegen.queue.priority import PriorityQueue
from coursegen.queue.schemas import (
    AdmissionConfig,
    AdmissionRequest,
    AdmissionResult,
    AdmissionStats,
    Priority,
    TaskKind,
    make_request_id,
    parse_priority,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ActivationListener = Callable[[AdmissionRequest], None]


class AdmissionController:
    """Admits at most ``max_concurrent_global`` requests, one per submitter.

    Usage:
        controller = AdmissionController(AdmissionConfig(initial_max_concurrent=3))
        result = controller.register_request("user-1", TaskKind.METADATA)
        if not result.can_proceed:
            await controller.wait_for_admission(result.request_id)
        ...
        controller.complete_request(result.request_id)

    Or let the controller drive the whole cycle:
        content = await controller.run_admitted("user-1", TaskKind.MODULE, operation)
    """

    def __init__(self, config: AdmissionConfig | None = None, clock: Clock = utc_now) -> None:
        self.config = config or AdmissionConfig()
        self.max_concurrent_global = self.config.initial_max_concurrent
        self._clock = clock
        self._active: dict[str, AdmissionRequest] = {}
        self._waiting: PriorityQueue[AdmissionRequest] = PriorityQueue()
        self._waiters: dict[str, asyncio.Future[None]] = {}
        self._listeners: list[ActivationListener] = []
        self._maintenance_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def register_request(
        self,
        submitter_id: str,
        kind: TaskKind,
        priority: int = Priority.MEDIUM,
    ) -> AdmissionResult:
        """Admit a request now or queue it behind higher priority work.

        A submitter that already holds an active slot is always queued, even
        when global capacity is free.

        Args:
            submitter_id: Identity of the requesting user (non-empty)
            kind: Task kind the request is for
            priority: 1 (high) to 3 (low), defaults to medium

        Returns:
            AdmissionResult with can_proceed, and position/wait_time when queued

        Raises:
            ValueError: If submitter_id is empty or priority is outside 1-3
        """
        if not submitter_id:
            raise ValueError("submitter_id must not be empty")

        now = self._clock()
        request = AdmissionRequest(
            id=make_request_id(kind, submitter_id, now),
            submitter_id=submitter_id,
            kind=kind,
            priority=int(parse_priority(priority)),
            created_at=now,
        )

        if not self._submitter_at_limit(submitter_id) and len(self._active) < self.max_concurrent_global:
            self._activate(request)
            logger.info(
                "admission_request_admitted",
                request_id=request.id,
                submitter_id=submitter_id,
                kind=kind.value,
                active=len(self._active),
                capacity=self.max_concurrent_global,
            )
            return AdmissionResult(request_id=request.id, can_proceed=True)

        self._waiting.push(request)
        self._advance()
        if request.id in self._active:
            return AdmissionResult(request_id=request.id, can_proceed=True)

        position = self._waiting.position(request.id)
        wait_time = self.estimate_wait_time(position)
        logger.info(
            "admission_request_queued",
            request_id=request.id,
            submitter_id=submitter_id,
            kind=kind.value,
            priority=request.priority,
            position=position,
            wait_time_ms=wait_time,
        )
        return AdmissionResult(
            request_id=request.id,
            can_proceed=False,
            wait_time=wait_time,
            position=position,
        )

    def complete_request(self, request_id: str) -> None:
        """Release an active slot and promote waiting requests. No-op for unknown ids."""
        request = self._active.pop(request_id, None)
        if request is None:
            return

        logger.info(
            "admission_request_completed",
            request_id=request_id,
            submitter_id=request.submitter_id,
            active=len(self._active),
        )
        self._advance()

    def fail_request(self, request_id: str, error: BaseException | str | None = None) -> None:
        """Release an active slot and requeue the request at high priority.

        After ``max_retries`` admission-level failures the request is dropped
        instead; the error is then the terminal outcome for this layer.
        """
        request = self._active.pop(request_id, None)
        if request is None:
            return

        request.retries += 1
        log = logger.bind(
            request_id=request_id,
            submitter_id=request.submitter_id,
            retries=request.retries,
            error=str(error) if error is not None else None,
        )

        if request.retries < self.config.max_retries:
            request.priority = Priority.HIGH
            request.created_at = self._clock()
            request.activated_at = None
            self._waiting.push(request)
            log.warning("admission_request_requeued", position=self._waiting.position(request_id))
        else:
            log.error("admission_request_dropped", max_retries=self.config.max_retries)

        self._advance()

    def withdraw_request(self, request_id: str) -> bool:
        """Forget a request wherever it is. Returns True if it was tracked."""
        waiter = self._waiters.pop(request_id, None)
        if waiter is not None and not waiter.done():
            waiter.cancel()

        if self._waiting.remove(request_id) is not None:
            logger.info("admission_request_withdrawn", request_id=request_id, state="queued")
            return True

        if self._active.pop(request_id, None) is not None:
            logger.info("admission_request_withdrawn", request_id=request_id, state="active")
            self._advance()
            return True

        return False

    # ------------------------------------------------------------------
    # Waiting for a slot
    # ------------------------------------------------------------------

    async def wait_for_admission(self, request_id: str) -> None:
        """Return once the request holds an active slot.

        Raises:
            UnknownRequestError: If the request is neither active nor queued
        """
        if request_id in self._active:
            return
        if request_id not in self._waiting:
            raise UnknownRequestError(request_id)

        waiter = self._waiters.get(request_id)
        if waiter is None or waiter.done():
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[request_id] = waiter
        await waiter

    async def run_admitted(
        self,
        submitter_id: str,
        kind: TaskKind,
        operation: Callable[[], Awaitable[T]],
        priority: int = Priority.MEDIUM,
    ) -> T:
        """Run ``operation`` while holding an admission slot.

        A failing operation is reported through fail_request and re-run once the
        requeued request is promoted again.

        Raises:
            AdmissionDroppedError: When the request exhausts its admission retries
        """
        admission = self.register_request(submitter_id, kind, priority)
        request_id = admission.request_id

        try:
            while True:
                await self.wait_for_admission(request_id)
                try:
                    result = await operation()
                except Exception as exc:
                    retries = self._retries_of(request_id) + 1
                    self.fail_request(request_id, exc)
                    if not self.is_tracked(request_id):
                        raise AdmissionDroppedError(request_id, retries) from exc
                    continue

                self.complete_request(request_id)
                return result
        except asyncio.CancelledError:
            self.withdraw_request(request_id)
            raise

    def add_activation_listener(self, listener: ActivationListener) -> None:
        """Call ``listener`` with each queued request promoted into the active set."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Periodic maintenance
    # ------------------------------------------------------------------

    def adjust_limits(self) -> int:
        """Additive increase/decrease of the global ceiling from current utilization.

        Returns:
            The (possibly unchanged) global ceiling.
        """
        utilization = self._utilization_percent()
        queued = len(self._waiting)
        previous = self.max_concurrent_global

        if utilization > self.config.high_utilization_pct and queued > self.config.backlog_threshold:
            self.max_concurrent_global = max(self.config.min_concurrent, previous - 1)
        elif utilization < self.config.low_utilization_pct and queued == 0:
            self.max_concurrent_global = min(self.config.max_concurrent, previous + 1)

        if self.max_concurrent_global != previous:
            logger.info(
                "admission_limit_adjusted",
                previous=previous,
                current=self.max_concurrent_global,
                utilization_percent=round(utilization),
                queued=queued,
            )
            self._advance()
        return self.max_concurrent_global

    def cleanup_stale_requests(self, now: datetime | None = None) -> int:
        """Force-remove active requests older than the staleness threshold.

        Returns: Number of requests removed.
        """
        now = now or self._clock()
        threshold = timedelta(seconds=self.config.stale_after_seconds)

        stale = [
            request
            for request in self._active.values()
            if now - (request.activated_at or request.created_at) > threshold
        ]
        for request in stale:
            del self._active[request.id]
            logger.warning(
                "admission_stale_request_removed",
                request_id=request.id,
                submitter_id=request.submitter_id,
                active_since=(request.activated_at or request.created_at).isoformat(),
            )

        if stale:
            self._advance()
        return len(stale)

    def start_maintenance(self) -> None:
        """Start the periodic cleanup/adjust loop on the running event loop."""
        if self._maintenance_task is not None and not self._maintenance_task.done():
            return
        self._maintenance_task = asyncio.create_task(self._maintenance_loop())

    async def stop_maintenance(self) -> None:
        task, self._maintenance_task = self._maintenance_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _maintenance_loop(self) -> None:
        interval = self.config.maintenance_interval_seconds
        logger.info("admission_maintenance_started", interval_seconds=interval)

        while True:
            await asyncio.sleep(interval)
            try:
                self.cleanup_stale_requests()
                self.adjust_limits()
            except Exception as exc:
                logger.warning(
                    "admission_maintenance_tick_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def estimate_wait_time(self, position: int) -> int:
        """Advisory wait in ms for a 1-indexed queue position."""
        return math.ceil(position / self.max_concurrent_global) * self.config.avg_processing_ms

    def get_stats(self) -> AdmissionStats:
        queued = len(self._waiting)
        if queued:
            total = sum(self.estimate_wait_time(position) for position in range(1, queued + 1))
            average_wait = round(total / queued)
        else:
            average_wait = 0

        return AdmissionStats(
            active_requests=len(self._active),
            queued_requests=queued,
            total_capacity=self.max_concurrent_global,
            utilization_percent=round(self._utilization_percent()),
            average_wait_time=average_wait,
        )

    def position(self, request_id: str) -> int:
        """1-indexed wait queue position, 0 when not waiting."""
        return self._waiting.position(request_id)

    def is_active(self, request_id: str) -> bool:
        return request_id in self._active

    def is_tracked(self, request_id: str) -> bool:
        return request_id in self._active or request_id in self._waiting

    def active_submitters(self) -> Counter[str]:
        return Counter(request.submitter_id for request in self._active.values())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance(self) -> None:
        """Promote waiting requests until the ceiling is reached.

        If the head of the queue belongs to a submitter at its limit it stays
        at the front and advancement stops.
        """
        while len(self._active) < self.max_concurrent_global and self._waiting:
            head = self._waiting.peek()
            if self._submitter_at_limit(head.submitter_id):
                logger.debug(
                    "admission_advance_blocked",
                    request_id=head.id,
                    submitter_id=head.submitter_id,
                )
                break

            self._waiting.pop()
            self._activate(head)
            logger.info(
                "admission_request_promoted",
                request_id=head.id,
                submitter_id=head.submitter_id,
                waited_ms=int((head.activated_at - head.created_at).total_seconds() * 1000),
            )
            self._notify_listeners(head)

    def _activate(self, request: AdmissionRequest) -> None:
        request.activated_at = self._clock()
        self._active[request.id] = request

        waiter = self._waiters.pop(request.id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def _notify_listeners(self, request: AdmissionRequest) -> None:
        for listener in self._listeners:
            try:
                listener(request)
            except Exception as exc:
                logger.warning(
                    "admission_listener_failed",
                    request_id=request.id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    def _submitter_at_limit(self, submitter_id: str) -> bool:
        active = sum(1 for request in self._active.values() if request.submitter_id == submitter_id)
        return active >= self.config.per_submitter_limit

    def _retries_of(self, request_id: str) -> int:
        request = self._active.get(request_id) or self._waiting.get(request_id)
        return request.retries if request is not None else 0

    def _utilization_percent(self) -> float:
        return len(self._active) / self.max_concurrent_global * 100
