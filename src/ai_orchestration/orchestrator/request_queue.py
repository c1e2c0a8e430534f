"""Priority request queue with bounded concurrent dispatch."""

import asyncio
import heapq
import itertools
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

import structlog

from ai_orchestration.exceptions import QueueCancelledError

logger = structlog.get_logger(__name__)


class Priority(IntEnum):
    """Fixed priority levels. Any integer is accepted for finer ordering."""

    CRITICAL = 100
    HIGH = 75
    NORMAL = 50
    LOW = 25
    BACKGROUND = 0


@dataclass
class TaskMetadata:
    """Optional routing hints attached to a queued task."""

    provider: Optional[str] = None
    capability: Optional[str] = None
    estimated_tokens: Optional[int] = None


@dataclass
class QueuedTask:
    """A unit of work waiting for (or undergoing) dispatch."""

    id: str
    priority: int
    enqueued_at: float
    sequence: int
    work: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    metadata: Optional[TaskMetadata] = None

    def sort_key(self) -> tuple[int, int]:
        # Higher priority first, then FIFO
        return (-self.priority, self.sequence)

    def __lt__(self, other: "QueuedTask") -> bool:
        return self.sort_key() < other.sort_key()


@dataclass
class QueueStatus:
    """Snapshot of the queue."""

    queue_size: int
    active_requests: int
    concurrency: int
    queued_by_priority: Dict[str, int] = field(default_factory=dict)


def priority_bucket(priority: int) -> str:
    """Name of the highest fixed level not above ``priority``."""
    if priority >= Priority.CRITICAL:
        return "critical"
    if priority >= Priority.HIGH:
        return "high"
    if priority >= Priority.NORMAL:
        return "normal"
    if priority >= Priority.LOW:
        return "low"
    return "background"


class RequestQueue:
    """Admits work, orders it by priority and runs at most ``concurrency`` at once.

    Dispatch happens on the next event loop turn after admission, so work
    admitted together is ordered together. Whenever a running task finishes the
    queue dispatches the next eligible one.
    """

    def __init__(
        self,
        concurrency: int = 3,
        on_queue_change: Optional[Callable[[int], None]] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.on_queue_change = on_queue_change
        self._pending: list[QueuedTask] = []
        self._active: Dict[str, asyncio.Task] = {}
        self._sequence = itertools.count()
        self._dispatch_scheduled = False
        self._idle = asyncio.Event()
        self._idle.set()

    def enqueue(
        self,
        work: Callable[[], Awaitable[Any]],
        priority: int = Priority.NORMAL,
        metadata: Optional[TaskMetadata] = None,
    ) -> asyncio.Future:
        """Admit work and return the future that will carry its outcome."""
        loop = asyncio.get_running_loop()
        task = QueuedTask(
            id=str(uuid.uuid4()),
            priority=int(priority),
            enqueued_at=time.time(),
            sequence=next(self._sequence),
            work=work,
            future=loop.create_future(),
            metadata=metadata,
        )
        heapq.heappush(self._pending, task)
        self._idle.clear()
        logger.debug("Task enqueued", task_id=task.id, priority=task.priority, depth=len(self._pending))
        self._notify_change()
        self._schedule_dispatch(loop)
        return task.future

    async def submit(
        self,
        work: Callable[[], Awaitable[Any]],
        priority: int = Priority.NORMAL,
        metadata: Optional[TaskMetadata] = None,
    ) -> Any:
        """Admit work and wait for its result."""
        return await self.enqueue(work, priority, metadata)

    def _schedule_dispatch(self, loop: asyncio.AbstractEventLoop):
        if not self._dispatch_scheduled:
            self._dispatch_scheduled = True
            loop.call_soon(self._dispatch)

    def _dispatch(self):
        self._dispatch_scheduled = False
        while self._pending and len(self._active) < self.concurrency:
            task = heapq.heappop(self._pending)
            self._notify_change()
            if task.future.done():
                # Cancelled by the caller while pending
                continue
            self._active[task.id] = asyncio.create_task(self._run(task))
            logger.debug(
                "Task dispatched",
                task_id=task.id,
                priority=task.priority,
                active=len(self._active),
            )
        self._update_idle()

    async def _run(self, task: QueuedTask):
        try:
            result = await task.work()
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.cancel()
            raise
        except Exception as e:
            if not task.future.done():
                task.future.set_exception(e)
        else:
            if not task.future.done():
                task.future.set_result(result)
        finally:
            self._active.pop(task.id, None)
            self._schedule_dispatch(asyncio.get_running_loop())
            self._update_idle()

    def _update_idle(self):
        if not self._pending and not self._active:
            self._idle.set()

    def _notify_change(self):
        if self.on_queue_change is None:
            return
        try:
            self.on_queue_change(len(self._pending))
        except Exception as e:
            logger.warning("Queue change callback failed", error=str(e))

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def depth(self) -> int:
        return len(self._pending)

    def status(self) -> QueueStatus:
        """Queue depth, active count and pending tasks per priority bucket."""
        by_priority: Dict[str, int] = {}
        for task in self._pending:
            level = priority_bucket(task.priority)
            by_priority[level] = by_priority.get(level, 0) + 1
        return QueueStatus(
            queue_size=len(self._pending),
            active_requests=len(self._active),
            concurrency=self.concurrency,
            queued_by_priority=by_priority,
        )

    def clear(self) -> int:
        """Cancel every task still pending dispatch; running tasks are untouched."""
        pending, self._pending = self._pending, []
        cancelled = 0
        for task in pending:
            if not task.future.done():
                task.future.set_exception(QueueCancelledError(task.id))
                cancelled += 1
        if pending:
            logger.info("Queue cleared", cancelled=cancelled)
            self._notify_change()
        self._update_idle()
        return cancelled

    async def drain(self):
        """Wait until nothing is pending or running."""
        await self._idle.wait()
