"""
In-memory resource gate for gated batch operations.

Admission rules, evaluated per resource group:

1. A SEQUENTIAL task is running in the group -> every new task waits.
2. A SEQUENTIAL task asks to run while anything runs in the group -> it waits.
3. Otherwise the task is admitted. PARALLEL tasks share the group with each
   other but never with a SEQUENTIAL one.

Groups are independent of each other. Waiting is done by polling on a fixed
interval; there is no fairness between waiters of the same group.
"""

import asyncio
import enum
import functools
import logging
import threading
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from core.exceptions import GateTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_WAIT_TIME = 300.0
DEFAULT_POLL_INTERVAL = 1.0


class TaskType(str, enum.Enum):
    """How a task shares its resource group"""
    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"


class TaskStatus(str, enum.Enum):
    """Task lifecycle"""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ResourceGroup(str, enum.Enum):
    """Named categories of operations that must not interleave"""
    BATCH_JOB = "BATCH_JOB"
    DATA_COLLECTION = "DATA_COLLECTION"
    DATA_MERGE = "DATA_MERGE"
    FILE_WRITE = "FILE_WRITE"
    API_SOURCE_A = "API_SOURCE_A"
    API_SOURCE_B = "API_SOURCE_B"
    API_SOURCE_C = "API_SOURCE_C"
    CSV_READ = "CSV_READ"


@dataclass
class Task:
    id: str
    type: TaskType
    resource_group: ResourceGroup
    status: TaskStatus
    name: str
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "resource_group": self.resource_group.value,
            "status": self.status.value,
            "name": self.name,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "error": self.error,
        }


class ResourceGate:
    """
    Admission control for named resource groups.

    All state is owned by the instance and guarded by a mutex, so the API
    thread can read ``get_status()`` while the batch loop mutates it.
    """

    def __init__(self, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.poll_interval = poll_interval
        self._running: Dict[str, Task] = {}
        self._pending: Dict[str, Task] = {}
        self._lock = threading.Lock()

    def try_acquire(
        self,
        task_id: str,
        task_type: TaskType,
        resource_group: ResourceGroup,
        task_name: str,
    ) -> bool:
        """
        Check whether the task may run now.

        A refused task is recorded as PENDING. Admission does not mark the
        task RUNNING; call ``start()`` right after a True result.
        """
        with self._lock:
            if self._has_running(resource_group, TaskType.SEQUENTIAL):
                self._mark_pending(task_id, task_type, resource_group, task_name)
                logger.info(
                    f"[{resource_group.value}] sequential task running, "
                    f"'{task_name}' is waiting"
                )
                return False

            if task_type == TaskType.SEQUENTIAL and self._has_running(resource_group):
                self._mark_pending(task_id, task_type, resource_group, task_name)
                logger.info(
                    f"[{resource_group.value}] group busy, "
                    f"sequential task '{task_name}' is waiting"
                )
                return False

            return True

    async def wait_until_admitted(
        self,
        task_id: str,
        task_type: TaskType,
        resource_group: ResourceGroup,
        task_name: str,
        max_wait_time: float = DEFAULT_MAX_WAIT_TIME,
        poll_interval: Optional[float] = None,
    ) -> bool:
        """
        Poll ``try_acquire`` until admitted or ``max_wait_time`` seconds pass.

        Returns False on timeout; converting that into an error is the
        caller's job.
        """
        interval = self.poll_interval if poll_interval is None else poll_interval
        started = time.monotonic()

        while True:
            if self.try_acquire(task_id, task_type, resource_group, task_name):
                waited_ms = int((time.monotonic() - started) * 1000)
                if waited_ms > 0:
                    logger.info(f"Task '{task_name}' admitted after {waited_ms}ms")
                return True

            remaining = max_wait_time - (time.monotonic() - started)
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval, remaining))

        with self._lock:
            self._pending.pop(task_id, None)

        logger.error(
            f"Task '{task_name}' timed out waiting for {resource_group.value} "
            f"after {max_wait_time}s"
        )
        return False

    def start(
        self,
        task_id: str,
        task_type: TaskType,
        resource_group: ResourceGroup,
        task_name: str,
    ) -> Task:
        """Register an admitted task as RUNNING."""
        task = Task(
            id=task_id,
            type=task_type,
            resource_group=resource_group,
            status=TaskStatus.RUNNING,
            name=task_name,
            started_at=time.time(),
        )

        with self._lock:
            self._running[task_id] = task
            self._pending.pop(task_id, None)
            running, pending = len(self._running), len(self._pending)

        logger.info(
            f"Started task '{task_name}' ({task_type.value}) in {resource_group.value} "
            f"[running={running}, pending={pending}]"
        )
        return task

    def complete(self, task_id: str, error: Optional[BaseException] = None) -> None:
        """Mark a running task COMPLETED or FAILED and release it. Never raises."""
        with self._lock:
            task = self._running.pop(task_id, None)
            running, pending = len(self._running), len(self._pending)

        if task is None:
            logger.warning(f"Unknown task id on complete: {task_id}")
            return

        task.status = TaskStatus.FAILED if error is not None else TaskStatus.COMPLETED
        task.completed_at = time.time()
        if error is not None:
            task.error = str(error)

        duration_ms = int((task.completed_at - (task.started_at or task.completed_at)) * 1000)
        logger.info(
            f"Completed task '{task.name}' ({task.type.value}) in "
            f"{task.resource_group.value} in {duration_ms}ms"
            f"{' - failed' if error is not None else ''} [running={running}, pending={pending}]"
        )

    def get_status(self) -> Dict[str, List[Task]]:
        """Snapshot of running and pending tasks (for monitoring)."""
        with self._lock:
            return {
                "running": [replace(t) for t in self._running.values()],
                "pending": [replace(t) for t in self._pending.values()],
            }

    def reset(self) -> None:
        """Forget every task. Intended for tests."""
        with self._lock:
            self._running.clear()
            self._pending.clear()
        logger.info("Resource gate reset")

    def _has_running(
        self,
        resource_group: ResourceGroup,
        task_type: Optional[TaskType] = None,
    ) -> bool:
        return any(
            t.resource_group == resource_group and (task_type is None or t.type == task_type)
            for t in self._running.values()
        )

    def _mark_pending(
        self,
        task_id: str,
        task_type: TaskType,
        resource_group: ResourceGroup,
        task_name: str,
    ) -> None:
        self._pending[task_id] = Task(
            id=task_id,
            type=task_type,
            resource_group=resource_group,
            status=TaskStatus.PENDING,
            name=task_name,
        )


def gated(
    operation: Callable[..., Awaitable[T]],
    gate: ResourceGate,
    resource_group: ResourceGroup,
    task_type: TaskType,
    *,
    task_name: Optional[str] = None,
    max_wait_time: float = DEFAULT_MAX_WAIT_TIME,
) -> Callable[..., Awaitable[T]]:
    """
    Return a version of ``operation`` that runs only when the gate admits it.

    Each call is a fresh task. If admission times out, GateTimeoutError is
    raised and the operation never runs. Errors from the operation are
    recorded on the task and re-raised unchanged.
    """
    name = task_name or getattr(operation, "__qualname__", repr(operation))

    @functools.wraps(operation)
    async def wrapper(*args, **kwargs) -> T:
        task_id = str(uuid.uuid4())
        wait_started = time.monotonic()

        admitted = await gate.wait_until_admitted(
            task_id, task_type, resource_group, name, max_wait_time
        )
        if not admitted:
            raise GateTimeoutError(
                f"Timed out waiting for resource group {resource_group.value}",
                context={
                    "task_name": name,
                    "task_type": task_type.value,
                    "resource_group": resource_group.value,
                    "max_wait_time": max_wait_time,
                },
            )

        wait_ms = int((time.monotonic() - wait_started) * 1000)
        gate.start(task_id, task_type, resource_group, name)
        execution_started = time.monotonic()

        try:
            result = await operation(*args, **kwargs)
        except BaseException as e:
            gate.complete(task_id, e)
            raise

        gate.complete(task_id)

        execution_ms = int((time.monotonic() - execution_started) * 1000)
        if wait_ms > 0 or execution_ms > 1000:
            logger.info(
                f"[{task_type.value}] '{name}' finished "
                f"(waited {wait_ms}ms, ran {execution_ms}ms)"
            )
        return result

    return wrapper


def sequential(
    operation: Callable[..., Awaitable[T]],
    gate: ResourceGate,
    resource_group: ResourceGroup,
    **options,
) -> Callable[..., Awaitable[T]]:
    """Gate ``operation`` so it runs alone in ``resource_group``."""
    return gated(operation, gate, resource_group, TaskType.SEQUENTIAL, **options)


def parallel(
    operation: Callable[..., Awaitable[T]],
    gate: ResourceGate,
    resource_group: ResourceGroup,
    **options,
) -> Callable[..., Awaitable[T]]:
    """Gate ``operation`` so it may share ``resource_group`` with other parallel tasks."""
    return gated(operation, gate, resource_group, TaskType.PARALLEL, **options)
