"""
The registry of tasks with their statuses

Lives on the coordinator process only. Status transitions happen exclusively through `claim_next`
and `mark_complete`, all access is serialized by one lock:
```
unknown -(add)-> waiting -(claim_next)-> running -(mark_complete)-> complete
```
"""

import logging
import threading
from typing import Iterator

from subworlds.errors import SchedulingInvariantError
from subworlds.task import MacroTask, TaskStatus

logger = logging.getLogger(__name__)


class TaskQueue:
    def __init__(self) -> None:
        self.tasks: list[MacroTask] = []
        self.lock = threading.Lock()

    def add(self, task: MacroTask) -> int:
        with self.lock:
            if task.status != TaskStatus.unknown:
                raise SchedulingInvariantError(f"only fresh tasks can be added, gotten {task!r}")
            task.set_waiting()
            self.tasks.append(task)
            return len(self.tasks) - 1

    def claim_next(self) -> int | None:
        """First waiting task in insertion order becomes running. None if there is no more work"""
        with self.lock:
            for index, task in enumerate(self.tasks):
                if task.status == TaskStatus.waiting:
                    task.set_running()
                    logger.debug(f"claimed task {index}")
                    return index
            if any(task.status == TaskStatus.unknown for task in self.tasks):
                raise SchedulingInvariantError("no waiting task, but some tasks were never enqueued")
            logger.debug("could not find task to schedule")
            return None

    def mark_complete(self, index: int) -> None:
        """Running task becomes complete, a complete one stays so. Stricter than an unconditional
        set: a task that was never claimed, ie still waiting or unknown, or an index outside the
        queue is reported as an invariant violation instead of being marked complete"""
        with self.lock:
            if not 0 <= index < len(self.tasks):
                raise SchedulingInvariantError(f"no task {index} in a queue of {len(self.tasks)}")
            task = self.tasks[index]
            if task.status == TaskStatus.complete:
                logger.debug(f"task {index} already complete")
                return
            if task.status != TaskStatus.running:
                raise SchedulingInvariantError(f"task {index} completed while {task.status.name}")
            task.set_complete()

    def statuses(self) -> list[TaskStatus]:
        with self.lock:
            return [task.status for task in self.tasks]

    def describe(self) -> str:
        with self.lock:
            return "\n".join(f"{index}: {task.describe()}" for index, task in enumerate(self.tasks))

    def __len__(self) -> int:
        with self.lock:
            return len(self.tasks)

    def __iter__(self) -> Iterator[MacroTask]:
        with self.lock:
            return iter(list(self.tasks))
