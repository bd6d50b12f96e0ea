"""
The driver -- what the embedding program calls, on every rank of the universe (SPMD style)

Universe rank 0 additionally hosts the coordinator for the duration of each `run_all`. Tasks passed
to `submit` stay owned by the universe: their inputs are staged out and freed, sub-worlds work on
reconstructed copies, and results come back only via `collect_results`.
"""

import logging
from contextlib import AbstractContextManager
from typing import Any, Iterable, Literal, Sequence

from subworlds.comm.api import Communicator
from subworlds.config import Config
from subworlds.errors import SchedulingInvariantError, UniverseAborted
from subworlds.partition import Subworld, create_subworlds, default_nworld
from subworlds.scheduler.coordinator import Coordinator, CoordinatorClient
from subworlds.scheduler.queue import TaskQueue
from subworlds.staging import INPUT_DATA, RESULT, RecordStore, load, record_name, stage_out_task
from subworlds.task import MacroTask, TaskStatus
from subworlds.tracing import TaskLifecycle, label, mark
from subworlds.worker import worker_loop

logger = logging.getLogger(__name__)


class MacroTaskQueue(AbstractContextManager):
    def __init__(self, universe: Communicator, nworld: int | None = None, config: Config | None = None) -> None:
        """Collective. Partitions the universe into `nworld` sub-worlds, `min(size, 3)` if not given"""
        self.universe = universe
        self.config = config if config is not None else Config()
        self.subworld: Subworld = create_subworlds(
            universe, nworld if nworld is not None else default_nworld(universe.size)
        )
        self.store = RecordStore.shared(universe, self.config.staging_dir)
        self.tasks: list[MacroTask] = []
        # NOTE the authoritative statuses live only here, on universe rank 0
        self.queue: TaskQueue | None = TaskQueue() if universe.rank == 0 else None
        self.executed: list[int] = []
        self.coordinator_stats: dict[str, int] = {}
        label("rank", str(universe.rank))
        label("subworld", str(self.subworld.color))

    def submit(self, tasks: Iterable[MacroTask]) -> list[int]:
        """Collective. Every rank must submit the same sequence of tasks. Enqueues them and stages
        their inputs out of the universe; returns their indices"""
        tasks = list(tasks)
        # NOTE checked on every rank before any collective, so that every rank fails identically
        for task in tasks:
            if task.status != TaskStatus.unknown:
                raise SchedulingInvariantError(f"only fresh tasks can be submitted, gotten {task!r}")
        if len({id(task) for task in tasks}) != len(tasks):
            raise SchedulingInvariantError("the same task object submitted more than once")
        counts = self.universe.allgather(len(tasks))
        if len(set(counts)) != 1:
            raise SchedulingInvariantError(f"ranks submitted differing numbers of tasks: {counts}")
        indices: list[int] = []
        for task in tasks:
            index = len(self.tasks)
            if self.queue is not None:
                if (queued := self.queue.add(task)) != index:
                    raise SchedulingInvariantError(f"queue index {queued} diverged from {index}")
            else:
                task.set_waiting()
            self.tasks.append(task)
            stage_out_task(task, self.universe, self.store, record_name(INPUT_DATA, index))
            mark({"task": index, "action": TaskLifecycle.staged})
            indices.append(index)
        if self.queue is not None and indices:
            logger.debug(f"taskq on universe rank 0:\n{self.queue.describe()}")
        return indices

    def run_all(self, tasks: Iterable[MacroTask] | None = None) -> None:
        """Collective. Runs every waiting task, blocks until all sub-worlds have drained the queue"""
        coordinator: Coordinator | None = None
        try:
            if tasks is not None:
                self.submit(tasks)
            address: str | None = None
            if self.queue is not None:
                coordinator = Coordinator(self.queue, self.config, self.universe.intraprocess).start()
                address = coordinator.address
            address = self.universe.bcast(address)

            client: CoordinatorClient | None = None
            if self.subworld.is_representative:
                client = CoordinatorClient(address, should_stop=lambda: self.universe.aborted)
            try:
                self.executed = worker_loop(self.subworld, client, self.store, self.config)
            finally:
                if client is not None:
                    client.close()
            self.universe.barrier()
        except UniverseAborted:
            raise
        except Exception:
            logger.exception(f"universe rank {self.universe.rank} failed during run_all")
            if self.config.abort_on_failure:
                self.universe.abort(1)
            raise
        finally:
            if coordinator is not None:
                coordinator.shutdown()
                self.coordinator_stats = dict(coordinator.served)

        statuses = self.universe.bcast(self.queue.statuses() if self.queue is not None else None)
        for task, status in zip(self.tasks, statuses):
            task.status = status

    def collect_results(self, indices: Iterable[int] | None = None, remove: bool = False) -> list[Any]:
        """Collective. Loads the results of the given tasks into the universe, in the given order"""
        selected: Sequence[int] = range(len(self.tasks)) if indices is None else list(indices)
        results: list[Any] = []
        for index in selected:
            task = self.tasks[index]
            if task.status != TaskStatus.complete:
                raise SchedulingInvariantError(f"result of task {index} requested while {task.status.name}")
            name = record_name(RESULT, index)
            load(task, RESULT, self.universe, self.store, name)
            mark({"task": index, "action": TaskLifecycle.collected})
            if remove and self.universe.rank == 0:
                self.store.remove(name)
            results.append(task.result)
        return results

    def map(self, template: MacroTask, inputs: Iterable[Any]) -> list[Any]:
        """Collective. One task per input, each a sibling of `template`; results in input order"""
        tasks: list[MacroTask] = []
        for data in inputs:
            task = template.create()
            task.data = data
            tasks.append(task)
        first = len(self.tasks)
        self.run_all(tasks)
        return self.collect_results(range(first, first + len(tasks)), remove=not self.config.keep_records)

    def statuses(self) -> list[TaskStatus]:
        return [task.status for task in self.tasks]

    def describe(self) -> str:
        return "\n".join(f"{index}: {task.describe()}" for index, task in enumerate(self.tasks))

    def close(self) -> None:
        """Collective"""
        self.universe.barrier()
        if not self.config.keep_records:
            self.store.cleanup()

    def __exit__(self, exc_type, exc_val, exc_tb) -> Literal[False]:
        if exc_type is None:
            self.close()
        else:
            logger.warning(f"leaving records in {self.store.root} for inspection after {exc_type.__name__}")
        return False
