"""
The loop every sub-world runs -- claim, stage in, run, stage out, report, until there is no more work
"""

import logging
from time import perf_counter_ns

from subworlds.comm.api import Communicator
from subworlds.config import Config
from subworlds.errors import PayloadExecutionError
from subworlds.partition import Subworld
from subworlds.scheduler.coordinator import CoordinatorClient
from subworlds.staging import INPUT_DATA, RESULT, RecordStore, record_name, stage_in_task, store_and_clear
from subworlds.task import MacroTask
from subworlds.tracing import TaskLifecycle, mark

logger = logging.getLogger(__name__)


def claim_for_group(subworld: Subworld, client: CoordinatorClient | None) -> int | None:
    """Collective over the sub-world -- its rank 0 asks the coordinator, everybody gets the answer"""
    index: int | None = None
    if subworld.is_representative:
        if client is None:
            raise TypeError("representative of a sub-world needs a coordinator client")
        index = client.claim_next()
    index = subworld.comm.bcast(index, root=0)
    subworld.comm.barrier()
    return index


def run_task(task: MacroTask, index: int, world: Communicator, retries: int = 0) -> None:
    """Runs the task on this rank of `world`. A failed attempt is re-run right away on the failing
    rank alone, without any agreement with its peers -- they are possibly blocked inside a collective
    of the payload, and the re-run joins that collective. Retries are thus only sound for payloads
    that fail before their first collective, or use none. Once retries are exhausted, the error is
    raised without entering any collective, and it is up to the driver to abort the universe"""
    attempt = 0
    while True:
        try:
            task.run(world)
            return
        except Exception as e:
            if attempt >= retries:
                raise PayloadExecutionError(index, repr(e)) from e
            attempt += 1
            logger.warning(f"retrying task {index} on rank {world.rank} after {repr(e)}, attempt {attempt} of {retries}")


def worker_loop(subworld: Subworld, client: CoordinatorClient | None, store: RecordStore, config: Config) -> list[int]:
    """Collective over the sub-world. Returns the indices of tasks this sub-world executed"""
    world = subworld.comm
    executed: list[int] = []
    while True:
        index = claim_for_group(subworld, client)
        if index is None:
            break
        start = perf_counter_ns()
        mark({"task": index, "action": TaskLifecycle.claimed})

        task = stage_in_task(world, store, record_name(INPUT_DATA, index))
        mark({"task": index, "action": TaskLifecycle.loaded})

        run_task(task, index, world, config.payload_retries)
        world.barrier()
        mark({"task": index, "action": TaskLifecycle.computed})

        store_and_clear(task, RESULT, world, store, record_name(RESULT, index))
        mark({"task": index, "action": TaskLifecycle.published})

        if client is not None:
            client.mark_complete(index)
        mark({"task": index, "action": TaskLifecycle.completed})
        end = perf_counter_ns()
        if subworld.is_representative:
            logger.info(f"completed task {index} in sub-world {subworld.color} after {(end-start)/1e9:.3f}s")
        executed.append(index)
        del task
    logger.debug(f"sub-world {subworld.color} exhausted the queue after {len(executed)} tasks")
    return executed
