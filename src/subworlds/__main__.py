"""
Entrypoint for running the demo workload

Example:
```
python -m subworlds local --nprocs 4 --nworld 3 --ntask 5
mpiexec -n 4 python -m subworlds mpi --nworld 3 --ntask 5
```
The demo first runs a list of gaussian tasks via `run_all`, then maps the same inputs via `map`,
reporting the norms of the results.
"""

import logging
import logging.config
from time import perf_counter_ns

import fire

from subworlds.comm.api import Communicator
from subworlds.comm.local import launch_local
from subworlds.config import Config, logging_config
from subworlds.payloads import GaussianTask, gaussian_inputs
from subworlds.taskq import MacroTaskQueue

logger = logging.getLogger("subworlds.main")


def demo(universe: Communicator, nworld: int | None, ntask: int, npoints: int) -> list[float]:
    config = Config.from_env()
    start = perf_counter_ns()
    with MacroTaskQueue(universe, nworld, config) as taskq:
        tasks = [GaussianTask(data) for data in gaussian_inputs(ntask, npoints)]
        taskq.run_all(tasks)
        if universe.rank == 0:
            logger.info(f"run_all finished:\n{taskq.describe()}")

        results = taskq.map(GaussianTask(), gaussian_inputs(ntask, npoints))
        norms = [result.norm(universe) for result in results]
    end = perf_counter_ns()
    if universe.rank == 0:
        for i, (result, norm) in enumerate(zip(results, norms)):
            print(f"result {i}: size {len(result)}, norm {norm:.6f}")
        print(f"compute took {(end-start)/1e9:.3f}s")
    return norms


def main_local(nprocs: int = 4, nworld: int | None = None, ntask: int = 5, npoints: int = 1000) -> None:
    logging.config.dictConfig(logging_config)
    launch_local(nprocs, demo, nworld, ntask, npoints)


def main_mpi(nworld: int | None = None, ntask: int = 5, npoints: int = 1000) -> None:
    from subworlds.comm.mpi import mpi_universe

    logging.config.dictConfig(logging_config)
    demo(mpi_universe(), nworld, ntask, npoints)


if __name__ == "__main__":
    fire.Fire({"local": main_local, "mpi": main_mpi})
