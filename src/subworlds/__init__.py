"""
subworlds -- run a queue of macro tasks on disjoint groups of a process pool

Typical usage, executed by every rank of the universe:
```
universe = launch_local(...)  # or subworlds.comm.mpi.mpi_universe()
with MacroTaskQueue(universe, nworld=3) as taskq:
    results = taskq.map(GaussianTask(), inputs)
```
"""

from subworlds.errors import (
    ConfigurationError,
    ErrorKind,
    PayloadExecutionError,
    SchedulingInvariantError,
    SerializationMismatchError,
    SubworldsError,
)
from subworlds.task import FunctionTask, MacroTask, TaskStatus, deserialize_task, register_task
from subworlds.taskq import MacroTaskQueue
from subworlds.version import __version__

__all__ = [
    "ConfigurationError",
    "ErrorKind",
    "FunctionTask",
    "MacroTask",
    "MacroTaskQueue",
    "PayloadExecutionError",
    "SchedulingInvariantError",
    "SerializationMismatchError",
    "SubworldsError",
    "TaskStatus",
    "deserialize_task",
    "register_task",
    "__version__",
]
