"""
MPI backend, a thin adapter over an mpi4py intracommunicator. Requires the `mpi` extra.

Run under a launcher, eg `mpiexec -n 8 python -m subworlds mpi --nworld 3`
"""

import logging
from typing import Any, TypeVar

from mpi4py import MPI

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MPIComm:
    def __init__(self, comm: MPI.Intracomm) -> None:
        self.comm = comm

    @property
    def rank(self) -> int:
        return self.comm.Get_rank()

    @property
    def size(self) -> int:
        return self.comm.Get_size()

    @property
    def intraprocess(self) -> bool:
        return self.size == 1

    @property
    def aborted(self) -> bool:
        # NOTE MPI_Abort takes the processes down, nobody lives to observe it
        return False

    def barrier(self) -> None:
        self.comm.Barrier()

    def bcast(self, value: T, root: int = 0) -> T:
        return self.comm.bcast(value, root=root)

    def allgather(self, value: T) -> list[T]:
        return self.comm.allgather(value)

    def allreduce(self, value: Any) -> Any:
        return self.comm.allreduce(value, op=MPI.SUM)

    def split(self, color: int, key: int) -> "MPIComm":
        return MPIComm(self.comm.Split(color, key))

    def abort(self, code: int = 1) -> None:
        logger.error(f"rank {self.rank} aborting with {code=}")
        self.comm.Abort(code)


def mpi_universe() -> MPIComm:
    return MPIComm(MPI.COMM_WORLD)
