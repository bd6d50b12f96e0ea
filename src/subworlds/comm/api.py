"""
The interface every process group has to provide -- modelled after the subset of an MPI
intracommunicator that the scheduler needs.

All methods except `rank`, `size`, `intraprocess` and `abort` are collective: every member of the
group must call them, in the same order, or the group deadlocks.
"""

from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class Communicator(Protocol):
    @property
    def rank(self) -> int:
        raise NotImplementedError

    @property
    def size(self) -> int:
        raise NotImplementedError

    @property
    def intraprocess(self) -> bool:
        """True if all ranks live in this os process, ie inproc transports are usable"""
        raise NotImplementedError

    @property
    def aborted(self) -> bool:
        """True once any rank of the universe called `abort` and survived to tell"""
        raise NotImplementedError

    def barrier(self) -> None:
        raise NotImplementedError

    def bcast(self, value: T, root: int = 0) -> T:
        """Every rank receives its own copy of root's value"""
        raise NotImplementedError

    def allgather(self, value: T) -> list[T]:
        raise NotImplementedError

    def allreduce(self, value: Any) -> Any:
        """Sum of the values of all ranks"""
        raise NotImplementedError

    def split(self, color: int, key: int) -> "Communicator":
        """Ranks with the same color form a new group, ordered by key"""
        raise NotImplementedError

    def abort(self, code: int = 1) -> None:
        """Tears down every process of this group (and possibly beyond). Not collective"""
        raise NotImplementedError
