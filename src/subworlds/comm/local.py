"""
In-process universe: every rank is a thread of this process.

Used for tests and for single-host runs without an MPI launcher. Ranks never share references --
whatever goes through a collective is copied via cloudpickle, as it would be by MPI. Failure of any
rank breaks all barriers of the universe, so that the remaining ranks fail instead of deadlocking.
"""

import functools
import logging
import operator
import threading
from typing import Any, Callable, TypeVar

import cloudpickle

from subworlds.errors import UniverseAborted

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _copy(value: T) -> T:
    return cloudpickle.loads(cloudpickle.dumps(value))


class _Group:
    """State shared by the ranks of one group"""

    def __init__(self, size: int, universe: "_Group | None" = None) -> None:
        self.size = size
        self.barrier = threading.Barrier(size)
        self.slots: list[Any] = [None] * size
        self.universe = universe if universe is not None else self
        if universe is None:
            self.registry: list[_Group] = []
            self.registry_lock = threading.Lock()
            self.aborted = False
        with self.universe.registry_lock:
            self.universe.registry.append(self)

    def abort_all(self) -> None:
        universe = self.universe
        with universe.registry_lock:
            universe.aborted = True
            groups = list(universe.registry)
        for group in groups:
            group.barrier.abort()


class LocalComm:
    def __init__(self, group: _Group, rank: int) -> None:
        self.group = group
        self._rank = rank

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self.group.size

    @property
    def intraprocess(self) -> bool:
        return True

    @property
    def aborted(self) -> bool:
        return self.group.universe.aborted

    def barrier(self) -> None:
        try:
            self.group.barrier.wait()
        except threading.BrokenBarrierError:
            raise UniverseAborted(f"barrier broken at rank {self.rank}, another rank has aborted")

    def _exchange(self, value: Any) -> list[Any]:
        """Allgather without copying. The second barrier guards the slots against the next exchange"""
        self.group.slots[self.rank] = value
        self.barrier()
        values = list(self.group.slots)
        self.barrier()
        return values

    def bcast(self, value: T, root: int = 0) -> T:
        values = self._exchange(value if self.rank == root else None)
        return values[root] if self.rank == root else _copy(values[root])

    def allgather(self, value: T) -> list[T]:
        values = self._exchange(value)
        return [v if i == self.rank else _copy(v) for i, v in enumerate(values)]

    def allreduce(self, value: Any) -> Any:
        return functools.reduce(operator.add, self.allgather(value))

    def split(self, color: int, key: int) -> "LocalComm":
        entries: list[tuple[int, int]] = self._exchange((color, key))
        members = sorted(
            (k, r) for r, (c, k) in enumerate(entries) if c == color
        )
        leader = members[0][1]
        created = _Group(len(members), self.group.universe) if leader == self.rank else None
        groups = self._exchange(created)
        new_rank = [r for _, r in members].index(self.rank)
        return LocalComm(groups[leader], new_rank)

    def abort(self, code: int = 1) -> None:
        logger.error(f"rank {self.rank} aborting the universe with {code=}")
        self.group.abort_all()


def launch_local(nprocs: int, fn: Callable[..., T], *args: Any, **kwargs: Any) -> list[T]:
    """Runs `fn(universe, *args, **kwargs)` on `nprocs` ranks, returns the results ordered by rank.

    If any rank raises, the whole universe is aborted and the first genuine failure (ie, not a
    consequential UniverseAborted) is re-raised here."""
    if nprocs < 1:
        raise ValueError(f"at least one process required, gotten {nprocs}")
    universe = _Group(nprocs)
    results: list[Any] = [None] * nprocs
    errors: list[Exception | None] = [None] * nprocs

    def target(rank: int) -> None:
        try:
            results[rank] = fn(LocalComm(universe, rank), *args, **kwargs)
        except Exception as e:
            logger.debug(f"rank {rank} failed with {repr(e)}")
            errors[rank] = e
            universe.abort_all()

    threads = [
        threading.Thread(target=target, args=(rank,), name=f"rank{rank}")
        for rank in range(nprocs)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    failures = [e for e in errors if e is not None]
    if failures:
        genuine = [e for e in failures if not isinstance(e, UniverseAborted)]
        raise (genuine or failures)[0]
    return results
