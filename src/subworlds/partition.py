"""
Partitioning of the universe into disjoint sub-worlds

Ranks are dealt out round-robin, ie rank `r` belongs to sub-world `r % nworld`. Every sub-world is
thus non-empty as long as `nworld <= size`, and the ranks `0..nworld-1` are the local rank 0 of
their respective sub-world.
"""

import logging
from dataclasses import dataclass

from subworlds.comm.api import Communicator
from subworlds.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subworld:
    """Handle of the sub-world the calling process belongs to"""

    comm: Communicator
    color: int  # index of the sub-world, 0..nworld-1
    nworld: int
    universe_rank: int

    @property
    def is_representative(self) -> bool:
        """The local rank 0, which talks to the coordinator on behalf of the whole sub-world"""
        return self.comm.rank == 0


def validate(size: int, nworld: int) -> None:
    if nworld < 1:
        raise ConfigurationError(f"at least one sub-world required, gotten {nworld=}")
    if nworld > size:
        raise ConfigurationError(
            f"trying to create {nworld} sub-worlds with {size} processes -- increase the number of processes"
        )


def group_ranks(size: int, nworld: int) -> list[list[int]]:
    validate(size, nworld)
    groups: list[list[int]] = [[] for _ in range(nworld)]
    for rank in range(size):
        groups[rank % nworld].append(rank)
    return groups


def default_nworld(size: int, cap: int = 3) -> int:
    return max(1, min(size, cap))


def create_subworlds(universe: Communicator, nworld: int) -> Subworld:
    """Collective over the universe. Must be called exactly once per run by every process"""
    # NOTE validated before entering any collective, so that every rank fails identically
    validate(universe.size, nworld)
    color = universe.rank % nworld
    comm = universe.split(color, universe.rank)
    if universe.rank == 0:
        logger.info(f"created {nworld} sub-worlds out of {universe.size} processes")
    logger.debug(f"assigned universe rank {universe.rank} to sub-world {color} as rank {comm.rank}")
    universe.barrier()
    return Subworld(comm=comm, color=color, nworld=nworld, universe_rank=universe.rank)
