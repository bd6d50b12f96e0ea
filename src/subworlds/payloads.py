"""
Numerical payloads for demos and tests

`BlockVector` is a vector distributed in contiguous blocks over the ranks of whatever group holds
it -- when staged into another group, it is reassembled and redistributed over the new group.
`GaussianTask` evaluates a gaussian over such a grid inside its sub-world.
"""

import logging
from dataclasses import dataclass

import numpy as np

from subworlds.comm.api import Communicator
from subworlds.task import MacroTask, register_task

logger = logging.getLogger(__name__)


class BlockVector:
    def __init__(self, values: np.ndarray) -> None:
        self.values = np.asarray(values, dtype=float)
        self.global_size = len(self.values)
        self.offset = 0
        self.partitioned = False

    @classmethod
    def like(cls, values: np.ndarray, other: "BlockVector") -> "BlockVector":
        """Local block `values` distributed the same way as `other`"""
        if len(values) != len(other.values):
            raise ValueError(f"block of {len(values)} does not match {len(other.values)}")
        rv = cls(values)
        rv.global_size = other.global_size
        rv.offset = other.offset
        rv.partitioned = other.partitioned
        return rv

    def localize(self, world: Communicator) -> None:
        if self.partitioned:
            raise ValueError("vector already distributed, globalize it first")
        bounds = np.linspace(0, self.global_size, world.size + 1).astype(int)
        start, stop = bounds[world.rank], bounds[world.rank + 1]
        self.values = self.values[start:stop].copy()
        self.offset = int(start)
        self.partitioned = True

    def globalize(self, world: Communicator) -> "BlockVector":
        if not self.partitioned:
            return BlockVector(self.values.copy())
        blocks = sorted(world.allgather((self.offset, self.values)), key=lambda e: e[0])
        return BlockVector(np.concatenate([values for _, values in blocks]))

    def dot(self, other: "BlockVector", world: Communicator) -> float:
        local = float(np.dot(self.values, other.values))
        return world.allreduce(local) if self.partitioned else local

    def norm(self, world: Communicator) -> float:
        return float(np.sqrt(self.dot(self, world)))

    def __len__(self) -> int:
        return self.global_size


@dataclass
class GaussianData:
    exponent: float
    grid: BlockVector

    def localize(self, world: Communicator) -> None:
        self.grid.localize(world)

    def globalize(self, world: Communicator) -> "GaussianData":
        return GaussianData(exponent=self.exponent, grid=self.grid.globalize(world))


@register_task("subworlds.gaussian")
class GaussianTask(MacroTask):
    """exp(-a*x^2) over the grid, left distributed over the sub-world"""

    def run(self, world: Communicator) -> None:
        data: GaussianData = self.data
        grid = data.grid
        self.result = BlockVector.like(np.exp(-data.exponent * grid.values**2), grid)
        norm = self.result.norm(world)
        if world.rank == 0:
            logger.debug(f"gaussian with exponent {data.exponent} has norm {norm:.6f}")


def gaussian_inputs(ntask: int, npoints: int) -> list[GaussianData]:
    return [
        GaussianData(exponent=float(i + 1), grid=BlockVector(np.linspace(-3.0, 3.0, npoints)))
        for i in range(ntask)
    ]
