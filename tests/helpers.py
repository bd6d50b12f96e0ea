from subworlds.comm.api import Communicator
from subworlds.task import MacroTask, register_task


@register_task("tests.scalar")
class ScalarTask(MacroTask):
    """Doubles a scalar, and records how many ranks the sub-world had"""

    def run(self, world: Communicator) -> None:
        self.result = {"input": self.data, "doubled": 2 * self.data, "ranks": world.allreduce(1)}


@register_task("tests.failing")
class FailingTask(MacroTask):
    def run(self, world: Communicator) -> None:
        raise ValueError(f"cannot process {self.data}")
