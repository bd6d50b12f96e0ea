"""
The unit of work handed out by the coordinator

A task is a `MacroTask` subclass carrying its input in `data` and its outcome in `result`. The
scheduler manipulates tasks of various concrete types through this one interface, and needs to
reconstruct them on the far side of a staged record without knowing their type in advance -- for
that, every concrete class registers under a stable tag, and the wire format is
`{tag, state-bytes}`:
```
@register_task("my.task")
class MyTask(MacroTask):
    def run(self, world):
        self.result = ...
```
Concrete classes must be constructible without arguments, as the deserializer and `create` rely
on that.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Callable, ClassVar, Type, TypeVar

import cloudpickle
from typing_extensions import Self

from subworlds.comm.api import Communicator
from subworlds.errors import SerializationMismatchError
from subworlds.func import deser_str, ser_str

logger = logging.getLogger(__name__)


class TaskStatus(int, Enum):
    running = auto()
    waiting = auto()
    complete = auto()
    unknown = auto()


_registry: dict[str, Type["MacroTask"]] = {}

M = TypeVar("M", bound=Type["MacroTask"])


def register_task(tag: str) -> Callable[[M], M]:
    def decorator(clazz: M) -> M:
        if not tag.isascii():
            raise ValueError(f"task tag must be ascii, gotten {tag!r}")
        if (existing := _registry.get(tag)) is not None and existing is not clazz:
            raise ValueError(f"tag {tag!r} already registered for {existing.__qualname__}")
        _registry[tag] = clazz
        clazz.tag = tag
        return clazz

    return decorator


def registered_tags() -> set[str]:
    return set(_registry.keys())


class MacroTask(ABC):
    tag: ClassVar[str] = ""

    def __init__(self, data: Any = None, priority: float = 0.0) -> None:
        self.data = data
        self.result: Any = None
        # NOTE priority is carried along but never consulted, the queue is strictly fifo
        self.priority = priority
        self.status = TaskStatus.unknown

    @abstractmethod
    def run(self, world: Communicator) -> None:
        """Computes `self.result` from `self.data`. Invoked by every rank of the sub-world, may
        use collectives of `world`"""
        raise NotImplementedError

    def create(self) -> Self:
        """A default instance of the same concrete type, to be filled with data"""
        return type(self)()

    def set_running(self) -> None:
        self.status = TaskStatus.running

    def set_waiting(self) -> None:
        self.status = TaskStatus.waiting

    def set_complete(self) -> None:
        self.status = TaskStatus.complete

    def get_state(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "result": self.result,
            "status": self.status.value,
            "priority": self.priority,
        }

    def set_state(self, state: dict[str, Any]) -> None:
        self.data = state["data"]
        self.result = state["result"]
        self.status = TaskStatus(state["status"])
        self.priority = state["priority"]

    def serialize(self) -> bytes:
        if _registry.get(self.tag) is not type(self):
            raise SerializationMismatchError(
                f"{type(self).__qualname__} is not registered, use @register_task"
            )
        return ser_str(self.tag) + cloudpickle.dumps(self.get_state())

    def describe(self) -> str:
        return f"{self.tag or type(self).__qualname__} {self.status.name} priority={self.priority}"

    def __repr__(self) -> str:
        return f"<{type(self).__qualname__} {self.status.name}>"


def deserialize_task(b: bytes) -> MacroTask:
    tag, payload = deser_str(bytes(b))
    clazz = _registry.get(tag)
    if clazz is None:
        raise SerializationMismatchError(f"no task registered under {tag=}")
    task = clazz()
    task.set_state(cloudpickle.loads(payload))
    return task


@register_task("subworlds.function")
class FunctionTask(MacroTask):
    """Runs a plain callable `func(world, data) -> result`"""

    def __init__(
        self,
        func: Callable[[Communicator, Any], Any] | None = None,
        data: Any = None,
        priority: float = 0.0,
    ) -> None:
        super().__init__(data=data, priority=priority)
        self.func = func

    def run(self, world: Communicator) -> None:
        if self.func is None:
            raise TypeError("FunctionTask without a func")
        self.result = self.func(world, self.data)

    def create(self) -> Self:
        return type(self)(func=self.func)

    def get_state(self) -> dict[str, Any]:
        return {**super().get_state(), "func": self.func}

    def set_state(self, state: dict[str, Any]) -> None:
        super().set_state(state)
        self.func = state["func"]
