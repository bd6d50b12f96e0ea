"""
Moves task state between process groups that share no memory

The holder of a value writes it into a named record of a `RecordStore` (a directory visible to
every process), and the receiver reads it back. There is no lock on the store: read-after-write is
guaranteed solely by the barrier pairs in `store_and_clear`/`load`, which are thus only valid when
*both* the producing and the consuming group have synchronized. Leaving out a barrier is a
programming error, not a runtime condition.

Record layout: `ser_str(task tag) + ser_str(role) + payload`, payload being cloudpickled.
"""

import logging
import os
import shutil
import tempfile
import uuid
from typing import Any, Protocol, runtime_checkable

import cloudpickle

from subworlds.comm.api import Communicator
from subworlds.errors import SchedulingInvariantError, SerializationMismatchError
from subworlds.func import deser_str, ser_str
from subworlds.task import MacroTask, deserialize_task

logger = logging.getLogger(__name__)

INPUT_DATA = "input-data"
RESULT = "result"
_role2field = {INPUT_DATA: "data", RESULT: "result"}


def record_name(role: str, index: int) -> str:
    if role not in _role2field:
        raise ValueError(f"unknown record {role=}")
    return f"{role}_of_task_{index}"


@runtime_checkable
class Localizable(Protocol):
    """A value whose content is distributed over the ranks of the group that owns it"""

    def localize(self, world: Communicator) -> None:
        """Adopt the distribution over `world`, ie keep only what this rank is responsible for"""
        raise NotImplementedError

    def globalize(self, world: Communicator) -> Any:
        """Collective -- a copy holding the complete content, identical on every rank"""
        raise NotImplementedError


class RecordStore:
    def __init__(self, root: str, owned: bool = False) -> None:
        self.root = root
        self.owned = owned

    @classmethod
    def shared(cls, universe: Communicator, root: str | None = None) -> "RecordStore":
        """Collective -- agree on a single directory. Without `root`, universe rank 0 creates a temp
        dir, which is then owned (and eventually cleaned up) by it"""
        if root is None:
            path = tempfile.mkdtemp(prefix="subworlds-") if universe.rank == 0 else None
            path = universe.bcast(path)
            owned = universe.rank == 0
        else:
            if universe.rank == 0:
                os.makedirs(root, exist_ok=True)
            universe.barrier()
            path, owned = root, False
        logger.debug(f"using record store at {path}")
        return cls(path, owned)

    def path_of(self, name: str) -> str:
        if not name or os.sep in name or name.startswith("."):
            raise ValueError(f"invalid record {name=}")
        return os.path.join(self.root, name)

    def write(self, name: str, data: bytes) -> None:
        path = self.path_of(name)
        # NOTE written under a temporary name so that the record never appears half-written
        tmp = f"{self.root}/.{name}.{uuid.uuid4().hex[:8]}"
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)

    def read(self, name: str) -> bytes:
        try:
            with open(self.path_of(name), "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise SchedulingInvariantError(
                f"record {name} does not exist -- not staged, already consumed, or a barrier is missing"
            )

    def exists(self, name: str) -> bool:
        return os.path.exists(self.path_of(name))

    def remove(self, name: str) -> None:
        try:
            os.remove(self.path_of(name))
        except FileNotFoundError:
            logger.warning(f"unexpected removal of non-existent record {name}")

    def names(self) -> list[str]:
        return sorted(e for e in os.listdir(self.root) if not e.startswith("."))

    def cleanup(self) -> None:
        if self.owned:
            shutil.rmtree(self.root, ignore_errors=True)


def encode_record(tag: str, role: str, payload: bytes) -> bytes:
    return ser_str(tag) + ser_str(role) + payload


def decode_record(b: bytes) -> tuple[str, str, bytes]:
    tag, b = deser_str(b)
    role, payload = deser_str(b)
    return tag, role, payload


def _expect(name: str, tag: str, role: str, expected_tag: str, expected_role: str) -> None:
    if role != expected_role:
        raise SerializationMismatchError(f"record {name} holds {role}, expected {expected_role}")
    if tag != expected_tag:
        raise SerializationMismatchError(f"record {name} was produced by {tag}, expected {expected_tag}")


def store_and_clear(task: MacroTask, role: str, world: Communicator, store: RecordStore, name: str) -> None:
    """Collective over `world` -- writes the `role` field of the task into record `name`, then frees
    it on every rank"""
    field = _role2field[role]
    world.barrier()
    value = getattr(task, field)
    if isinstance(value, Localizable):
        value = value.globalize(world)
    if world.rank == 0:
        store.write(name, encode_record(task.tag, role, cloudpickle.dumps(value)))
    world.barrier()
    setattr(task, field, None)


def load(task: MacroTask, role: str, world: Communicator, store: RecordStore, name: str) -> None:
    """Collective over `world` -- reads record `name` into the `role` field of the task, identically
    on every rank, distributed over `world` if the value is `Localizable`"""
    field = _role2field[role]
    world.barrier()
    tag, stored_role, payload = decode_record(store.read(name))
    _expect(name, tag, stored_role, task.tag, role)
    value = cloudpickle.loads(payload)
    if isinstance(value, Localizable):
        value.localize(world)
    setattr(task, field, value)
    world.barrier()


def stage_out_task(task: MacroTask, world: Communicator, store: RecordStore, name: str) -> None:
    """Collective over `world` -- writes the whole task, so that a receiver with no knowledge of
    its type can reconstruct it. Frees the task's data afterwards"""
    world.barrier()
    if isinstance(task.data, Localizable):
        task.data = task.data.globalize(world)
    if world.rank == 0:
        store.write(name, encode_record(task.tag, INPUT_DATA, task.serialize()))
    world.barrier()
    task.data = None


def stage_in_task(world: Communicator, store: RecordStore, name: str, remove: bool = True) -> MacroTask:
    """Collective over `world` -- reconstructs a task written by `stage_out_task`. The record is
    consumed, ie deleted, unless `remove` is False"""
    world.barrier()
    tag, role, payload = decode_record(store.read(name))
    if role != INPUT_DATA:
        raise SerializationMismatchError(f"record {name} holds {role}, expected {INPUT_DATA}")
    task = deserialize_task(payload)
    _expect(name, tag, role, task.tag, INPUT_DATA)
    if isinstance(task.data, Localizable):
        task.data.localize(world)
    world.barrier()
    if remove and world.rank == 0:
        store.remove(name)
    return task
