import numpy as np
import pytest
from helpers import ScalarTask

from subworlds.errors import SerializationMismatchError
from subworlds.func import ser_str
from subworlds.task import FunctionTask, MacroTask, TaskStatus, deserialize_task, register_task, registered_tags


def test_round_trip():
    task = ScalarTask(data=3, priority=1.5)
    task.set_waiting()
    task.result = {"partial": np.arange(3)}

    back = deserialize_task(task.serialize())
    assert isinstance(back, ScalarTask)
    assert back is not task
    assert back.data == 3
    assert back.priority == 1.5
    assert back.status == TaskStatus.waiting
    assert np.array_equal(back.result["partial"], np.arange(3))


def test_function_task_round_trip():
    offset = 7

    def add(world, data):
        return data + offset

    back = deserialize_task(FunctionTask(add, data=1).serialize())
    assert isinstance(back, FunctionTask)
    assert back.func is not None
    assert back.func(None, 1) == 8


def test_create_is_sibling():
    def f(world, data):
        return data

    template = FunctionTask(f, data=2)
    template.set_complete()
    sibling = template.create()
    assert isinstance(sibling, FunctionTask)
    assert sibling.func is f
    assert sibling.data is None
    assert sibling.status == TaskStatus.unknown

    assert type(ScalarTask(data=1).create()) is ScalarTask


def test_status_transitions():
    task = ScalarTask()
    assert task.status == TaskStatus.unknown
    task.set_waiting()
    task.set_running()
    task.set_complete()
    assert task.status == TaskStatus.complete
    assert "complete" in task.describe()


def test_unknown_tag():
    with pytest.raises(SerializationMismatchError):
        deserialize_task(ser_str("tests.nonexistent") + b"garbage")


def test_unregistered_class():
    class Unregistered(MacroTask):
        def run(self, world):
            pass

    with pytest.raises(SerializationMismatchError):
        Unregistered().serialize()


def test_duplicate_tag():
    assert "tests.scalar" in registered_tags()

    with pytest.raises(ValueError):

        @register_task("tests.scalar")
        class Impostor(MacroTask):
            def run(self, world):
                pass

    # re-registering the same class is fine
    assert register_task("tests.scalar")(ScalarTask) is ScalarTask
