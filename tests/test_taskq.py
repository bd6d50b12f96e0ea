import os

import numpy as np
import pytest
from helpers import FailingTask, ScalarTask

from subworlds.comm.local import launch_local
from subworlds.errors import ConfigurationError, PayloadExecutionError, SchedulingInvariantError
from subworlds.payloads import GaussianTask, gaussian_inputs
from subworlds.staging import RESULT, record_name
from subworlds.task import FunctionTask, TaskStatus
from subworlds.taskq import MacroTaskQueue


def test_scalar_tasks_over_three_subworlds(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=3, config=config) as taskq:
            taskq.run_all([ScalarTask(data=i) for i in range(5)])
            statuses = taskq.statuses()
            results = taskq.collect_results()
            return statuses, results, taskq.executed

    outputs = launch_local(5, f)
    for statuses, results, _ in outputs:
        assert statuses == [TaskStatus.complete] * 5
        assert [r["input"] for r in results] == list(range(5))
        assert [r["doubled"] for r in results] == [0, 2, 4, 6, 8]
        assert all(r["ranks"] in (1, 2) for r in results)

    # every task ran in exactly one sub-world, and all ranks of a sub-world agree
    executed = [e for _, _, e in outputs]
    for rank in range(5):
        assert executed[rank] == executed[rank % 3]
    assert sorted(executed[0] + executed[1] + executed[2]) == list(range(5))


def test_empty_queue(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=2, config=config) as taskq:
            taskq.run_all()
            return taskq.coordinator_stats, taskq.executed, taskq.collect_results()

    outputs = launch_local(4, f)
    assert outputs[0] == ({"ClaimNextRequest": 2}, [], [])
    for stats, executed, results in outputs[1:]:
        assert stats == {}
        assert executed == []
        assert results == []


def test_more_subworlds_than_processes(config):
    def f(universe):
        with pytest.raises(ConfigurationError):
            MacroTaskQueue(universe, nworld=4, config=config)
        return True

    assert launch_local(2, f) == [True, True]


def test_default_nworld(config):
    def f(universe):
        with MacroTaskQueue(universe, config=config) as taskq:
            return taskq.subworld.nworld

    assert launch_local(2, f) == [2, 2]
    assert launch_local(4, f) == [3, 3, 3, 3]


def test_single_process(config):
    def f(universe):
        with MacroTaskQueue(universe, config=config) as taskq:
            return taskq.map(ScalarTask(), [3, 4])

    [results] = launch_local(1, f)
    assert [r["doubled"] for r in results] == [6, 8]


def test_map_function_task(config):
    def square_plus_ranks(world, x):
        return x * x + 100 * world.size

    def f(universe):
        with MacroTaskQueue(universe, nworld=2, config=config) as taskq:
            first = taskq.map(FunctionTask(square_plus_ranks), [1, 2, 3])
            second = taskq.map(FunctionTask(square_plus_ranks), [4])
            return first, second, len(taskq.tasks)

    for first, second, ntasks in launch_local(4, f):
        assert first == [201, 204, 209]
        assert second == [216]
        assert ntasks == 4


def test_map_removes_results(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            taskq.map(ScalarTask(), [1])
            universe.barrier()
            return taskq.store.exists(record_name(RESULT, 0))

    assert launch_local(2, f) == [False, False]


def test_keep_records(config):
    config = config.model_copy(update={"keep_records": True})

    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            taskq.map(ScalarTask(), [1])
            universe.barrier()
            return taskq.store.exists(record_name(RESULT, 0))

    assert launch_local(2, f) == [True, True]
    assert os.path.isdir(config.staging_dir)


def test_gaussian_map(config):
    npoints = 101

    def f(universe):
        with MacroTaskQueue(universe, nworld=2, config=config) as taskq:
            results = taskq.map(GaussianTask(), gaussian_inputs(3, npoints))
            return [r.norm(universe) for r in results], [len(r.values) for r in results]

    x = np.linspace(-3.0, 3.0, npoints)
    expected = [np.linalg.norm(np.exp(-a * x**2)) for a in (1.0, 2.0, 3.0)]
    outputs = launch_local(3, f)
    for norms, _ in outputs:
        assert norms == pytest.approx(expected)
    # results come back distributed over the universe
    assert sum(lens[0] for _, lens in outputs) == npoints


def test_collect_before_run(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            taskq.submit([ScalarTask(data=1)])
            assert taskq.statuses() == [TaskStatus.waiting]
            with pytest.raises(SchedulingInvariantError):
                taskq.collect_results()
            taskq.run_all()
            return taskq.collect_results()

    assert launch_local(2, f) == [[{"input": 1, "doubled": 2, "ranks": 2}]] * 2


def test_describe(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            taskq.run_all([ScalarTask(data=1, priority=2.0)])
            return taskq.describe()

    [description] = launch_local(1, f)
    assert description == "0: tests.scalar complete priority=2.0"


def test_payload_failure_aborts_universe(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=2, config=config) as taskq:
            taskq.run_all([ScalarTask(data=0), FailingTask(data=1), ScalarTask(data=2)])

    with pytest.raises(PayloadExecutionError) as e:
        launch_local(4, f)
    assert e.value.index == 1


def test_payload_retries(config):
    config = config.model_copy(update={"payload_retries": 1})
    seen = []

    def flaky(world, x):
        if world.rank == 0 and (x, world.size) not in seen:
            seen.append((x, world.size))
            raise RuntimeError("transient")
        return x + 1

    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            return taskq.map(FunctionTask(flaky), [10, 20])

    assert launch_local(2, f) == [[11, 21], [11, 21]]


def test_payload_retries_with_collectives(config):
    config = config.model_copy(update={"payload_retries": 1})
    attempts = []

    def flaky_sum(world, x):
        # NOTE every rank works on its own deserialized copy of `attempts`
        attempts.append(x)
        if world.rank == 1 and len(attempts) == 1:
            raise RuntimeError("transient")
        return world.allreduce(x)

    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            return taskq.map(FunctionTask(flaky_sum), [1, 2])

    assert launch_local(2, f) == [[2, 4], [2, 4]]


def test_resubmit_fails_on_every_rank(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            task = ScalarTask(data=1)
            taskq.run_all([task])
            with pytest.raises(SchedulingInvariantError):
                taskq.submit([task])
            fresh = ScalarTask(data=2)
            with pytest.raises(SchedulingInvariantError):
                taskq.submit([fresh, fresh])
            # nothing was enqueued, and the universe is still usable
            universe.barrier()
            return task.status, fresh.status, len(taskq.tasks)

    assert launch_local(2, f) == [(TaskStatus.complete, TaskStatus.unknown, 1)] * 2


def test_run_all_with_stale_task_aborts(config):
    def f(universe):
        with MacroTaskQueue(universe, nworld=1, config=config) as taskq:
            task = ScalarTask(data=1)
            taskq.run_all([task])
            taskq.run_all([task])

    with pytest.raises(SchedulingInvariantError, match="only fresh tasks"):
        launch_local(2, f)
