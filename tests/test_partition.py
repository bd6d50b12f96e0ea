import pytest

from subworlds.comm.local import launch_local
from subworlds.errors import ConfigurationError, ErrorKind
from subworlds.partition import create_subworlds, default_nworld, group_ranks


@pytest.mark.parametrize("size", [1, 2, 3, 5, 8, 13])
def test_groups_are_disjoint_and_cover(size):
    for nworld in range(1, size + 1):
        groups = group_ranks(size, nworld)
        assert len(groups) == nworld
        assert all(groups)
        flat = [rank for group in groups for rank in group]
        assert sorted(flat) == list(range(size))
        assert len(set(flat)) == size
        for color, group in enumerate(groups):
            assert all(rank % nworld == color for rank in group)


@pytest.mark.parametrize("size, nworld", [(2, 4), (1, 2), (3, 0)])
def test_invalid_group_count(size, nworld):
    with pytest.raises(ConfigurationError) as e:
        group_ranks(size, nworld)
    assert e.value.kind == ErrorKind.configuration
    assert not e.value.retryable


def test_default_nworld():
    assert default_nworld(1) == 1
    assert default_nworld(2) == 2
    assert default_nworld(7) == 3


def test_create_subworlds():
    def f(universe):
        subworld = create_subworlds(universe, 3)
        members = subworld.comm.allgather(universe.rank)
        return subworld.color, subworld.comm.rank, subworld.is_representative, members

    rv = launch_local(5, f)
    assert rv == [
        (0, 0, True, [0, 3]),
        (1, 0, True, [1, 4]),
        (2, 0, True, [2]),
        (0, 1, False, [0, 3]),
        (1, 1, False, [1, 4]),
    ]


def test_too_many_subworlds_is_fatal_on_every_rank():
    def f(universe):
        try:
            create_subworlds(universe, 4)
        except ConfigurationError:
            return "failed"
        return "created"

    assert launch_local(2, f) == ["failed", "failed"]
