import pytest
from itertools import product
import sys
sys.path.append("..")
from torch_jacobi.partition import (
    BlockPartition,
    block_decompose,
    block_offset,
    partition,
)


@pytest.mark.parametrize(
    ['n', 'q'],
    product([0, 1, 2, 3, 5, 7, 10, 16, 100, 1001],
            [1, 2, 3, 4, 7])
    )
def test_partition_balanced(n:int, q:int):
    ranges = partition(n, q)
    sizes = [len(r) for r in ranges]

    assert len(ranges) == q
    assert sum(sizes) == n
    assert max(sizes) - min(sizes) <= 1
    # earlier ranges are never smaller
    assert sizes == sorted(sizes, reverse=True)
    # contiguous cover of [0, n)
    assert [i for r in ranges for i in r] == list(range(n))


@pytest.mark.parametrize(
    ['n', 'q'],
    product([1, 2, 5, 7, 16, 33],
            [1, 2, 3, 4, 6])
    )
def test_owner_matches_ranges(n:int, q:int):
    part = BlockPartition(n, q)
    for i, r in enumerate(partition(n, q)):
        assert part.range(i) == r
        assert part.count(i) == block_decompose(n, q, i)
        assert part.offset(i) == block_offset(n, q, i)
        for index in r:
            assert part.owner(index) == i


def test_partition_extra_element_goes_first():
    assert partition(10, 3) == [range(0, 4), range(4, 7), range(7, 10)]
    assert BlockPartition(10, 3).counts == (4, 3, 3)
    assert BlockPartition(10, 3).offsets == (0, 4, 7)


def test_partition_smaller_than_grid():
    # n < q leaves the trailing ranges empty
    assert BlockPartition(2, 4).counts == (1, 1, 0, 0)
    assert BlockPartition(1, 3).range(0) == range(0, 1)
    assert len(BlockPartition(1, 3).range(2)) == 0


def test_partition_invalid():
    with pytest.raises(ValueError):
        partition(4, 0)
    with pytest.raises(ValueError):
        BlockPartition(-1, 2)
    with pytest.raises(IndexError):
        BlockPartition(4, 2).owner(4)
