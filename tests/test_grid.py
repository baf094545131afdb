"""
Tests for the square process grid.

Multi-process tests spawn Gloo workers through the ``launch`` fixture.
"""

import pytest
import torch
import torch.distributed as dist

from torch_jacobi import ProcessGrid, GridException
from torch_jacobi.grid import grid_dims


# ============================================================================
# Workers
# ============================================================================

def _coords_worker(rank, world_size):
    grid = ProcessGrid()
    q = int(round(world_size ** 0.5))

    assert grid.q == q
    assert grid.size == world_size
    assert grid.rank == rank
    assert (grid.row, grid.col) == (rank // q, rank % q)
    assert grid.rank_of(grid.row, grid.col) == rank
    assert grid.coords_of(rank) == (grid.row, grid.col)
    assert grid.is_diagonal == (grid.row == grid.col)
    assert grid.in_first_column == (grid.col == 0)

    # row group: same row, every column
    members = [torch.zeros(1, dtype=torch.int64) for _ in range(q)]
    dist.all_gather(members, torch.tensor([rank]), group=grid.row_group)
    assert [m.item() for m in members] == [grid.rank_of(grid.row, c) for c in range(q)]

    # column group: same column, every row
    members = [torch.zeros(1, dtype=torch.int64) for _ in range(q)]
    dist.all_gather(members, torch.tensor([rank]), group=grid.col_group)
    assert [m.item() for m in members] == [grid.rank_of(r, grid.col) for r in range(q)]


def _non_square_worker(rank, world_size):
    with pytest.raises(GridException):
        ProcessGrid()


def _bad_dims_worker(rank, world_size):
    with pytest.raises(GridException):
        ProcessGrid(dims=(world_size, 1))
    with pytest.raises(GridException):
        ProcessGrid(dims=(2, 2, 1))
    # a valid grid can still be built afterwards
    grid = ProcessGrid(dims=(2, 2))
    assert grid.dims == (2, 2)


# ============================================================================
# Tests
# ============================================================================

@pytest.mark.parametrize('world_size', [1, 4, 9])
def test_grid_coordinates_and_groups(launch, world_size):
    launch(_coords_worker, world_size)


@pytest.mark.parametrize('world_size', [2, 3])
def test_grid_rejects_non_square(launch, world_size):
    launch(_non_square_worker, world_size)


def test_grid_rejects_bad_dims(launch):
    launch(_bad_dims_worker, 4)


def test_grid_without_process_group():
    grid = ProcessGrid()
    assert grid.q == 1
    assert (grid.row, grid.col) == (0, 0)
    assert grid.is_root and grid.is_diagonal and grid.in_first_column
    assert grid.row_group is None and grid.col_group is None
    with pytest.raises(IndexError):
        grid.rank_of(1, 0)


def test_grid_dims():
    assert grid_dims(1) == (1, 1)
    assert grid_dims(16) == (4, 4)
    for world_size in [0, 2, 8, 15]:
        with pytest.raises(GridException):
            grid_dims(world_size)
