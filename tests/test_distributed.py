"""
Tests for the 2D block distribution, vector transpose and distributed matvec.

Every worker builds the same global data from a seeded generator, so results
can be checked against plain single-process torch on any rank.
"""

import pickle

import pytest
import torch

from torch_jacobi import (
    ProcessGrid,
    DDenseMatrix,
    BlockPartition,
    ShapeException,
    GridException,
    scatter_matrix,
    scatter_vector,
    gather_vector,
    to_diagonal,
    to_column0,
    distributed_matvec,
    distributed_norm,
)


def create_system(n: int, seed: int = 0, dtype=torch.float64):
    """Random dense matrix and vector, identical on every rank."""
    generator = torch.Generator().manual_seed(seed)
    A = torch.randn(n, n, generator=generator, dtype=dtype)
    x = torch.randn(n, generator=generator, dtype=dtype)
    return A, x


# ============================================================================
# Workers
# ============================================================================

def _scatter_gather_worker(rank, world_size, n):
    grid = ProcessGrid()
    part = BlockPartition(n, grid.q)
    _, v = create_system(n, seed=n)

    segment = scatter_vector(v if grid.is_root else None, n, grid)
    if grid.in_first_column:
        assert torch.equal(segment, v[part.slice(grid.row)])
    else:
        assert segment is None

    v_back = gather_vector(segment, n, grid)
    if grid.is_root:
        assert torch.equal(v_back, v)
    else:
        assert v_back is None


def _scatter_matrix_worker(rank, world_size, n):
    grid = ProcessGrid()
    part = BlockPartition(n, grid.q)
    A, _ = create_system(n, seed=n)

    block = scatter_matrix(A if grid.is_root else None, n, grid)
    assert torch.equal(block, A[part.slice(grid.row), part.slice(grid.col)])

    # same input, same blocks
    again = DDenseMatrix.from_global(A if grid.is_root else None, n, grid)
    assert torch.equal(again.local_block, block)

    A_back = again.gather()
    if grid.is_root:
        assert torch.equal(A_back, A)
    else:
        assert A_back is None


def _transpose_worker(rank, world_size, n):
    grid = ProcessGrid()
    part = BlockPartition(n, grid.q)
    _, v = create_system(n, seed=n)
    segment = v[part.slice(grid.row)].clone() if grid.in_first_column else None

    diag = to_diagonal(segment, n, grid)
    if grid.is_diagonal:
        assert torch.equal(diag, v[part.slice(grid.row)])
    else:
        assert diag is None

    back = to_column0(diag, n, grid)
    if grid.in_first_column:
        assert torch.equal(back, v[part.slice(grid.row)])
    else:
        assert back is None


def _matvec_worker(rank, world_size, n):
    grid = ProcessGrid()
    part = BlockPartition(n, grid.q)
    A, x = create_system(n, seed=n)
    y_ref = torch.mv(A, x)

    A_dist = DDenseMatrix.from_global(A if grid.is_root else None, n, grid)
    x_local = scatter_vector(x if grid.is_root else None, n, grid)

    y_local = A_dist @ x_local
    if grid.in_first_column:
        torch.testing.assert_close(y_local, y_ref[part.slice(grid.row)])
    else:
        assert y_local is None

    # functional form, applied twice to make sure no state leaks between calls
    y_local = distributed_matvec(A_dist.local_block, x_local, n, grid)
    y_local = distributed_matvec(A_dist.local_block, y_local, n, grid)
    y = gather_vector(y_local, n, grid)
    if grid.is_root:
        torch.testing.assert_close(y, torch.mv(A, y_ref))


def _norm_and_diagonal_worker(rank, world_size, n):
    grid = ProcessGrid()
    part = BlockPartition(n, grid.q)
    A, x = create_system(n, seed=n)

    x_local = scatter_vector(x if grid.is_root else None, n, grid)
    norm = distributed_norm(x_local, grid)
    # identical on every process
    norms = [torch.zeros(1, dtype=torch.float64) for _ in range(world_size)]
    torch.distributed.all_gather(norms, torch.tensor([norm], dtype=torch.float64))
    assert all(v.item() == norm for v in norms)
    assert norm == pytest.approx(torch.linalg.norm(x).item(), rel=1e-12)

    A_dist = DDenseMatrix.from_global(A if grid.is_root else None, n, grid)
    diag = A_dist.diagonal()
    if grid.in_first_column:
        assert torch.equal(diag, A.diagonal()[part.slice(grid.row)])
    else:
        assert diag is None


def _shape_mismatch_worker(rank, world_size):
    grid = ProcessGrid()
    n = 6
    A, v = create_system(n + 1)
    # only root holds (wrongly sized) data, yet every process must raise
    with pytest.raises(ShapeException):
        scatter_matrix(A if grid.is_root else None, n, grid)
    with pytest.raises(ShapeException):
        scatter_vector(v if grid.is_root else None, n, grid)
    with pytest.raises(ShapeException):
        scatter_vector(None, n, grid)


def _off_column_root_worker(rank, world_size, n):
    grid = ProcessGrid()
    part = BlockPartition(n, grid.q)
    A, v = create_system(n, seed=n)
    # a root outside grid column 0 never owns a vector segment itself
    for root in [grid.rank_of(0, 1), grid.rank_of(grid.q - 1, grid.q - 1)]:
        segment = scatter_vector(v if rank == root else None, n, grid, root=root)
        if grid.in_first_column:
            assert torch.equal(segment, v[part.slice(grid.row)])
        else:
            assert segment is None

        v_back = gather_vector(segment, n, grid, root=root)
        if rank == root:
            assert torch.equal(v_back, v)
        else:
            assert v_back is None

        A_dist = DDenseMatrix.from_global(A if rank == root else None, n, grid, root=root)
        assert torch.equal(A_dist.local_block, A[part.slice(grid.row), part.slice(grid.col)])
        A_back = A_dist.gather(root=root)
        if rank == root:
            assert torch.equal(A_back, A)
        else:
            assert A_back is None


def _root_conversion_failure_worker(rank, world_size):
    grid = ProcessGrid()
    root = grid.rank_of(1, 1)
    ragged = [[1.0, 2.0], [3.0]]
    # root cannot even build a tensor, yet every process must raise
    with pytest.raises((TypeError, ValueError)):
        scatter_matrix(ragged if rank == root else None, 2, grid, root=root)
    with pytest.raises((TypeError, ValueError)):
        scatter_vector(ragged if rank == root else None, 2, grid, root=root)
    # the grid is still usable afterwards
    v = torch.arange(2, dtype=torch.float64)
    v_back = gather_vector(scatter_vector(v if rank == root else None, 2, grid, root=root), 2, grid, root=root)
    if rank == root:
        assert torch.equal(v_back, v)


# ============================================================================
# Tests
# ============================================================================

@pytest.mark.parametrize('world_size', [1, 4])
@pytest.mark.parametrize('n', [1, 2, 5, 8, 17])
def test_scatter_gather_vector(launch, world_size, n):
    launch(_scatter_gather_worker, world_size, n)


@pytest.mark.parametrize('n', [2, 7])
def test_scatter_gather_vector_3x3(launch, n):
    launch(_scatter_gather_worker, 9, n)


@pytest.mark.parametrize(['world_size', 'n'], [(1, 5), (4, 1), (4, 7), (4, 16), (9, 2), (9, 10)])
def test_scatter_matrix(launch, world_size, n):
    launch(_scatter_matrix_worker, world_size, n)


@pytest.mark.parametrize(['world_size', 'n'], [(4, 1), (4, 9), (9, 2), (9, 11)])
def test_transpose(launch, world_size, n):
    launch(_transpose_worker, world_size, n)


@pytest.mark.parametrize(['world_size', 'n'], [(1, 6), (4, 1), (4, 3), (4, 10), (4, 33), (9, 2), (9, 7), (9, 20)])
def test_distributed_matvec(launch, world_size, n):
    launch(_matvec_worker, world_size, n)


@pytest.mark.parametrize(['world_size', 'n'], [(4, 9), (9, 4)])
def test_distributed_norm_and_diagonal(launch, world_size, n):
    launch(_norm_and_diagonal_worker, world_size, n)


def test_scatter_shape_mismatch(launch):
    launch(_shape_mismatch_worker, 4)


@pytest.mark.parametrize(['world_size', 'n'], [(4, 7), (4, 1), (9, 11)])
def test_off_column_root(launch, world_size, n):
    launch(_off_column_root_worker, world_size, n)


def test_root_conversion_failure(launch):
    launch(_root_conversion_failure_worker, 4)


def test_errors_survive_broadcast():
    """Errors raised on root are pickled to the other processes."""
    error = pickle.loads(pickle.dumps(ShapeException("A", (3, 2), "[3, 3]")))
    assert isinstance(error, ShapeException)
    assert (error.name, error.shape, error.expected_shape) == ("A", (3, 2), "[3, 3]")

    error = pickle.loads(pickle.dumps(GridException(6, (3, 2))))
    assert isinstance(error, GridException)
    assert (error.world_size, error.dims) == (6, (3, 2))
