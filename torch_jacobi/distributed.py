"""
Dense matrices and vectors distributed over a square process grid.

Layout
------
- The matrix is cut into ``q x q`` blocks; process ``(i, j)`` owns
  ``A[rows(i), cols(j)]``, with ``rows``/``cols`` given by
  :mod:`torch_jacobi.partition`.
- Vectors live on the first grid column: process ``(i, 0)`` owns segment
  ``i``. Every other process holds ``None``.
- During a matrix-vector product the vector is moved to the diagonal,
  ``(i, i)`` owning segment ``i``, so each grid column can receive the
  segment its blocks multiply with a single broadcast.

Communication is blocking. Point-to-point ``send``/``recv`` is used for
scatter, gather and transpose; ``broadcast``/``reduce``/``all_reduce`` run on
the row and column groups of :class:`~torch_jacobi.grid.ProcessGrid`.
Ranges of length zero (``n < q``) are skipped on both ends, since sender and
receiver derive the same sizes from the partition.

Example
-------
>>> from torch_jacobi import ProcessGrid, DDenseMatrix, scatter_vector, gather_vector
>>>
>>> grid = ProcessGrid()
>>> A_dist = DDenseMatrix.from_global(A if grid.is_root else None, n, grid)
>>> x_local = scatter_vector(x if grid.is_root else None, n, grid)
>>> y_local = A_dist @ x_local              # lives on column 0
>>> y = gather_vector(y_local, n, grid)      # full vector on rank 0
"""

import torch
import torch.distributed as dist
from typing import Any, Callable, Optional, Tuple, Union

from .check import ShapeException, check_matrix, check_vector
from .grid import ProcessGrid
from .partition import BlockPartition

DTYPE = torch.float64


def _recv(shape: Union[int, Tuple[int, ...]], src: int) -> torch.Tensor:
    buffer = torch.empty(shape, dtype=DTYPE)
    dist.recv(buffer, src=src)
    return buffer


def _as_dtype(x: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
    return None if x is None else torch.as_tensor(x, dtype=DTYPE)


def _root_check(grid: ProcessGrid, root: int, check: Callable[[], Any]) -> Any:
    """
    Run ``check`` on root and make every process raise if it fails.

    Only root holds the global buffers, so only root can convert and
    validate them. The exception (of any type) is broadcast so that no
    process is left waiting in a receive that root will never post.

    Returns
    -------
    Any
        What ``check`` returned on root, ``None`` elsewhere
    """
    result = error = None
    if grid.rank == root:
        try:
            result = check()
        except Exception as e:
            error = e
    if grid.size > 1:
        verdict = [error]
        dist.broadcast_object_list(verdict, src=root)
        if grid.rank != root:
            error = verdict[0]
    if error is not None:
        raise error
    return result


# =============================================================================
# Block distribution
# =============================================================================

def scatter_matrix(
    A: Optional[torch.Tensor],
    n: int,
    grid: ProcessGrid,
    root: int = 0
) -> torch.Tensor:
    """
    Distribute a global ``n x n`` matrix into 2D blocks.

    Root first sends row strip ``i`` to ``(i, 0)``; every ``(i, 0)`` then
    cuts its strip into column blocks and sends block ``j`` to ``(i, j)``.

    Parameters
    ----------
    A : torch.Tensor or None
        [n, n] row-major matrix on root, ``None`` elsewhere
    n : int
        Global size
    grid : ProcessGrid
        Process grid
    root : int
        Global rank holding ``A``

    Returns
    -------
    torch.Tensor
        Local block [rows(row), cols(col)]
    """
    part = BlockPartition(n, grid.q)
    A = _root_check(grid, root, lambda: check_matrix(_as_dtype(A), n, "A"))

    if grid.size == 1:
        return A.clone()

    num_rows = part.count(grid.row)
    num_cols = part.count(grid.col)

    # Stage 1: row strips to the first column
    strip = None
    if grid.rank == root:
        for i in range(grid.q):
            if part.count(i) == 0:
                continue
            dst = grid.rank_of(i, 0)
            if dst == root:
                strip = A[part.slice(i)].clone()
            else:
                dist.send(A[part.slice(i)].contiguous(), dst=dst)
    if grid.in_first_column and strip is None and num_rows > 0:
        strip = _recv((num_rows, n), src=root)

    # Stage 2: column blocks along each grid row
    block = None
    if grid.in_first_column:
        if num_rows > 0:
            for j in range(grid.q):
                if part.count(j) == 0:
                    continue
                if j == 0:
                    block = strip[:, part.slice(j)].clone()
                else:
                    dist.send(strip[:, part.slice(j)].contiguous(), dst=grid.rank_of(grid.row, j))
    elif num_rows > 0 and num_cols > 0:
        block = _recv((num_rows, num_cols), src=grid.rank_of(grid.row, 0))

    if block is None:
        block = torch.empty((num_rows, num_cols), dtype=DTYPE)
    return block


def scatter_vector(
    v: Optional[torch.Tensor],
    n: int,
    grid: ProcessGrid,
    root: int = 0
) -> Optional[torch.Tensor]:
    """
    Distribute a global vector along the first grid column.

    Parameters
    ----------
    v : torch.Tensor or None
        [n] vector on root, ``None`` elsewhere
    n : int
        Global size
    grid : ProcessGrid
        Process grid
    root : int
        Global rank holding ``v``

    Returns
    -------
    torch.Tensor or None
        Segment [rows(row)] on column 0, ``None`` elsewhere
    """
    part = BlockPartition(n, grid.q)
    v = _root_check(grid, root, lambda: check_vector(_as_dtype(v), n, "v"))

    if grid.size == 1:
        return v.clone()

    segment = None
    if grid.rank == root:
        for i in range(grid.q):
            if part.count(i) == 0:
                continue
            dst = grid.rank_of(i, 0)
            if dst == root:
                segment = v[part.slice(i)].clone()
            else:
                dist.send(v[part.slice(i)].contiguous(), dst=dst)

    if not grid.in_first_column:
        return None
    if segment is None:
        segment = torch.empty(part.count(grid.row), dtype=DTYPE)
        if part.count(grid.row) > 0 and grid.rank != root:
            dist.recv(segment, src=root)
    return segment


def gather_vector(
    segment: Optional[torch.Tensor],
    n: int,
    grid: ProcessGrid,
    root: int = 0
) -> Optional[torch.Tensor]:
    """
    Collect a column-0 distributed vector on root.

    Parameters
    ----------
    segment : torch.Tensor or None
        Local segment on column 0, ignored elsewhere
    n : int
        Global size
    grid : ProcessGrid
        Process grid
    root : int
        Global rank receiving the vector

    Returns
    -------
    torch.Tensor or None
        [n] vector on root, ``None`` elsewhere
    """
    if grid.size == 1:
        return segment.clone()

    part = BlockPartition(n, grid.q)
    if grid.in_first_column and grid.rank != root and part.count(grid.row) > 0:
        dist.send(segment.contiguous(), dst=root)

    if grid.rank != root:
        return None

    v = torch.empty(n, dtype=DTYPE)
    for i in range(grid.q):
        if part.count(i) == 0:
            continue
        src = grid.rank_of(i, 0)
        if src == root:
            v[part.slice(i)] = segment
        else:
            v[part.slice(i)] = _recv(part.count(i), src=src)
    return v


# =============================================================================
# Vector transpose
# =============================================================================

def to_diagonal(
    segment: Optional[torch.Tensor],
    n: int,
    grid: ProcessGrid
) -> Optional[torch.Tensor]:
    """
    Move a column-0 distributed vector onto the grid diagonal.

    ``(i, 0)`` sends its segment to ``(i, i)``. Processes that are neither in
    column 0 nor on the diagonal do nothing and get ``None``.
    """
    if grid.row == 0 and grid.col == 0:
        return segment.clone()

    count = BlockPartition(n, grid.q).count(grid.row)
    if grid.in_first_column:
        if count > 0:
            dist.send(segment.contiguous(), dst=grid.rank_of(grid.row, grid.row))
        return None
    if grid.is_diagonal:
        buffer = torch.empty(count, dtype=DTYPE)
        if count > 0:
            dist.recv(buffer, src=grid.rank_of(grid.row, 0))
        return buffer
    return None


def to_column0(
    segment: Optional[torch.Tensor],
    n: int,
    grid: ProcessGrid
) -> Optional[torch.Tensor]:
    """Inverse of :func:`to_diagonal`: ``(i, i)`` sends its segment to ``(i, 0)``."""
    if grid.row == 0 and grid.col == 0:
        return segment.clone()

    count = BlockPartition(n, grid.q).count(grid.row)
    if grid.is_diagonal:
        if count > 0:
            dist.send(segment.contiguous(), dst=grid.rank_of(grid.row, 0))
        return None
    if grid.in_first_column:
        buffer = torch.empty(count, dtype=DTYPE)
        if count > 0:
            dist.recv(buffer, src=grid.rank_of(grid.row, grid.row))
        return buffer
    return None


# =============================================================================
# Matrix-vector product and reductions
# =============================================================================

def distributed_matvec(
    block: torch.Tensor,
    x: Optional[torch.Tensor],
    n: int,
    grid: ProcessGrid
) -> Optional[torch.Tensor]:
    """
    Distributed ``y = A @ x``.

    1. move ``x`` from column 0 to the diagonal
    2. broadcast segment ``j`` from ``(j, j)`` down grid column ``j``
    3. local product ``block @ x[cols(col)]``
    4. sum the partial products of grid row ``i`` onto ``(i, 0)``

    Parameters
    ----------
    block : torch.Tensor
        Local block [rows(row), cols(col)]
    x : torch.Tensor or None
        Column-0 segment [rows(row)], ``None`` off column 0
    n : int
        Global size
    grid : ProcessGrid
        Process grid

    Returns
    -------
    torch.Tensor or None
        Column-0 segment of ``y``, ``None`` off column 0
    """
    if grid.size == 1:
        return torch.mv(block, x)

    part = BlockPartition(n, grid.q)

    x_diag = to_diagonal(x, n, grid)

    num_cols = part.count(grid.col)
    x_col = x_diag if grid.is_diagonal else torch.empty(num_cols, dtype=DTYPE)
    if num_cols > 0:
        dist.broadcast(x_col, src=grid.rank_of(grid.col, grid.col), group=grid.col_group)

    y = torch.mv(block, x_col)

    if part.count(grid.row) > 0:
        dist.reduce(y, dst=grid.rank_of(grid.row, 0), op=dist.ReduceOp.SUM, group=grid.row_group)

    return y if grid.in_first_column else None


def distributed_norm(
    segment: Optional[torch.Tensor],
    grid: ProcessGrid
) -> float:
    """
    Global 2-norm of a column-0 distributed vector, identical on every process.

    Column 0 sums the squares with an all-reduce over its column group, then
    each ``(i, 0)`` broadcasts the result along grid row ``i``.
    """
    value = torch.zeros(1, dtype=DTYPE)
    if grid.in_first_column:
        value[0] = torch.dot(segment, segment)
    if grid.size > 1:
        if grid.in_first_column:
            dist.all_reduce(value, op=dist.ReduceOp.SUM, group=grid.col_group)
        dist.broadcast(value, src=grid.rank_of(grid.row, 0), group=grid.row_group)
    return value.sqrt().item()


class DDenseMatrix:
    """
    Dense ``n x n`` matrix distributed in 2D blocks over a process grid.

    Attributes
    ----------
    grid : ProcessGrid
        Process grid
    local_block : torch.Tensor
        Block owned by this process [rows(row), cols(col)]
    n : int
        Global size
    partition : BlockPartition
        Row/column ranges shared by every process

    Example
    -------
    >>> A_dist = DDenseMatrix.from_global(A if grid.is_root else None, n, grid)
    >>> y_local = A_dist.matvec(x_local)
    >>> d_local = A_dist.diagonal()
    """

    def __init__(
        self,
        grid: ProcessGrid,
        local_block: torch.Tensor,
        n: int,
        verbose: bool = False
    ):
        self.grid = grid
        self.n = n
        self.partition = BlockPartition(n, grid.q)
        expected = (self.partition.count(grid.row), self.partition.count(grid.col))
        if tuple(local_block.shape) != expected:
            raise ShapeException("local_block", tuple(local_block.shape), list(expected))
        self.local_block = local_block
        if verbose:
            self._print_block_info()

    def _print_block_info(self):
        rows = self.partition.range(self.grid.row)
        cols = self.partition.range(self.grid.col)
        print(f"[Block ({self.grid.row}, {self.grid.col}) of {self.grid.q}x{self.grid.q}] "
              f"Local: {self.local_shape[0]}x{self.local_shape[1]} | "
              f"Rows: [{rows.start}, {rows.stop}) | "
              f"Cols: [{cols.start}, {cols.stop}) | "
              f"Global: {self.n}x{self.n}")

    @classmethod
    def from_global(
        cls,
        A: Optional[torch.Tensor],
        n: int,
        grid: Optional[ProcessGrid] = None,
        root: int = 0,
        verbose: bool = False
    ) -> "DDenseMatrix":
        """
        Scatter a global matrix held by ``root``. Collective over the grid.

        Parameters
        ----------
        A : torch.Tensor or None
            [n, n] matrix on root, ``None`` elsewhere
        n : int
            Global size
        grid : ProcessGrid, optional
            Process grid (built from the default group if omitted)
        root : int
            Global rank holding ``A``
        verbose : bool
            Print block info

        Returns
        -------
        DDenseMatrix
        """
        if grid is None:
            grid = ProcessGrid()
        block = scatter_matrix(A, n, grid, root)
        return cls(grid, block, n, verbose=verbose)

    @property
    def local_shape(self) -> Tuple[int, int]:
        return tuple(self.local_block.shape)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.n, self.n

    @property
    def dtype(self) -> torch.dtype:
        return self.local_block.dtype

    def matvec(self, x: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        """``A @ x`` for a column-0 distributed ``x``. Collective."""
        return distributed_matvec(self.local_block, x, self.n, self.grid)

    def __matmul__(self, x: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        return self.matvec(x)

    def diagonal(self) -> Optional[torch.Tensor]:
        """
        Diagonal of ``A``, column-0 distributed.

        Only the diagonal blocks ``(i, i)`` hold entries ``A[k, k]``; they
        are moved to ``(i, 0)``.
        """
        if self.grid.size == 1:
            return self.local_block.diagonal().clone()
        diag = self.local_block.diagonal().clone() if self.grid.is_diagonal else None
        return to_column0(diag, self.n, self.grid)

    def gather(self, root: int = 0) -> Optional[torch.Tensor]:
        """Reassemble the global matrix on ``root``. Collective."""
        if self.grid.size == 1:
            return self.local_block.clone()
        num_rows = self.partition.count(self.grid.row)
        num_cols = self.partition.count(self.grid.col)
        if self.grid.rank != root and num_rows > 0 and num_cols > 0:
            dist.send(self.local_block.contiguous(), dst=root)
        if self.grid.rank != root:
            return None
        A = torch.empty((self.n, self.n), dtype=DTYPE)
        for i in range(self.grid.q):
            for j in range(self.grid.q):
                shape = (self.partition.count(i), self.partition.count(j))
                if shape[0] == 0 or shape[1] == 0:
                    continue
                src = self.grid.rank_of(i, j)
                block = self.local_block if src == root else _recv(shape, src=src)
                A[self.partition.slice(i), self.partition.slice(j)] = block
        return A

    def __repr__(self) -> str:
        return (f"DDenseMatrix(block=({self.grid.row}, {self.grid.col})/{self.grid.q}x{self.grid.q}, "
                f"local={self.local_shape}, global={self.shape}, dtype={self.dtype})")
