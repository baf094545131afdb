"""
Square 2D process grid on top of ``torch.distributed``.

The process with global rank ``k`` sits at ``(k // q, k % q)``. Every process
gets a handle to its row group (same row, all columns) and its column group
(same column, all rows).

Example
-------
>>> import torch.distributed as dist
>>> from torch_jacobi import ProcessGrid
>>>
>>> dist.init_process_group('gloo')   # e.g. under torchrun --nproc_per_node=4
>>> grid = ProcessGrid()
>>> grid.q, grid.row, grid.col
(2, 1, 0)
>>> grid.rank_of(1, 1)
3
"""

import math
from typing import Optional, Sequence, Tuple

from .check import GridException

try:
    import torch.distributed as dist
    DIST_AVAILABLE = True
except ImportError:
    DIST_AVAILABLE = False


def _is_initialized() -> bool:
    return DIST_AVAILABLE and dist.is_available() and dist.is_initialized()


def grid_dims(world_size: int) -> Tuple[int, int]:
    """``(q, q)`` for a perfect-square ``world_size``."""
    q = math.isqrt(world_size)
    if q * q != world_size or world_size == 0:
        raise GridException(world_size)
    return q, q


class ProcessGrid:
    """
    ``q x q`` Cartesian view of the default process group.

    Construction is collective: every process must create the grid, and in
    the same order as any other process group it creates, because
    ``torch.distributed.new_group`` is called for every row and every column.

    Without an initialized process group the grid is ``1 x 1`` and all
    communication is skipped.

    Attributes
    ----------
    q : int
        Grid side length
    rank : int
        Global rank of this process
    size : int
        Number of processes, ``q * q``
    row, col : int
        Coordinates of this process
    row_group, col_group : ProcessGroup or None
        Sub-groups of this process (``None`` on a ``1 x 1`` grid)
    """

    def __init__(self, dims: Optional[Sequence[int]] = None):
        if _is_initialized():
            world_size = dist.get_world_size()
            rank = dist.get_rank()
        else:
            world_size = 1
            rank = 0

        if dims is None:
            dims = grid_dims(world_size)
        else:
            dims = tuple(dims)
            if len(dims) != 2 or dims[0] != dims[1] or dims[0] * dims[1] != world_size:
                raise GridException(world_size, dims)

        self.q = dims[0]
        self.size = world_size
        self.rank = rank
        self.row, self.col = self.coords_of(rank)

        self.row_group = None
        self.col_group = None
        if self.q > 1:
            # new_group must be entered by every process for every group
            for r in range(self.q):
                group = dist.new_group([self.rank_of(r, c) for c in range(self.q)])
                if r == self.row:
                    self.row_group = group
            for c in range(self.q):
                group = dist.new_group([self.rank_of(r, c) for r in range(self.q)])
                if c == self.col:
                    self.col_group = group

    def rank_of(self, row: int, col: int) -> int:
        """Global rank of the process at ``(row, col)``."""
        if not (0 <= row < self.q and 0 <= col < self.q):
            raise IndexError(f"({row}, {col}) is outside the {self.q}x{self.q} grid")
        return row * self.q + col

    def coords_of(self, rank: int) -> Tuple[int, int]:
        """Grid coordinates of global ``rank``."""
        return divmod(rank, self.q)

    @property
    def is_root(self) -> bool:
        return self.rank == 0

    @property
    def is_diagonal(self) -> bool:
        return self.row == self.col

    @property
    def in_first_column(self) -> bool:
        return self.col == 0

    @property
    def dims(self) -> Tuple[int, int]:
        return self.q, self.q

    def __repr__(self) -> str:
        return (f"ProcessGrid(dims={self.dims}, rank={self.rank}, "
                f"coords=({self.row}, {self.col}))")
