"""
torch-jacobi: Parallel Jacobi solver for dense linear systems in PyTorch

Solves ``A x = b`` for a dense, diagonally dominant ``A`` on a square
``q x q`` grid of processes using ``torch.distributed`` (Gloo on CPU).

Layout
------
- The matrix is split into ``q x q`` blocks, one per process
- Vectors live on the first grid column
- Rows and columns are split by one balanced partition rule
  (the first ``n mod q`` ranges get one extra index)

Features
--------
- 2D block scatter of the matrix, scatter/gather of vectors
- Distributed matrix-vector product (transpose, broadcast, multiply, reduce)
- Jacobi iteration as an explicit per-process state machine
- Sequential reference solver and single-process fallback
- Flat binary I/O and random diagonally dominant inputs

Usage
-----
>>> import torch.distributed as dist
>>> from torch_jacobi import ProcessGrid, solve_parallel, diag_dom_rand, randn
>>>
>>> # under: torchrun --standalone --nproc_per_node=4 script.py
>>> dist.init_process_group('gloo')
>>> grid = ProcessGrid()
>>> n = 1000
>>> A = diag_dom_rand(n) if grid.is_root else None
>>> b = randn(n) if grid.is_root else None
>>> x = solve_parallel(n, A, b, grid)            # x on rank 0, None elsewhere
>>>
>>> # Check the outcome explicitly
>>> x, info = solve_parallel(n, A, b, grid, maxiter=50, return_info=True)
>>> info.state
<JacobiState.CONVERGED: 'converged'>
>>>
>>> # Single process
>>> from torch_jacobi import solve_sequential
>>> x = solve_sequential(A, b)
"""

from .check import (
    ShapeException,
    GridException,
)

from .partition import (
    BlockPartition,
    block_decompose,
    block_offset,
    partition,
)

from .grid import ProcessGrid

from .distributed import (
    DDenseMatrix,
    scatter_matrix,
    scatter_vector,
    gather_vector,
    to_diagonal,
    to_column0,
    distributed_matvec,
    distributed_norm,
)

from .jacobi import (
    JacobiIterator,
    JacobiResult,
    JacobiState,
    MAX_ITER,
    L2_TERMINATION,
)

from .linear_solve import (
    solve_parallel,
    solve_sequential,
)

from .random import (
    diag_dom_rand,
    randn,
)

from .io import (
    read_binary_file,
    write_binary_file,
    read_matrix,
    read_vector,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ShapeException",
    "GridException",
    # Partition
    "BlockPartition",
    "block_decompose",
    "block_offset",
    "partition",
    # Grid
    "ProcessGrid",
    # Distribution, transpose, matvec
    "DDenseMatrix",
    "scatter_matrix",
    "scatter_vector",
    "gather_vector",
    "to_diagonal",
    "to_column0",
    "distributed_matvec",
    "distributed_norm",
    # Jacobi
    "JacobiIterator",
    "JacobiResult",
    "JacobiState",
    "MAX_ITER",
    "L2_TERMINATION",
    # Solvers
    "solve_parallel",
    "solve_sequential",
    # Random input
    "diag_dom_rand",
    "randn",
    # I/O
    "read_binary_file",
    "write_binary_file",
    "read_matrix",
    "read_vector",
    # Version
    "__version__",
]
