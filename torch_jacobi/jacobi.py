"""
Jacobi iteration on a grid-distributed dense system.

.. math::

    x^{k+1} = x^k + D^{-1} (b - A x^k)

Each process owns one :class:`JacobiIterator`. The iterator moves through
``INIT -> ITERATING -> (CONVERGED | MAX_ITERS_REACHED)``; every process takes
the same transition at the same step because the stopping test uses the
reduced residual norm, which is identical everywhere.

Vectors (``b``, ``x``, the residual) live on grid column 0. The diagonal of
``A`` is moved from the diagonal blocks to column 0 once, at construction,
so the update needs no communication.

Example
-------
>>> A_dist = DDenseMatrix.from_global(A if grid.is_root else None, n, grid)
>>> b_local = scatter_vector(b if grid.is_root else None, n, grid)
>>> result = JacobiIterator(A_dist, b_local, atol=1e-10, maxiter=100).run()
>>> result.state
<JacobiState.CONVERGED: 'converged'>
>>> x = gather_vector(result.x, n, grid)
"""

import enum
import warnings
import torch
from dataclasses import dataclass, field
from typing import List, Optional

from .distributed import DDenseMatrix, distributed_norm, DTYPE

MAX_ITER = 100
L2_TERMINATION = 1e-10


class JacobiState(enum.Enum):
    INIT = "init"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERS_REACHED = "max_iters_reached"


TERMINAL_STATES = (JacobiState.CONVERGED, JacobiState.MAX_ITERS_REACHED)


@dataclass
class JacobiResult:
    """Outcome of a Jacobi solve."""
    x: Optional[torch.Tensor]      # column-0 segment (or full vector when sequential)
    state: JacobiState
    iterations: int
    residual: float                # ||b - A x^k|| of the last iterate tested
    residuals: List[float] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.state is JacobiState.CONVERGED


class JacobiIterator:
    """
    Per-process Jacobi state machine.

    Construction and every :meth:`step` are collective over the grid.

    Parameters
    ----------
    A : DDenseMatrix
        Distributed system matrix
    b : torch.Tensor or None
        Column-0 segment of the right hand side, ``None`` off column 0
    x0 : torch.Tensor, optional
        Column-0 segment of the initial guess, zeros if omitted
    atol : float
        Stop once ``||b - A x|| < atol``
    maxiter : int
        Iteration cap
    verbose : bool
        Print the residual of every iteration on ``root``
    root : int
        Global rank that reports non-convergence and prints progress
    """

    def __init__(
        self,
        A: DDenseMatrix,
        b: Optional[torch.Tensor],
        x0: Optional[torch.Tensor] = None,
        atol: float = L2_TERMINATION,
        maxiter: int = MAX_ITER,
        verbose: bool = False,
        root: int = 0
    ):
        assert atol > 0, f"atol must be positive, got {atol}"
        assert maxiter > 0, f"maxiter must be positive, got {maxiter}"

        self.A = A
        self.grid = A.grid
        self.atol = atol
        self.maxiter = maxiter
        self.verbose = verbose
        self.root = root

        self.state = JacobiState.INIT
        self.iterations = 0
        self.residual = float("inf")
        self.residuals: List[float] = []

        self._diag = A.diagonal()
        if self.grid.in_first_column:
            num_rows = A.partition.count(self.grid.row)
            self.b = b
            self.x = torch.zeros(num_rows, dtype=DTYPE) if x0 is None else x0.clone()
        else:
            self.b = None
            self.x = None

    @property
    def _is_root(self) -> bool:
        return self.grid.rank == self.root

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def step(self) -> JacobiState:
        """One Jacobi sweep. Returns the new state."""
        if self.done:
            raise RuntimeError(f"Jacobi iteration already finished ({self.state.value})")
        self.state = JacobiState.ITERATING

        Ax = self.A.matvec(self.x)

        r = None
        if self.grid.in_first_column:
            r = self.b - Ax
        self.residual = distributed_norm(r, self.grid)
        self.residuals.append(self.residual)

        if self.grid.in_first_column:
            self.x = self.x + r / self._diag
        self.iterations += 1

        if self.verbose and self._is_root:
            print(f"  Jacobi iter {self.iterations - 1}: residual = {self.residual:.2e}")

        if self.residual < self.atol:
            self.state = JacobiState.CONVERGED
        elif self.iterations == self.maxiter:
            self.state = JacobiState.MAX_ITERS_REACHED
        return self.state

    def run(self) -> JacobiResult:
        """Iterate until converged or the cap is hit."""
        while not self.done:
            self.step()

        if self.state is JacobiState.MAX_ITERS_REACHED and self._is_root:
            warnings.warn(f"Jacobi did not converge in {self.maxiter} iterations "
                          f"(residual={self.residual:.2e})")
        elif self.verbose and self._is_root:
            print(f"  Jacobi converged at iter {self.iterations - 1}")

        return self.result()

    def result(self) -> JacobiResult:
        return JacobiResult(
            x=self.x,
            state=self.state,
            iterations=self.iterations,
            residual=self.residual,
            residuals=list(self.residuals),
        )
