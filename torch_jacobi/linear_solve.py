import warnings
import torch
import torch.distributed as dist
from typing import Optional, Tuple, Union

from .check import check_system
from .distributed import DDenseMatrix, _as_dtype, _root_check, gather_vector, scatter_vector
from .grid import ProcessGrid
from .jacobi import JacobiIterator, JacobiResult, JacobiState, L2_TERMINATION, MAX_ITER


def solve_sequential(A:torch.Tensor,
                     b:torch.Tensor,
                     x0:Optional[torch.Tensor]=None,
                     atol:float=L2_TERMINATION,
                     maxiter:int=MAX_ITER,
                     verbose:bool=False,
                     return_info:bool=False,
                     n:Optional[int]=None
                     )->Union[torch.Tensor, Tuple[torch.Tensor, JacobiResult]]:
    """Solve the dense linear system with the Jacobi method on a single process

    .. math::
        x^{k+1} = x^k + D^{-1}(b - Ax^k)

    Parameters
    ----------
    A : torch.Tensor
        [n, n]
    b : torch.Tensor
        [n]
    x0 : torch.Tensor, optional
        [n] initial guess, by default zeros
    atol : float, optional
        stop once ||b - Ax|| < atol, by default 1e-10
    maxiter : int, optional
        iteration cap, by default 100
    verbose : bool, optional
        print the residual of every iteration, by default False
    return_info : bool, optional
        also return the JacobiResult, by default False
    n : int, optional
        expected size of the system, by default taken from ``A``

    Returns
    -------
    torch.Tensor
        [n]
    """
    A, b, x0 = _as_dtype(A), _as_dtype(b), _as_dtype(x0)
    if n is None:
        n = A.shape[0] if A is not None and A.ndim > 0 else 0

    # assertion
    check_system(n, A, b, x0)
    assert atol > 0, f"atol must be positive, got {atol}"
    assert maxiter > 0, f"maxiter must be positive, got {maxiter}"

    D = torch.diagonal(A)
    x = torch.zeros_like(b) if x0 is None else x0.clone()

    state = JacobiState.MAX_ITERS_REACHED
    residuals = []
    for k in range(maxiter):
        r = b - torch.mv(A, x)
        residual = torch.dot(r, r).sqrt().item()
        residuals.append(residual)
        x = x + r / D

        if verbose:
            print(f"  Jacobi iter {k}: residual = {residual:.2e}")

        if residual < atol:
            state = JacobiState.CONVERGED
            break

    if state is JacobiState.MAX_ITERS_REACHED:
        warnings.warn(f"Jacobi did not converge in {maxiter} iterations (residual={residuals[-1]:.2e})")

    if return_info:
        return x, JacobiResult(x, state, len(residuals), residuals[-1], residuals)
    return x


def solve_parallel(n:int,
                   A:Optional[torch.Tensor],
                   b:Optional[torch.Tensor],
                   grid:Optional[ProcessGrid]=None,
                   x0:Optional[torch.Tensor]=None,
                   atol:float=L2_TERMINATION,
                   maxiter:int=MAX_ITER,
                   root:int=0,
                   verbose:bool=False,
                   return_info:bool=False
                   )->Union[Optional[torch.Tensor], Tuple[Optional[torch.Tensor], JacobiResult]]:
    """Solve the dense linear system with the Jacobi method on a q x q process grid

    Collective: every process of the grid must call it. Only ``root`` supplies
    ``A``, ``b`` (and optionally ``x0``); every other process passes ``None``.
    On a 1 x 1 grid no distribution takes place and the sequential solver runs.

    Parameters
    ----------
    n : int
        size of the system, known on every process
    A : torch.Tensor or None
        [n, n] on root
    b : torch.Tensor or None
        [n] on root
    grid : ProcessGrid, optional
        process grid, built from the default process group if omitted
    x0 : torch.Tensor, optional
        [n] initial guess on root, by default zeros
    atol : float, optional
        stop once ||b - Ax|| < atol, by default 1e-10
    maxiter : int, optional
        iteration cap, by default 100
    root : int, optional
        global rank holding the input and receiving x, by default 0
    verbose : bool, optional
        print block layout and residuals, by default False
    return_info : bool, optional
        also return the JacobiResult of this process, by default False

    Returns
    -------
    torch.Tensor or None
        [n] on root, None elsewhere
    """
    if grid is None:
        grid = ProcessGrid()

    if grid.size == 1:
        return solve_sequential(A, b, x0=x0, atol=atol, maxiter=maxiter,
                                verbose=verbose, return_info=return_info, n=n)

    checked = _root_check(grid, root, lambda: check_system(n, _as_dtype(A), _as_dtype(b), _as_dtype(x0)))
    if grid.rank == root:
        A, b, x0 = checked

    # whether a start vector follows is only known on root
    has_x0 = [x0 is not None]
    dist.broadcast_object_list(has_x0, src=root)

    A_dist = DDenseMatrix.from_global(A, n, grid, root=root, verbose=verbose)
    b_local = scatter_vector(b, n, grid, root)
    x0_local = scatter_vector(x0, n, grid, root) if has_x0[0] else None

    result = JacobiIterator(A_dist, b_local, x0_local,
                            atol=atol, maxiter=maxiter, verbose=verbose,
                            root=root).run()

    x = gather_vector(result.x, n, grid, root)
    if return_info:
        return x, result
    return x
