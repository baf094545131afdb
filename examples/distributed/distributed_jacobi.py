#!/usr/bin/env python
"""
Distributed Jacobi Example

Usage:
    torchrun --standalone --nproc_per_node=4 distributed_jacobi.py
"""

import torch
import torch.distributed as dist
from torch_jacobi import (
    ProcessGrid,
    DDenseMatrix,
    JacobiIterator,
    diag_dom_rand,
    randn,
    scatter_vector,
    gather_vector,
)


def main():
    # Initialize distributed
    dist.init_process_group(backend='gloo')
    grid = ProcessGrid()

    if grid.is_root:
        print("=" * 60)
        print("Distributed Jacobi: A @ x = b")
        print(f"  Grid: {grid.q}x{grid.q}")
        print("=" * 60)

    # Problem size, deliberately not a multiple of the grid side
    n = 101

    # Only rank 0 holds the global system
    A = b = None
    if grid.is_root:
        generator = torch.Generator().manual_seed(0)
        A = diag_dom_rand(n, difficulty=0.5, generator=generator)
        b = randn(n, generator=generator)

    A_dist = DDenseMatrix.from_global(A, n, grid, verbose=True)
    b_local = scatter_vector(b, n, grid)
    dist.barrier()

    if grid.is_root:
        print("\nSolving with distributed Jacobi...")

    iterator = JacobiIterator(A_dist, b_local, atol=1e-10, maxiter=200, verbose=True)
    result = iterator.run()

    if grid.in_first_column:
        print(f"[Block ({grid.row}, 0)] ||x_local|| = {result.x.norm():.4f}")

    x = gather_vector(result.x, n, grid)

    if grid.is_root:
        error = torch.linalg.norm(x - torch.linalg.solve(A, b)).item()
        print("\n" + "=" * 60)
        print(f"State: {result.state.value}, iterations: {result.iterations}")
        print(f"||x - x_direct|| = {error:.2e}")
        print("=" * 60)

    dist.destroy_process_group()


if __name__ == "__main__":
    main()
