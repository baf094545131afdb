#!/usr/bin/env python
"""
Basic Usage Examples for torch-jacobi

This example demonstrates:
1. Creating random diagonally dominant input
2. Sequential Jacobi solve and its result record
3. Non-convergence reporting
4. Reading and writing the flat binary format
5. The block partition shared by rows and columns
"""

import os
import tempfile
import warnings

import torch
from torch_jacobi import (
    BlockPartition,
    diag_dom_rand,
    randn,
    read_matrix,
    read_vector,
    solve_sequential,
    write_binary_file,
)


# =============================================================================
# 1. Input
# =============================================================================

def example_1_random_input():
    """Random strictly diagonally dominant system."""
    generator = torch.Generator().manual_seed(0)
    A = diag_dom_rand(200, difficulty=0.5, generator=generator)
    b = randn(200, generator=generator)
    print(f"A: {tuple(A.shape)} {A.dtype}, b: {tuple(b.shape)}")
    return A, b


# =============================================================================
# 2. Solve
# =============================================================================

def example_2_solve(A, b):
    """Solve and inspect the residual history."""
    x, info = solve_sequential(A, b, atol=1e-10, maxiter=100, return_info=True)
    print(f"State: {info.state.value} after {info.iterations} iterations")
    print(f"Final residual: {info.residual:.2e}")
    print(f"||x - x_direct|| = {torch.linalg.norm(x - torch.linalg.solve(A, b)):.2e}")
    return x


def example_3_not_converging():
    """Jacobi diverges when A is far from diagonally dominant."""
    A = torch.tensor([[1.0, 3.0], [3.0, 1.0]], dtype=torch.float64)
    b = torch.ones(2, dtype=torch.float64)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _, info = solve_sequential(A, b, maxiter=10, return_info=True)
    print(f"State: {info.state.value}, warning: {caught[0].message}")


# =============================================================================
# 3. I/O
# =============================================================================

def example_4_binary_files(A, b):
    """Round trip through the headerless float64 format."""
    with tempfile.TemporaryDirectory() as tmpdir:
        write_binary_file(os.path.join(tmpdir, "A.bin"), A)
        write_binary_file(os.path.join(tmpdir, "b.bin"), b)
        b2 = read_vector(os.path.join(tmpdir, "b.bin"))
        A2 = read_matrix(os.path.join(tmpdir, "A.bin"), n=b2.shape[0])
        print(f"Read back A: {torch.equal(A, A2)}, b: {torch.equal(b, b2)}")


def example_5_partition():
    """How 10 rows split over a 3x3 grid."""
    part = BlockPartition(10, 3)
    for i in range(3):
        print(f"  block {i}: rows {part.range(i)}")


if __name__ == "__main__":
    A, b = example_1_random_input()
    example_2_solve(A, b)
    example_3_not_converging()
    example_4_binary_files(A, b)
    example_5_partition()
