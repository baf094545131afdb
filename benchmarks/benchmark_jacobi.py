#!/usr/bin/env python
"""
Distributed Jacobi Benchmark

Times solve_parallel() on a q x q Gloo grid for several problem sizes and
compares against the sequential solver on rank 0.

Usage:
    # 4 processes (2x2 grid)
    torchrun --standalone --nproc_per_node=4 benchmark_jacobi.py

    # 9 processes (3x3 grid), custom sizes
    torchrun --standalone --nproc_per_node=9 benchmark_jacobi.py --sizes 500,1000,2000
"""

import os
import sys
import json
import time
import argparse
import warnings
from pathlib import Path

import torch

IN_DISTRIBUTED = 'RANK' in os.environ


def get_args():
    parser = argparse.ArgumentParser()
    parser.add_argument('--sizes', type=str, default='250,500,1000,2000',
                       help='Comma-separated system sizes')
    parser.add_argument('--difficulty', type=float, default=0.5)
    parser.add_argument('--maxiter', type=int, default=100)
    parser.add_argument('--atol', type=float, default=1e-10)
    parser.add_argument('--repeat', type=int, default=3)
    parser.add_argument('--output-dir', type=str, default='results/benchmark_jacobi')
    return parser.parse_args()


def benchmark_distributed(args):
    """Run distributed benchmark."""
    import torch.distributed as dist
    from torch_jacobi import ProcessGrid, diag_dom_rand, randn, solve_parallel, solve_sequential

    dist.init_process_group(backend='gloo')
    grid = ProcessGrid()

    if grid.is_root:
        print("=" * 70)
        print("Distributed Jacobi Benchmark")
        print(f"  World size: {grid.size} ({grid.q}x{grid.q} grid)")
        print(f"  Threads per process: {torch.get_num_threads()}")
        print("=" * 70)

    results = []
    for n in [int(s) for s in args.sizes.split(',')]:
        A = b = None
        if grid.is_root:
            generator = torch.Generator().manual_seed(n)
            A = diag_dom_rand(n, args.difficulty, generator=generator)
            b = randn(n, generator=generator)

        times = []
        for _ in range(args.repeat):
            dist.barrier()
            start = time.perf_counter()
            x, info = solve_parallel(n, A, b, grid, atol=args.atol, maxiter=args.maxiter,
                                     return_info=True)
            dist.barrier()
            times.append(time.perf_counter() - start)

        if grid.is_root:
            start = time.perf_counter()
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                x_seq = solve_sequential(A, b, atol=args.atol, maxiter=args.maxiter)
            seq_time = time.perf_counter() - start

            elapsed = min(times)
            diff = torch.linalg.norm(x - x_seq).item()
            print(f"n={n:>6}, parallel={elapsed:.4f}s, sequential={seq_time:.4f}s, "
                  f"speedup={seq_time / elapsed:.2f}x, iters={info.iterations}, "
                  f"res={info.residual:.2e}, |x-x_seq|={diff:.2e}")

            results.append({
                'n': n,
                'time': elapsed,
                'sequential_time': seq_time,
                'iterations': info.iterations,
                'residual': info.residual,
                'state': info.state.value,
                'world_size': grid.size,
            })

    # Save results
    if grid.is_root:
        output_dir = Path(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        result_file = output_dir / f'results_p{grid.size}.json'
        with open(result_file, 'w') as f:
            json.dump(results, f, indent=2)

        print(f"\nResults saved to {result_file}")

    dist.destroy_process_group()


def main():
    args = get_args()

    if IN_DISTRIBUTED:
        benchmark_distributed(args)
    else:
        print("Run with torchrun:")
        print(f"  torchrun --standalone --nproc_per_node=4 {sys.argv[0]}")
        print(f"  torchrun --standalone --nproc_per_node=9 {sys.argv[0]}")


if __name__ == '__main__':
    main()
