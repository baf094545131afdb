#!/usr/bin/env python
"""
Jacobi solver command line driver.

Usage:
    # Read A and b from flat float64 files and write x
    torchrun --standalone --nproc_per_node=4 -m torch_jacobi A.bin b.bin x.bin

    # Random diagonally dominant input of size n (difficulty in [0, 1])
    torchrun --standalone --nproc_per_node=9 -m torch_jacobi -n 2000 -d 0.5

    # Without torchrun the sequential solver runs
    python -m torch_jacobi -n 500

The number of processes must be a perfect square. The solve time in seconds
(input loading excluded) is printed to stderr by rank 0.
"""

import os
import sys
import time
import argparse
import warnings
from datetime import timedelta

import torch
import torch.distributed as dist

from .grid import ProcessGrid
from .io import read_matrix, read_vector, write_binary_file
from .jacobi import L2_TERMINATION, MAX_ITER
from .linear_solve import solve_parallel, solve_sequential
from .random import diag_dom_rand, randn


def get_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='torch_jacobi',
        description='Solve Ax = b with the Jacobi method on a q x q process grid.'
    )
    parser.add_argument('files', nargs='*', metavar='FILE',
                        help='INPUT_A INPUT_B OUTPUT_X (flat float64, row-major)')
    parser.add_argument('-n', type=int, default=None,
                        help='Create random input of size n instead of reading files')
    parser.add_argument('-d', '--difficulty', type=float, default=0.5,
                        help='Difficulty of the random input, 0.0 (easiest) to 1.0')
    parser.add_argument('--maxiter', type=int, default=MAX_ITER)
    parser.add_argument('--atol', type=float, default=L2_TERMINATION)
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--timeout', type=float, default=600.0,
                        help='Seconds before a stuck collective is reported')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args(argv)

    if args.n is None and len(args.files) != 3:
        parser.error('expected INPUT_A INPUT_B OUTPUT_X, or -n <n>')
    if args.n is not None:
        if args.files:
            parser.error('-n cannot be combined with input files')
        if args.n <= 0:
            parser.error(f'n must be positive, got {args.n}')
    if not 0.0 <= args.difficulty <= 1.0:
        parser.error(f'difficulty must be in [0, 1], got {args.difficulty}')
    return args


def load_input(args):
    """Build or read (A, b) on the calling process."""
    if args.n is not None:
        generator = torch.Generator()
        if args.seed is not None:
            generator.manual_seed(args.seed)
        else:
            generator.seed()
        A = diag_dom_rand(args.n, args.difficulty, generator=generator)
        b = randn(args.n, generator=generator)
    else:
        b = read_vector(args.files[1])
        A = read_matrix(args.files[0], n=b.shape[0])
    return A, b


def main(argv=None):
    args = get_args(argv)

    distributed = 'RANK' in os.environ
    if distributed:
        dist.init_process_group(backend='gloo', timeout=timedelta(seconds=args.timeout))
    rank = dist.get_rank() if distributed else 0
    world_size = dist.get_world_size() if distributed else 1

    try:
        A = b = error = None
        n = 0
        if rank == 0:
            try:
                A, b = load_input(args)
                n = b.shape[0]
            except Exception as e:
                error = e
        if world_size > 1:
            meta = [n, error]
            dist.broadcast_object_list(meta, src=0)
            if rank != 0:
                n, error = meta
        if error is not None:
            raise error

        # loading and argument parsing are not part of the timing
        start = time.perf_counter()
        if world_size > 1:
            grid = ProcessGrid()
            x = solve_parallel(n, A, b, grid, atol=args.atol, maxiter=args.maxiter,
                               verbose=args.verbose)
        else:
            warnings.warn("Running the sequential solver. "
                          "Start with torchrun to execute the parallel version.")
            x = solve_sequential(A, b, atol=args.atol, maxiter=args.maxiter,
                                 verbose=args.verbose)

        if rank == 0:
            elapsed = time.perf_counter() - start
            print(elapsed, file=sys.stderr)
            if args.n is None:
                write_binary_file(args.files[2], x)
    finally:
        if distributed:
            dist.destroy_process_group()
    return 0


if __name__ == '__main__':
    sys.exit(main())
