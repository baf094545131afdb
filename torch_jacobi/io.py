"""
Flat binary files for the system ``A x = b``.

Matrices are stored as ``n * n`` native-endian float64 values in row-major
order, vectors as ``n`` float64 values. There is no header: the size is
derived from the file length.

Example
-------
>>> from torch_jacobi.io import read_matrix, read_vector, write_binary_file
>>> b = read_vector("b.bin")
>>> A = read_matrix("A.bin", n=b.shape[0])
>>> write_binary_file("x.bin", x)
"""

import math
import os
import torch
from typing import Optional, Union

from .check import ShapeException, check_vector
from .distributed import DTYPE

PathLike = Union[str, "os.PathLike"]


def read_binary_file(path: PathLike, dtype: torch.dtype = DTYPE) -> torch.Tensor:
    """
    Read a flat binary file into a 1D tensor.

    Parameters
    ----------
    path : str or PathLike
        File to read
    dtype : torch.dtype
        Element type, float64 by default

    Returns
    -------
    torch.Tensor
        [num_bytes // itemsize]
    """
    path = os.fspath(path)
    itemsize = torch.empty((), dtype=dtype).element_size()
    num_bytes = os.path.getsize(path)
    if num_bytes % itemsize != 0:
        raise ShapeException(path, num_bytes, f"a multiple of {itemsize} bytes")
    size = num_bytes // itemsize
    if size == 0:
        return torch.empty(0, dtype=dtype)
    return torch.from_file(path, shared=False, size=size, dtype=dtype).clone()


def write_binary_file(path: PathLike, x: torch.Tensor) -> None:
    """Write a tensor as flat native-endian binary (row-major)."""
    x.detach().cpu().contiguous().numpy().tofile(os.fspath(path))


def read_vector(path: PathLike, n: Optional[int] = None) -> torch.Tensor:
    """Read a length-``n`` float64 vector (``n`` inferred if omitted)."""
    v = read_binary_file(path)
    if n is not None:
        check_vector(v, n, os.fspath(path))
    return v


def read_matrix(path: PathLike, n: Optional[int] = None) -> torch.Tensor:
    """
    Read an ``n x n`` float64 row-major matrix.

    Without ``n`` the file must hold a perfect square number of values.
    """
    values = read_binary_file(path)
    if n is None:
        n = math.isqrt(values.numel())
    if values.numel() != n * n:
        raise ShapeException(os.fspath(path), values.numel(), f"{n}*{n} values")
    return values.view(n, n)
