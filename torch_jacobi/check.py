import torch
from typing import Optional


class ShapeException(Exception):
    def __init__(self, name, shape, expected_shape):
        self.name = name
        self.shape = shape
        self.expected_shape = expected_shape
        super().__init__(f"{name} has shape {shape} expected {expected_shape}")

    def __reduce__(self):
        return ShapeException, (self.name, self.shape, self.expected_shape)


class GridException(Exception):
    def __init__(self, world_size, dims=None):
        self.world_size = world_size
        self.dims = dims
        if dims is None:
            message = f"The number of processes must be a perfect square, got {world_size}"
        else:
            message = f"The process grid must be 2D and square with {world_size} processes, got dims {dims}"
        super().__init__(message)

    def __reduce__(self):
        return GridException, (self.world_size, self.dims)


def check_matrix(A:torch.Tensor, n:int, name:str="A"):
    """
    Check a dense global matrix

    Parameters
    ----------
    A: torch.Tensor
        [n, n] row-major matrix
    n: int
        size of the system
    name: str
        name used in the error message
    """
    if A is None:
        raise ShapeException(name, None, f"[{n}, {n}]")
    if not (A.ndim == 2 and A.shape[0] == n and A.shape[1] == n):
        raise ShapeException(name, tuple(A.shape), f"[{n}, {n}]")
    return A


def check_vector(v:torch.Tensor, n:int, name:str="b"):
    """
    Check a dense global vector

    Parameters
    ----------
    v: torch.Tensor
        [n] vector
    n: int
        size of the system
    name: str
        name used in the error message
    """
    if v is None:
        raise ShapeException(name, None, f"[{n}]")
    if not (v.ndim == 1 and v.shape[0] == n):
        raise ShapeException(name, tuple(v.shape), f"[{n}]")
    return v


def check_system(n:int,
                 A:torch.Tensor,
                 b:torch.Tensor,
                 x0:Optional[torch.Tensor]=None):
    """
    Check the global system Ax = b (and the optional start vector)

    Parameters
    ----------
    n: int
        size of the system
    A: torch.Tensor
        [n, n] matrix
    b: torch.Tensor
        [n] right hand side
    x0: torch.Tensor, optional
        [n] initial guess

    Returns
    -------
    tuple
        (A, b, x0) unchanged
    """
    if not n > 0:
        raise ShapeException("n", n, "n > 0")
    check_matrix(A, n, "A")
    check_vector(b, n, "b")
    if x0 is not None:
        check_vector(x0, n, "x0")
    return A, b, x0
