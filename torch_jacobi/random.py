import torch
from typing import Optional

from .distributed import DTYPE


def randn(n:int,
          generator:Optional[torch.Generator]=None,
          dtype=DTYPE
          )->torch.Tensor:
    """
    random standard normal vector

    Parameters
    ----------
    n : int
        length of the vector
    generator : torch.Generator, optional
        source of randomness, by default the global generator
    dtype : torch.dtype, optional
        Data type of the vector, by default torch.float64

    Returns
    -------
    torch.Tensor
        [n]
    """
    return torch.randn(n, generator=generator, dtype=dtype)


def diag_dom_rand(n:int,
                  difficulty:float=0.5,
                  generator:Optional[torch.Generator]=None,
                  dtype=DTYPE
                  )->torch.Tensor:
    """
    random strictly row diagonally dominant matrix

    Off-diagonal entries are standard normal, the diagonal is

    .. math::
        A_{ii} = (2 - d) \\sum_{j \\neq i} |A_{ij}| + 1

    so ``difficulty=0`` gives a matrix dominated twice over and
    ``difficulty=1`` one that is only just dominant (slow convergence).

    Parameters
    ----------
    n : int
        size of the matrix
    difficulty : float, optional
        between 0.0 (easiest) and 1.0, by default 0.5
    generator : torch.Generator, optional
        source of randomness, by default the global generator
    dtype : torch.dtype, optional
        Data type of the matrix, by default torch.float64

    Returns
    -------
    torch.Tensor
        [n, n]
    """
    assert n > 0, f"n must be positive, got {n}"
    assert 0.0 <= difficulty <= 1.0, f"difficulty must be in [0, 1], got {difficulty}"

    A = torch.randn(n, n, generator=generator, dtype=dtype)
    A.fill_diagonal_(0.0)
    rowsum = A.abs().sum(dim=1)
    A += torch.diag((2.0 - difficulty) * rowsum + 1.0)
    return A
