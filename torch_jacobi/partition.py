"""
Balanced 1D partition of ``[0, n)`` into ``q`` contiguous ranges.

Every component that needs to know which grid row or column owns a global
index goes through this module. The rule is

.. math::

    count(i)  = \\lfloor n / q \\rfloor + [i < n \\bmod q]

    offset(i) = i \\lfloor n / q \\rfloor + \\min(i, n \\bmod q)

so the first ``n mod q`` ranges hold one extra element.

Example
-------
>>> from torch_jacobi.partition import partition, BlockPartition
>>> partition(10, 3)
[range(0, 4), range(4, 7), range(7, 10)]
>>> BlockPartition(10, 3).owner(5)
1
"""

from dataclasses import dataclass
from typing import List, Tuple


def block_decompose(n: int, q: int, i: int) -> int:
    """Number of indices owned by range ``i``."""
    return n // q + (1 if i < n % q else 0)


def block_offset(n: int, q: int, i: int) -> int:
    """First global index of range ``i``."""
    return i * (n // q) + min(i, n % q)


def partition(n: int, q: int) -> List[range]:
    """
    Split ``[0, n)`` into ``q`` contiguous ranges.

    Sizes differ by at most one and earlier ranges are never smaller than
    later ones. Ranges are empty when ``n < q``.

    Parameters
    ----------
    n : int
        Number of global indices
    q : int
        Number of ranges

    Returns
    -------
    List[range]
        One range per grid row (or column)
    """
    if q <= 0:
        raise ValueError(f"q must be positive, got {q}")
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    ranges = []
    for i in range(q):
        start = block_offset(n, q, i)
        ranges.append(range(start, start + block_decompose(n, q, i)))
    return ranges


@dataclass(frozen=True)
class BlockPartition:
    """Partition of ``n`` global indices over ``q`` grid rows/columns."""
    n: int
    q: int

    def __post_init__(self):
        if self.q <= 0:
            raise ValueError(f"q must be positive, got {self.q}")
        if self.n < 0:
            raise ValueError(f"n must be non-negative, got {self.n}")

    @property
    def counts(self) -> Tuple[int, ...]:
        return tuple(block_decompose(self.n, self.q, i) for i in range(self.q))

    @property
    def offsets(self) -> Tuple[int, ...]:
        return tuple(block_offset(self.n, self.q, i) for i in range(self.q))

    def count(self, i: int) -> int:
        return block_decompose(self.n, self.q, i)

    def offset(self, i: int) -> int:
        return block_offset(self.n, self.q, i)

    def range(self, i: int) -> range:
        start = self.offset(i)
        return range(start, start + self.count(i))

    def slice(self, i: int) -> slice:
        start = self.offset(i)
        return slice(start, start + self.count(i))

    def owner(self, index: int) -> int:
        """Range holding global ``index``."""
        if not 0 <= index < self.n:
            raise IndexError(f"index {index} out of range for n={self.n}")
        base, rem = divmod(self.n, self.q)
        # the first `rem` ranges have base + 1 elements
        split = rem * (base + 1)
        if index < split:
            return index // (base + 1)
        return rem + (index - split) // base

    def __len__(self) -> int:
        return self.q
