"""
_splits.py
==========
Weighted bipartitions of the taxon set and utilities over split systems.

An ASplit is one side of a bipartition (a frozenset of 1-based taxon ids)
together with its weight.  The other side is implied by ``ntax``.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Sequence

import numpy as np

from circnet._utils import validate_cycle


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ASplit:
    """
    A weighted split A | B of the taxa 1..ntax.

    Attributes
    ----------
    side : frozenset of int
        Taxa on side A (1-based ids).  Never empty and never all taxa.
    weight : float
        Non-negative split weight.
    ntax : int
        Total number of taxa.

    Examples
    --------
    >>> s = ASplit(frozenset({1, 2}), 2.0, 4)
    >>> sorted(s.other_side())
    [3, 4]
    >>> s.separates(1, 3)
    True
    """

    side: FrozenSet[int]
    weight: float
    ntax: int

    def __post_init__(self):
        object.__setattr__(self, "side", frozenset(int(t) for t in self.side))
        object.__setattr__(self, "weight", float(self.weight))
        if not self.side or len(self.side) >= self.ntax:
            raise ValueError(
                f"Split side must be a non-empty proper subset of 1..{self.ntax}, "
                f"got {sorted(self.side)}"
            )
        if min(self.side) < 1 or max(self.side) > self.ntax:
            raise ValueError(
                f"Split side contains taxa outside 1..{self.ntax}: {sorted(self.side)}"
            )
        if self.weight < 0:
            raise ValueError(f"Split weight must be non-negative, got {self.weight}")

    def other_side(self) -> FrozenSet[int]:
        return frozenset(range(1, self.ntax + 1)) - self.side

    def size(self) -> int:
        """Number of taxa on the smaller side."""
        return min(len(self.side), self.ntax - len(self.side))

    def is_trivial(self) -> bool:
        """True if one side holds a single taxon."""
        return self.size() == 1

    def separates(self, a: int, b: int) -> bool:
        """True if taxa a and b lie on different sides."""
        return (a in self.side) != (b in self.side)

    def same_bipartition(self, other: "ASplit") -> bool:
        """True if both splits partition the taxa the same way (weights ignored)."""
        return self.ntax == other.ntax and (
            self.side == other.side or self.side == other.other_side()
        )

    def __str__(self) -> str:
        a = " ".join(map(str, sorted(self.side)))
        b = " ".join(map(str, sorted(self.other_side())))
        return f"{a} | {b} ({self.weight:.6g})"


# ============================================================================ #
# Extraction
# ============================================================================ #


def extract_splits(x: np.ndarray, cycle: Sequence[int], cutoff: float) -> List[ASplit]:
    """
    Convert a split-weight matrix into a list of ASplit.

    For 0-based positions i < j the candidate side is the taxa at positions
    i..j-1.  A split is kept if its weight exceeds ``cutoff`` or it is
    trivial; trivial splits are kept whatever their weight.  Negative
    residual weights are clipped to zero.

    Parameters
    ----------
    x : np.ndarray
        Symmetric (n, n) weights in cycle-position order.
    cycle : sequence of int
        1-based taxon ids in circular order.
    cutoff : float
        Minimum weight for a non-trivial split.

    Returns
    -------
    list of ASplit
        In row-major (i, j) order.
    """
    cycle = validate_cycle(cycle)
    n = len(cycle)
    splits = []
    for i in range(n):
        side = set()
        for j in range(i + 1, n):
            side.add(int(cycle[j - 1]))
            size = len(side)
            if x[i, j] > cutoff or size == 1 or size == n - 1:
                splits.append(ASplit(frozenset(side), max(float(x[i, j]), 0.0), n))
    return splits


# ============================================================================ #
# Split system utilities
# ============================================================================ #


def splits_to_distances(splits: Iterable[ASplit], ntax: int) -> np.ndarray:
    """
    Distances implied by a weighted split system.

    Returns
    -------
    np.ndarray
        Symmetric (ntax, ntax) matrix indexed by taxon id - 1, where entry
        (a, b) is the total weight of splits separating taxa a+1 and b+1.
    """
    d = np.zeros((ntax, ntax), dtype=np.float64)
    for split in splits:
        if split.ntax != ntax:
            raise ValueError(f"Split over {split.ntax} taxa in a system of {ntax}")
        mask = np.zeros(ntax, dtype=bool)
        mask[[t - 1 for t in split.side]] = True
        d += split.weight * (mask[:, None] != mask[None, :])
    return d


def least_squares_fit(distances, splits: Iterable[ASplit]) -> float:
    """
    Percentage of the squared distances explained by a split system.

    ``100 * (1 - sum (s_ij - d_ij)^2 / sum d_ij^2)`` over pairs i < j, where s
    are the distances implied by the splits.  Returns 0 when all distances
    are zero.
    """
    d = np.asarray(distances, dtype=np.float64)
    n = d.shape[0]
    s = splits_to_distances(splits, n)
    iu = np.triu_indices(n, 1)
    dsum = float(np.sum(d[iu] ** 2))
    if dsum == 0.0:
        return 0.0
    ssum = float(np.sum((s[iu] - d[iu]) ** 2))
    return 100.0 * (1.0 - ssum / dsum)


def normalize_cycle(cycle: Sequence[int]) -> np.ndarray:
    """
    Canonical form of a circular ordering.

    Rotates so that taxon 1 comes first and reflects so that the second
    entry is smaller than the last.

    Examples
    --------
    >>> normalize_cycle([3, 1, 4, 2])
    array([1, 3, 2, 4])
    """
    arr = validate_cycle(cycle)
    n = len(arr)
    if n == 0:
        return arr
    start = int(np.flatnonzero(arr == 1)[0])
    arr = np.roll(arr, -start)
    if n > 2 and arr[1] > arr[-1]:
        arr = np.concatenate([arr[:1], arr[1:][::-1]])
    return arr


def is_circular(split: ASplit, cycle: Sequence[int]) -> bool:
    """True if the split's side is a contiguous arc of the cycle."""
    arr = validate_cycle(cycle, split.ntax)
    inside = np.array([t in split.side for t in arr])
    boundaries = int(np.sum(inside != np.roll(inside, 1)))
    return boundaries == 2


def total_weight(splits: Iterable[ASplit]) -> float:
    return float(sum(s.weight for s in splits))
