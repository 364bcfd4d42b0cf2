"""
_utils.py
=========
General-purpose utility functions for circnet.

These are standalone functions that don't depend on the main classes
and could be useful in multiple contexts.
"""

import math
from typing import Callable, Optional, Sequence

import numpy as np


def validate_cycle(cycle: Sequence[int], ntax: Optional[int] = None) -> np.ndarray:
    """
    Validate a circular ordering and return it as an integer array.

    A valid cycle must:
    1. Be one-dimensional
    2. Contain each taxon id 1..n exactly once

    Parameters
    ----------
    cycle : sequence of int
        1-based taxon ids in circular order.
    ntax : int or None
        Expected number of taxa.  If None, len(cycle) is used.

    Returns
    -------
    np.ndarray
        int64 array of the taxon ids.

    Raises
    ------
    ValueError
        If the cycle is not a permutation of 1..ntax.

    Examples
    --------
    >>> validate_cycle([1, 3, 2])
    array([1, 3, 2])

    >>> validate_cycle([0, 1, 2])
    ValueError: cycle must be a permutation of 1..3, got [0, 1, 2]
    """
    arr = np.asarray(cycle)
    if arr.ndim != 1:
        raise ValueError(f"cycle must be one-dimensional, got shape {arr.shape}")
    n = len(arr) if ntax is None else ntax
    if len(arr) != n:
        raise ValueError(f"cycle has {len(arr)} entries but there are {n} taxa")
    if n > 0 and not np.issubdtype(arr.dtype, np.integer):
        raise ValueError(f"cycle must contain integer taxon ids, got {arr.dtype}")
    arr = arr.astype(np.int64)
    if not np.array_equal(np.sort(arr), np.arange(1, n + 1)):
        raise ValueError(
            f"cycle must be a permutation of 1..{n}, got {arr.tolist()}"
        )
    return arr


def golden_section_search(
    fn: Callable[[float], float],
    tol: float,
    lower: float = 0.0,
    upper: float = 1.0,
    max_iterations: int = 200,
) -> float:
    """
    Minimize a unimodal function on [lower, upper] by golden-section search.

    Parameters
    ----------
    fn : callable
        Function of one float to minimize.
    tol : float
        Stop once the bracket is no wider than this.  Must be positive.
    lower, upper : float
        Search interval.
    max_iterations : int, default 200
        Hard cap on bracket reductions.

    Returns
    -------
    float
        The better of the two interior sample points at termination.

    Examples
    --------
    >>> round(golden_section_search(lambda t: (t - 0.3) ** 2, 1e-8), 6)
    0.3
    """
    if tol <= 0:
        raise ValueError(f"tol must be positive, got {tol}")

    c = (3.0 - math.sqrt(5.0)) / 2.0
    r = 1.0 - c

    x0, x3 = lower, upper
    x1 = x0 + c * (x3 - x0)
    x2 = x1 + c * (x3 - x1)
    f1 = fn(x1)
    f2 = fn(x2)

    iterations = 0
    while abs(x3 - x0) > tol and iterations < max_iterations:
        if f2 < f1:
            x0, x1 = x1, x2
            x2 = r * x1 + c * x3
            f1 = f2
            f2 = fn(x2)
        else:
            x3, x2 = x2, x1
            x1 = r * x2 + c * x0
            f2 = f1
            f1 = fn(x1)
        iterations += 1

    return x1 if f1 < f2 else x2
