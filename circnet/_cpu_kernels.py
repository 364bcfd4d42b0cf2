"""
_cpu_kernels.py
===============
CPU-parallel circular-split operator kernels using Numba.

This module contains ONLY numba-accelerated code and should not import other
project modules to avoid import-time complications.  Every kernel writes into
a caller-allocated output array, mirroring the pure-numpy reference
implementations in _operators.py.

Exported Functions
------------------
_calc_ax_njit : njit function
    Split weights -> circular distances (the design matrix A).

_calc_atx_njit : njit function
    Distances -> per-split sums (the adjoint A').

_calc_ainvx_njit : njit function
    Circular distances -> split weights (closed-form inverse of A).

_sum_squares_upper_njit : njit function
    Sum of squares over the strict upper triangle.

Notes
-----
- The recurrences for A and A' fill the matrix one diagonal ("width") at a
  time.  Entries within one width are independent and run under prange; the
  end of each prange is a barrier, so width k is complete before width k+1
  reads it.
- Each parallel iteration writes only its own (i, i+k) and (i+k, i) slots, so
  no locking is needed.  Scalar accumulations use prange reductions.
- cache=True persists compiled binary to disk for faster subsequent runs.
"""

from numba import njit, prange


# ======================================================================== #
# Circular Operator Kernels                                                 #
# ======================================================================== #


@njit(parallel=True, cache=True)
def _calc_ax_njit(x, y):
    """
    Numba-compiled A·x for circular split weights.

    Parameters
    ----------
    x : float64[n, n]
        Symmetric split weights in cycle-position order.  For i < j,
        x[i, j] is the weight of the split holding positions i..j-1.
    y : float64[n, n]
        Output array, overwritten with the symmetric circular distances.
    """
    n = x.shape[0]
    for i in prange(n):
        y[i, i] = 0.0

    # Width 1: adjacent positions are separated by every split with a
    # boundary between them, i.e. the whole of row i+1.
    for i in prange(n - 1):
        r = i + 1
        s = 0.0
        for j in range(n):
            if j != r:
                s += x[r, j]
        y[i, r] = s
        y[r, i] = s

    for k in range(2, n):
        for i in prange(n - k):
            j = i + k
            v = y[i, j - 1] + y[i + 1, j] - y[i + 1, j - 1] - 2.0 * x[i + 1, j]
            y[i, j] = v
            y[j, i] = v


@njit(parallel=True, cache=True)
def _calc_atx_njit(d, p):
    """
    Numba-compiled A'·d, the adjoint of _calc_ax_njit.

    Parameters
    ----------
    d : float64[n, n]
        Symmetric values indexed by pairs of cycle positions.
    p : float64[n, n]
        Output array.  For i < j, p[i, j] is the sum of d over all pairs
        separated by the split holding positions i..j-1.
    """
    n = d.shape[0]
    for i in prange(n):
        p[i, i] = 0.0

    # Width 1: the split {i} separates i from everything else.
    for i in prange(n - 1):
        s = 0.0
        for j in range(n):
            if j != i:
                s += d[i, j]
        p[i, i + 1] = s
        p[i + 1, i] = s

    for k in range(2, n):
        for i in prange(n - k):
            j = i + k
            v = p[i, j - 1] + p[i + 1, j] - p[i + 1, j - 1] - 2.0 * d[i, j - 1]
            p[i, j] = v
            p[j, i] = v


@njit(parallel=True, cache=True)
def _calc_ainvx_njit(d, x):
    """
    Numba-compiled closed-form inverse of A.

    Exact when d is a circular metric for the current ordering; otherwise
    returns the unconstrained least-squares weights (which may be negative).

    Parameters
    ----------
    d : float64[n, n]
        Symmetric distances in cycle-position order, zero diagonal.
    x : float64[n, n]
        Output array, overwritten with symmetric split weights.
    """
    n = d.shape[0]
    for i in prange(n):
        x[i, i] = 0.0
        im1 = i - 1 if i > 0 else n - 1
        for j in range(i + 1, n):
            v = 0.5 * (d[im1, j - 1] + d[i, j] - d[i, j - 1] - d[im1, j])
            x[i, j] = v
            x[j, i] = v


@njit(parallel=True, cache=True)
def _sum_squares_upper_njit(a):
    """
    Sum of a[i, j]**2 over i < j.

    The accumulation is a prange reduction; numba combines the per-thread
    partial sums after the loop.
    """
    n = a.shape[0]
    total = 0.0
    for i in prange(n):
        row = 0.0
        for j in range(i + 1, n):
            row += a[i, j] * a[i, j]
        total += row
    return total
