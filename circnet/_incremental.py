"""
_incremental.py
===============
Warm start for the split-weight solvers by incremental taxon insertion.

Taxa are inserted one at a time into a growing sub-circle, in an order that
keeps early taxa far apart (``max_divergence_order``).  Inserting a taxon
into the sub-circle divides the splits adjacent to its slot, and the weights
of the new splits solve a small bounded least-squares problem

    minimize ||M gamma - z||  subject to  0 <= gamma_j <= b_j

where M has closed-form solve and multiply routines (``solve_m``,
``multiply_m``) that run in linear time.  When the unconstrained solution
leaves the box, a golden-section search along the box-projected segment
from a feasible guess finds the best feasible point on that path.

The whole fit costs O(n^2 log n) and reproduces the weights exactly when the
distances are circular for the ordering.  For other inputs it yields a
feasible, usually good, starting point for the exact solvers.

All indices here are 0-based cycle positions: ``d`` must already be in cycle
order, and the returned weights use the same position convention as
``calc_ax``.
"""

import bisect
import logging
import threading
from typing import Optional

import numpy as np

from circnet._exceptions import ComputationCancelled
from circnet._utils import golden_section_search


logger = logging.getLogger(__name__)


def max_divergence_order(d: np.ndarray) -> np.ndarray:
    """
    Order positions so that every prefix is spread out.

    The first entry has the largest row sum.  Each following entry is the one
    not yet chosen with the greatest summed distance to those already chosen.
    Ties go to the lowest index.

    Parameters
    ----------
    d : np.ndarray
        Symmetric non-negative (n, n) distances.

    Returns
    -------
    np.ndarray
        A permutation of 0..n-1.
    """
    n = d.shape[0]
    order = np.empty(n, dtype=np.int64)
    if n == 0:
        return order

    first = int(np.argmax(d.sum(axis=1)))
    order[0] = first
    chosen = np.zeros(n, dtype=bool)
    chosen[first] = True
    s = d[first].astype(np.float64)

    for k in range(1, n):
        candidates = np.where(chosen, -np.inf, s)
        nxt = int(np.argmax(candidates))
        order[k] = nxt
        chosen[nxt] = True
        s = s + d[nxt]
    return order


def solve_m(r1: int, r2: int, z: np.ndarray) -> np.ndarray:
    """Solve M gamma = z for the insertion system with r1 + r2 placed taxa."""
    m = r1 + r2
    gamma = 0.5 * (z - np.roll(z, 1))
    if 0 < r1 < m:
        gamma[r1] += z[r1 - 1]
    else:
        gamma[0] += z[m - 1]
    return gamma


def multiply_m(r1: int, r2: int, g: np.ndarray) -> np.ndarray:
    """Compute M g for the insertion system."""
    m = r1 + r2
    if r1 == 0:
        r1, r2 = m, 0

    y = np.empty(m, dtype=np.float64)
    y[0] = g[0] - g[1:r1].sum() + g[r1:m].sum()
    for i in range(1, r1):
        y[i] = y[i - 1] + 2.0 * g[i]
    if r2 > 0:
        y[r1] = -y[r1 - 1] + 2.0 * g[r1]
        for i in range(r1 + 1, m):
            y[i] = y[i - 1] + 2.0 * g[i]
    return y


def _golden_insertion(
    gamma0: np.ndarray,
    gamma1: np.ndarray,
    b: np.ndarray,
    r1: int,
    r2: int,
    z: np.ndarray,
    tol: float,
) -> np.ndarray:
    maxdiff = float(np.max(np.abs(gamma0 - gamma1)))
    if maxdiff == 0.0:
        return gamma0.copy()

    def project(t):
        return np.clip((1.0 - t) * gamma0 + t * gamma1, 0.0, b)

    def residual(t):
        return float(np.linalg.norm(multiply_m(r1, r2, project(t)) - z))

    t = golden_section_search(residual, tol / maxdiff)
    return project(t)


def incremental_fitting(
    d: np.ndarray, tol: float = 1e-8, cancel: Optional[threading.Event] = None
) -> np.ndarray:
    """
    Approximate non-negative circular split weights by taxon insertion.

    Parameters
    ----------
    d : np.ndarray
        Symmetric (n, n) distances in cycle-position order.
    tol : float, default 1e-8
        Tolerance on split weight error, used to stop each golden-section
        search.
    cancel : threading.Event or None
        Cooperative cancellation flag, checked once per insertion.

    Returns
    -------
    np.ndarray
        Symmetric (n, n) non-negative split weights in the convention of
        ``calc_ax``.

    Examples
    --------
    >>> w = np.zeros((4, 4)); w[0, 1] = w[1, 0] = 1.0; w[0, 2] = w[2, 0] = 2.0
    >>> np.allclose(incremental_fitting(calc_ax(w)), w)
    True
    """
    d = np.asarray(d, dtype=np.float64)
    n = d.shape[0]
    x = np.zeros((n, n), dtype=np.float64)
    if n < 2:
        return x
    p = np.zeros((n, n), dtype=np.float64)

    s = max_divergence_order(d)

    s1, s2 = int(s[0]), int(s[1])
    x[s1, s2] = x[s2, s1] = d[s1, s2]
    p[s1, s2] = p[s2, s1] = d[s1, s2]
    cycle = sorted([s1, s2])  # placed positions, increasing

    for k in range(2, n):
        if cancel is not None and cancel.is_set():
            raise ComputationCancelled("Incremental fitting cancelled")

        sk = int(s[k])
        m = k  # taxa placed so far

        # Neighbours of sk's slot in the sub-circle
        r1 = bisect.bisect_left(cycle, sk)
        if r1 == 0 or r1 == m:
            u, v = cycle[m - 1], cycle[0]
        else:
            u, v = cycle[r1 - 1], cycle[r1]
        r2 = m - r1

        placed = np.array(cycle, dtype=np.int64)
        z = d[placed, sk] - p[placed, u]
        b = x[placed, v].copy()

        trivial = r1 if r1 <= m - 1 else 0
        b[trivial] = np.inf  # the split isolating sk is unbounded

        gamma0 = b / 2.0
        gamma0[trivial] = np.sqrt(np.sum(z * z)) / m
        gamma1 = solve_m(r1, r2, z)

        if np.all(gamma1 >= 0.0) and np.all(gamma1 <= b):
            gamma = gamma1
        else:
            gamma = _golden_insertion(gamma0, gamma1, b, r1, r2, z, tol)

        mg = multiply_m(r1, r2, gamma)
        for j, sj in enumerate(cycle):
            p[sk, sj] = p[sj, sk] = p[u, sj] + mg[j]
            x[sk, sj] = x[sj, sk] = gamma[j]
            x[v, sj] = x[sj, v] = max(x[v, sj] - gamma[j], 0.0)

        cycle.insert(r1, sk)

    logger.debug(f"  incremental fitting placed {n} taxa")
    return x
