"""
_operators.py
=============
The circular split operator A and its relatives.

For a circular ordering of n taxa every split that is compatible with the
ordering is an arc of consecutive cycle positions.  Weights are stored in a
symmetric n x n matrix indexed by cycle position (0-based): for i < j,
``x[i, j]`` is the weight of the split whose one side holds positions
i, i+1, ..., j-1.  Every circular split has exactly one such representation
(the side not containing position n-1), so the strict upper triangle holds all
n(n-1)/2 unknowns.

A maps split weights to the induced distances between cycle positions:

    (A x)[i, j] = sum of x over the splits separating positions i and j

Three operations are exposed, each with a vectorized numpy reference
(backend='python') and a numba kernel (backend='cpu-parallel'):

    calc_ax     split weights -> distances            O(n^2)
    calc_atx    distances -> per-split sums (A')       O(n^2)
    calc_ainvx  distances -> split weights (A^-1)      O(n^2)

calc_ainvx is exact when the input is a circular metric for the ordering,
and otherwise yields the unconstrained least-squares weights, which may be
negative.

CircularOperator binds a problem size to a resolved backend so the solvers
can apply A hundreds of times without re-resolving the backend on each call.
"""

import logging

import numpy as np

from circnet._logging import (
    log_optimization_status,
    install_numba_warning_filter,
    log_backend_availability,
)
from circnet._backend import (
    check_numba_available,
    get_available_backends,
    get_best_backend,
    resolve_backend,
    import_cpu_kernels,
)
from circnet._context import get_backend_override


logger = logging.getLogger(__name__)

# ── Optional numba acceleration ──────────────────────────────────────────────
_NUMBA_AVAILABLE = check_numba_available()
(
    _cpu_import_ok,
    _calc_ax_njit,
    _calc_atx_njit,
    _calc_ainvx_njit,
    _sum_squares_upper_njit,
) = import_cpu_kernels()

_BACKENDS_AVAILABLE = get_available_backends()

# Track first calls to kernels for compilation logging
_kernel_first_call = {
    "cpu-parallel-ax": True,
    "cpu-parallel-atx": True,
    "cpu-parallel-ainvx": True,
    "cpu-parallel-sumsq": True,
}

# Log system info and backend availability on module import
log_optimization_status(_NUMBA_AVAILABLE)
log_backend_availability(_BACKENDS_AVAILABLE, _NUMBA_AVAILABLE)
install_numba_warning_filter(_NUMBA_AVAILABLE)


# ======================================================================== #
# Pure numpy reference implementations                                      #
# ======================================================================== #


def _calc_ax_python(x: np.ndarray) -> np.ndarray:
    n = x.shape[0]
    y = np.zeros((n, n), dtype=np.float64)
    if n < 2:
        return y

    # Width 1: positions i and i+1 are separated by every split touching
    # row i+1.
    row_sums = x.sum(axis=1) - np.diag(x)
    i = np.arange(n - 1)
    y[i, i + 1] = row_sums[i + 1]

    for k in range(2, n):
        i = np.arange(n - k)
        j = i + k
        y[i, j] = y[i, j - 1] + y[i + 1, j] - y[i + 1, j - 1] - 2.0 * x[i + 1, j]

    return y + y.T


def _calc_atx_python(d: np.ndarray) -> np.ndarray:
    n = d.shape[0]
    p = np.zeros((n, n), dtype=np.float64)
    if n < 2:
        return p

    row_sums = d.sum(axis=1) - np.diag(d)
    i = np.arange(n - 1)
    p[i, i + 1] = row_sums[i]

    for k in range(2, n):
        i = np.arange(n - k)
        j = i + k
        p[i, j] = p[i, j - 1] + p[i + 1, j] - p[i + 1, j - 1] - 2.0 * d[i, j - 1]

    return p + p.T


def _calc_ainvx_python(d: np.ndarray) -> np.ndarray:
    n = d.shape[0]
    if n < 2:
        return np.zeros((n, n), dtype=np.float64)

    # shifted[i, j] = d[i-1, j-1] with i-1 taken modulo n
    shifted = np.roll(np.roll(d, 1, axis=0), 1, axis=1)
    full = 0.5 * (shifted + d - np.roll(d, 1, axis=1) - np.roll(d, 1, axis=0))
    x = np.triu(full, 1)
    return x + x.T


def _sum_squares_upper_python(a: np.ndarray) -> float:
    return float(np.sum(np.triu(a, 1) ** 2))


# ======================================================================== #
# Backend-dispatching operator                                              #
# ======================================================================== #


def _check_square(a: np.ndarray, n: int, name: str) -> np.ndarray:
    a = np.ascontiguousarray(a, dtype=np.float64)
    if a.shape != (n, n):
        raise ValueError(f"{name} must have shape ({n}, {n}), got {a.shape}")
    return a


class CircularOperator:
    """
    The circular split operator for a fixed number of taxa.

    Parameters
    ----------
    n : int
        Number of taxa (cycle positions).
    backend : str, default 'best'
        'python', 'cpu-parallel' or 'best'.  An active use_backend() context
        takes precedence.  An unavailable backend falls back to the best
        available one with a warning.

    Attributes
    ----------
    n : int
    backend : str
        The resolved backend.

    Examples
    --------
    >>> op = CircularOperator(4)
    >>> x = np.zeros((4, 4)); x[1, 3] = x[3, 1] = 2.0
    >>> op.apply(x)[0, 2]
    2.0
    """

    def __init__(self, n: int, backend: str = "best"):
        if n < 0:
            raise ValueError(f"n must be non-negative, got {n}")
        self.n = int(n)

        backend_override = get_backend_override()
        if backend_override is not None:
            backend = backend_override

        try:
            resolved_backend = resolve_backend(backend)
        except ValueError as e:
            # Backend not available, fall back to best available
            logger.warning(str(e))
            resolved_backend = get_best_backend()

        self.backend = resolved_backend
        logger.debug(f"CircularOperator(n={self.n}, backend={resolved_backend!r})")

    def __repr__(self) -> str:
        return f"CircularOperator(n={self.n}, backend={self.backend!r})"

    def _compile_notice(self, kernel_key: str) -> None:
        if _kernel_first_call.get(kernel_key, False):
            logger.info(f"  Compiling {kernel_key} kernel (cached for future calls)")
            _kernel_first_call[kernel_key] = False

    def apply(self, x: np.ndarray) -> np.ndarray:
        """
        Compute A·x, the distances induced by circular split weights.

        Parameters
        ----------
        x : np.ndarray, shape (n, n)
            Symmetric split weights in cycle-position order.  Row sums are
            taken over full rows, so the lower triangle must mirror the
            upper one.

        Returns
        -------
        np.ndarray, shape (n, n)
            Symmetric distances with zero diagonal.
        """
        x = _check_square(x, self.n, "x")
        if self.backend == "cpu-parallel":
            self._compile_notice("cpu-parallel-ax")
            y = np.empty_like(x)
            _calc_ax_njit(x, y)
            return y
        elif self.backend == "python":
            return _calc_ax_python(x)
        else:
            raise RuntimeError(f"Internal error: unhandled backend {self.backend!r}")

    def adjoint(self, d: np.ndarray) -> np.ndarray:
        """
        Compute A'·d.

        For i < j the result holds the total of ``d`` over all pairs of
        positions separated by the split (i, j).
        """
        d = _check_square(d, self.n, "d")
        if self.backend == "cpu-parallel":
            self._compile_notice("cpu-parallel-atx")
            p = np.empty_like(d)
            _calc_atx_njit(d, p)
            return p
        elif self.backend == "python":
            return _calc_atx_python(d)
        else:
            raise RuntimeError(f"Internal error: unhandled backend {self.backend!r}")

    def inverse(self, d: np.ndarray) -> np.ndarray:
        """
        Compute A^-1·d in closed form.

        Exact when ``d`` is circular for this ordering; for other inputs the
        result is the unconstrained least-squares solution and may contain
        negative weights.
        """
        d = _check_square(d, self.n, "d")
        if self.backend == "cpu-parallel":
            self._compile_notice("cpu-parallel-ainvx")
            x = np.empty_like(d)
            _calc_ainvx_njit(d, x)
            return x
        elif self.backend == "python":
            return _calc_ainvx_python(d)
        else:
            raise RuntimeError(f"Internal error: unhandled backend {self.backend!r}")

    def sum_squares(self, a: np.ndarray) -> float:
        """Sum of squared entries over the strict upper triangle."""
        a = _check_square(a, self.n, "a")
        if self.backend == "cpu-parallel":
            self._compile_notice("cpu-parallel-sumsq")
            return float(_sum_squares_upper_njit(a))
        elif self.backend == "python":
            return _sum_squares_upper_python(a)
        else:
            raise RuntimeError(f"Internal error: unhandled backend {self.backend!r}")


# ======================================================================== #
# Functional interface                                                      #
# ======================================================================== #


def calc_ax(x: np.ndarray, backend: str = "best") -> np.ndarray:
    """
    Distances induced by circular split weights (A·x).

    See CircularOperator.apply.
    """
    x = np.asarray(x, dtype=np.float64)
    return CircularOperator(x.shape[0], backend).apply(x)


def calc_atx(d: np.ndarray, backend: str = "best") -> np.ndarray:
    """
    Per-split sums of pairwise values (A'·d).

    See CircularOperator.adjoint.
    """
    d = np.asarray(d, dtype=np.float64)
    return CircularOperator(d.shape[0], backend).adjoint(d)


def calc_ainvx(d: np.ndarray, backend: str = "best") -> np.ndarray:
    """
    Circular split weights reproducing a distance matrix (A^-1·d).

    See CircularOperator.inverse.
    """
    d = np.asarray(d, dtype=np.float64)
    return CircularOperator(d.shape[0], backend).inverse(d)
