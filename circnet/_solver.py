"""
_solver.py
==========
Non-negative least squares for circular split weights.

Given distances ``d`` in cycle-position order, find split weights ``x >= 0``
minimizing

    f(x) = 1/2 ||A x - d||^2 + lam * sum(x)

where A is the circular split operator of _operators.py (never formed
explicitly) and sums run over pairs i < j.  ``lam`` is zero for plain NNLS;
with ``regularization = rho`` it is ``rho * max(A'd)``, a lasso penalty that
pulls small splits to zero.

Strategies
----------
All strategies share one interface, ``NNLSStrategy.minimize``, and are
looked up through ``get_strategy``:

active-set
    Solve on the face defined by the zero set G with CGNR, step back to the
    first boundary hit when the face solution is infeasible, and release the
    single most KKT-violating coordinate when the face is optimal.
gradient-projection (default)
    The active-set loop with a golden-section projected line search as face
    search, releasing every violating coordinate at once.
block-pivot
    Flip whole blocks of infeasible coordinates between G and its
    complement, falling back to single flips when the violation count
    stalls.
projected-gradient
    Fixed-step projected gradient descent with step 1/L.
accelerated-projected-gradient
    Projected gradient with Nesterov momentum and restarts.

Every strategy returns the best feasible point it has seen.  The pivoting
strategies keep it as an explicit incumbent; the gradient methods fall back
to a line search whenever a step would increase f.  Either way
``NNLSResult.history`` never increases.  Running out of outer iterations
returns that point and issues ``NNLSConvergenceWarning``.
"""

import logging
import math
import threading
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

import numpy as np

from circnet._exceptions import ComputationCancelled, NNLSConvergenceWarning
from circnet._logging import (
    log_convergence_failure,
    log_solver_finish,
    log_solver_progress,
    log_solver_start,
    solver_trace_enabled,
)
from circnet._operators import CircularOperator
from circnet._utils import golden_section_search


logger = logging.getLogger(__name__)

# Relative size of the rounding error in A'(Ax - d)
_ROUNDING_FLOOR = 1e-12


# ============================================================================ #
# Configuration
# ============================================================================ #


class Strategy(Enum):
    """NNLS strategies for split weight estimation."""

    ACTIVE_SET = "active-set"
    GRADIENT_PROJECTION = "gradient-projection"
    BLOCK_PIVOT = "block-pivot"
    PROJECTED_GRADIENT = "projected-gradient"
    ACCELERATED_PROJECTED_GRADIENT = "accelerated-projected-gradient"


def _coerce_strategy(strategy: Union[str, Strategy]) -> Strategy:
    if isinstance(strategy, Strategy):
        return strategy
    try:
        return Strategy(strategy)
    except ValueError:
        valid = ", ".join(s.value for s in Strategy)
        raise ValueError(
            f"Strategy '{strategy}' not recognized. Valid options: {valid}"
        ) from None


@dataclass
class NNLSParams:
    """
    Parameters for the split weight solvers.

    Attributes
    ----------
    strategy : Strategy or str, default Strategy.GRADIENT_PROJECTION
        Which NNLS strategy to run.  Strings are the enum values, e.g.
        'block-pivot'.
    tolerance : float, default 1e-6
        Minimum objective decrease per outer iteration, and the base of the
        KKT bound.
    cutoff : float, default 1e-4
        Non-trivial splits with weight <= cutoff are dropped from the output.
    max_outer_iterations : int or None
        Outer iteration cap.  None derives it from n and the strategy.
    max_inner_iterations : int or None
        CGNR iteration cap per call.  None means ``max(2n, 25)``.
    regularization : float, default 0.0
        Lasso strength as a fraction of ``max(A'd)``, in [0, 1).
    kkt_bound : float or None
        Gradients of zeroed weights above ``-kkt_bound`` count as optimal,
        and the pivoting strategies only stop once the gradient norm over
        the free weights is within ``kkt_bound``.  None means
        ``tolerance / 100``.
    pg_bound : float, default 1e-4
        Projected-gradient norm at which the gradient methods stop.
    cg_epsilon : float, default 1e-4
        CGNR stops once the masked gradient has shrunk by this factor from
        its value at the start of the call.
    warm_start : bool, default True
        Start the solver from incremental fitting rather than all-ones.
    """

    strategy: Union[Strategy, str] = Strategy.GRADIENT_PROJECTION
    tolerance: float = 1e-6
    cutoff: float = 1e-4
    max_outer_iterations: Optional[int] = None
    max_inner_iterations: Optional[int] = None
    regularization: float = 0.0
    kkt_bound: Optional[float] = None
    pg_bound: float = 1e-4
    cg_epsilon: float = 1e-4
    warm_start: bool = True

    def __post_init__(self):
        self.strategy = _coerce_strategy(self.strategy)

        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.cutoff < 0:
            raise ValueError(f"cutoff must be non-negative, got {self.cutoff}")
        for name in ("max_outer_iterations", "max_inner_iterations"):
            value = getattr(self, name)
            if value is not None and (int(value) != value or value < 1):
                raise ValueError(f"{name} must be a positive integer or None, got {value}")
        if not 0.0 <= self.regularization < 1.0:
            raise ValueError(
                f"regularization must be in [0, 1), got {self.regularization}"
            )
        if self.kkt_bound is not None and not self.kkt_bound > 0:
            raise ValueError(f"kkt_bound must be positive or None, got {self.kkt_bound}")
        if not self.pg_bound > 0:
            raise ValueError(f"pg_bound must be positive, got {self.pg_bound}")
        if not self.cg_epsilon > 0:
            raise ValueError(f"cg_epsilon must be positive, got {self.cg_epsilon}")

    @property
    def kkt_threshold(self) -> float:
        return self.kkt_bound if self.kkt_bound is not None else self.tolerance / 100.0

    def outer_cap(self, n: int) -> int:
        """Outer iteration cap for n taxa under this strategy."""
        if self.max_outer_iterations is not None:
            return int(self.max_outer_iterations)
        if self.strategy is Strategy.ACTIVE_SET:
            return max(n * (n - 1), 100)
        if self.strategy in (Strategy.GRADIENT_PROJECTION, Strategy.BLOCK_PIVOT):
            return max(3 * n, 100)
        return max(100 * n, 5000)

    def inner_cap(self, n: int) -> int:
        """CGNR iteration cap for n taxa."""
        if self.max_inner_iterations is not None:
            return int(self.max_inner_iterations)
        return max(2 * n, 25)


@dataclass
class NNLSResult:
    """
    Outcome of one strategy run.

    Attributes
    ----------
    x : np.ndarray
        Symmetric non-negative split weights in cycle-position order.
    converged : bool
        False if the outer iteration cap was reached.
    iterations : int
        Outer iterations performed.
    history : list of float
        Objective of the incumbent after each outer iteration.
    strategy : Strategy
    """

    x: np.ndarray
    converged: bool
    iterations: int
    history: List[float] = field(default_factory=list)
    strategy: Strategy = Strategy.GRADIENT_PROJECTION

    @property
    def objective(self) -> Optional[float]:
        return self.history[-1] if self.history else None


# ============================================================================ #
# Problem
# ============================================================================ #


class NNLSProblem:
    """
    The objective, its gradient and the operator for one solve.

    Parameters
    ----------
    operator : CircularOperator
    d : np.ndarray
        Symmetric (n, n) distances in cycle-position order.
    regularization : float, default 0.0
        Lasso fraction; see NNLSParams.
    """

    def __init__(self, operator: CircularOperator, d: np.ndarray, regularization: float = 0.0):
        n = operator.n
        self.operator = operator
        self.n = n
        self.d = np.ascontiguousarray(d, dtype=np.float64)
        self.upper = np.triu(np.ones((n, n), dtype=bool), 1)

        self.atd = operator.adjoint(self.d)
        self.atd_norm = math.sqrt(operator.sum_squares(self.atd))
        max_atd = float(self.atd[self.upper].max()) if n >= 2 else 0.0
        self.lam = regularization * max(max_atd, 0.0)

    def residual(self, x: np.ndarray) -> np.ndarray:
        return self.operator.apply(x) - self.d

    def objective(self, x: np.ndarray) -> float:
        f = 0.5 * self.operator.sum_squares(self.residual(x))
        if self.lam > 0:
            f += self.lam * float(x[self.upper].sum())
        return f

    def residual_norm(self, x: np.ndarray) -> float:
        return math.sqrt(self.operator.sum_squares(self.residual(x)))

    def gradient(self, x: np.ndarray) -> np.ndarray:
        """A'(Ax - d) + lam, with zero diagonal."""
        g = self.operator.adjoint(self.residual(x))
        if self.lam > 0:
            g = g + self.lam
            np.fill_diagonal(g, 0.0)
        return g

    def projected_gradient_norm(self, x: np.ndarray, g: Optional[np.ndarray] = None) -> float:
        """Norm of the gradient with components pushing zero weights negative removed."""
        if g is None:
            g = self.gradient(x)
        keep = self.upper & ((x > 0) | (g < 0))
        return float(np.sqrt(np.sum(g[keep] ** 2)))

    def free_gradient_norm(self, x: np.ndarray, G: np.ndarray, g: Optional[np.ndarray] = None) -> float:
        """Norm of the gradient over the free weights (upper entries outside G)."""
        if g is None:
            g = self.gradient(x)
        return float(np.sqrt(np.sum(g[self.upper & ~G] ** 2)))

    def stationarity_bound(self, params: NNLSParams) -> float:
        """
        Free-gradient norm at which a face solution counts as exact.

        ``params.kkt_threshold``, raised for large-scale inputs to the level
        rounding in A'(Ax - d) can actually reach.
        """
        return max(params.kkt_threshold, _ROUNDING_FLOOR * self.atd_norm)

    def num_nonzero(self, x: np.ndarray) -> int:
        return int(np.count_nonzero(x[self.upper] > 0))


# ============================================================================ #
# Shared machinery
# ============================================================================ #


def estimate_norm(n: int) -> float:
    """Polynomial fit to ||A'A||_2 for n taxa, used as the Lipschitz constant."""
    return (
        ((0.041063124831008 * n + 0.000073540331934) * n + 0.065260125117342) * n
        + 0.027499142031727
    ) * n - 0.038454953524879


def zero_mask(x: np.ndarray) -> np.ndarray:
    """Active set of x: the non-positive entries, plus the diagonal."""
    G = x <= 0.0
    np.fill_diagonal(G, True)
    return G


def cgnr(
    problem: NNLSProblem,
    x: np.ndarray,
    G: np.ndarray,
    cg_epsilon: float,
    max_iterations: int,
    atol: float = 0.0,
) -> bool:
    """
    Conjugate gradients on the normal equations, restricted to the face ~G.

    Minimizes f over {x : x[G] = 0} ignoring the sign constraints.  ``x`` is
    updated in place; entries in G are never moved.

    Parameters
    ----------
    problem : NNLSProblem
    x : np.ndarray
        Starting weights, overwritten with the result.
    G : np.ndarray
        Boolean mask of the weights held at their current value.
    cg_epsilon : float
        Relative reduction of the masked gradient norm at which to stop.
    max_iterations : int
    atol : float, default 0.0
        Absolute masked gradient norm at which to stop.

    Returns
    -------
    bool
        True if the masked gradient norm fell to ``cg_epsilon`` times its
        starting value, or to ``atol``, before the iteration cap.
    """
    op = problem.operator
    r = problem.d - op.apply(x)
    z = op.adjoint(r) - problem.lam
    z[G] = 0.0
    ztz = op.sum_squares(z)
    if ztz <= atol * atol:
        return True
    tol = max(cg_epsilon * cg_epsilon * ztz, atol * atol)

    p = z.copy()
    for _ in range(max_iterations):
        w = op.apply(p)
        wtw = op.sum_squares(w)
        if wtw == 0.0:
            return True
        alpha = ztz / wtw
        x += alpha * p
        r -= alpha * w

        z = op.adjoint(r) - problem.lam
        z[G] = 0.0
        ztz2 = op.sum_squares(z)
        if ztz2 <= tol:
            return True

        p = z + (ztz2 / ztz) * p
        ztz = ztz2

    return False


def golden_projection(
    problem: NNLSProblem, x0: np.ndarray, x1: np.ndarray, tolerance: float
) -> np.ndarray:
    """
    Best point on the projected segment from a feasible x0 towards x1.

    Minimizes ``f(max((1-t) x0 + t x1, 0))`` over t in [0, 1] by golden-section
    search.  The result is never worse than x0.
    """

    def project(t):
        return np.maximum((1.0 - t) * x0 + t * x1, 0.0)

    t = golden_section_search(lambda t: problem.objective(project(t)), tolerance)
    x = project(t)
    if problem.objective(x) > problem.objective(x0):
        return x0.copy()
    return x


def furthest_feasible(x0: np.ndarray, x1: np.ndarray, tolerance: float) -> np.ndarray:
    """
    Ratio test: the last feasible point on the segment from x0 to x1.

    Entries of the result below ``tolerance`` are set to zero.
    """
    neg = x1 < 0
    t = 1.0
    if np.any(neg):
        t = min(1.0, float(np.min(x0[neg] / (x0[neg] - x1[neg]))))
    x = (1.0 - t) * x0 + t * x1
    x[x < tolerance] = 0.0
    return x


class _Incumbent:
    """Best feasible point seen so far."""

    def __init__(self, problem: NNLSProblem, x: np.ndarray):
        self.problem = problem
        self.x = x.copy()
        self.f = problem.objective(self.x)

    def offer(self, x: np.ndarray, f: Optional[float] = None) -> float:
        if f is None:
            f = self.problem.objective(x)
        if f <= self.f:
            self.x = x.copy()
            self.f = f
        return self.f


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise ComputationCancelled("Split weight computation cancelled")


# ============================================================================ #
# Strategies
# ============================================================================ #


class NNLSStrategy:
    """
    Base class for NNLS strategies.

    Subclasses implement ``_run``; ``minimize`` wraps it with logging and the
    convergence warning.
    """

    strategy: Strategy

    def minimize(
        self,
        problem: NNLSProblem,
        x0: np.ndarray,
        params: NNLSParams,
        cancel: Optional[threading.Event] = None,
    ) -> NNLSResult:
        """
        Minimize ``problem`` over x >= 0 starting from the feasible point x0.

        Parameters
        ----------
        problem : NNLSProblem
        x0 : np.ndarray
            Symmetric non-negative starting weights.  Negative entries are
            clipped.
        params : NNLSParams
        cancel : threading.Event or None
            Checked at the top of every outer iteration.

        Returns
        -------
        NNLSResult

        Raises
        ------
        ComputationCancelled
            If ``cancel`` is set.
        """
        n = problem.n
        max_outer = params.outer_cap(n)
        name = self.strategy.value
        log_solver_start(name, n, max_outer, params.tolerance, params.regularization)

        x = np.maximum(np.array(x0, dtype=np.float64), 0.0)
        np.fill_diagonal(x, 0.0)

        result = self._run(problem, x, params, max_outer, cancel)

        if result.converged:
            log_solver_finish(name, True, result.iterations, result.objective)
        else:
            msg = log_convergence_failure(name, max_outer, result.objective)
            warnings.warn(msg, NNLSConvergenceWarning, stacklevel=3)
        return result

    def _run(self, problem, x, params, max_outer, cancel) -> NNLSResult:
        raise NotImplementedError

    def _trace(self, problem: NNLSProblem, k: int, x: np.ndarray) -> None:
        if solver_trace_enabled():
            log_solver_progress(
                self.strategy.value,
                k,
                problem.residual_norm(x),
                problem.projected_gradient_norm(x),
                problem.num_nonzero(x),
            )


class ActiveSetStrategy(NNLSStrategy):
    """Active-set method with CGNR face solves and a ratio-test step back."""

    strategy = Strategy.ACTIVE_SET
    face_search = "ratio"
    release_all = False

    def _search_face(self, problem, x, G, params, max_inner, atol) -> bool:
        """
        Minimize over the current face, then restore feasibility.

        Returns True if x is (approximately) optimal for the face.  When the
        face solution is infeasible, x is moved back to the feasible region,
        G is reset to its zero set and False is returned.
        """
        x0 = x.copy()
        if problem.lam == 0.0 and not np.any(G & problem.upper):
            x[:] = problem.operator.inverse(problem.d)
            cg_converged = True
        else:
            cg_converged = cgnr(problem, x, G, params.cg_epsilon, max_inner, atol)

        if np.any(x[problem.upper] < 0):
            if self.face_search == "golden":
                x[:] = golden_projection(problem, x0, x, params.tolerance)
            else:
                x[:] = furthest_feasible(x0, x, params.tolerance)
            G[:] = zero_mask(x)
            return False
        return cg_converged

    def _check_kkt(self, problem, x, G, params) -> bool:
        """
        True if no zeroed weight has a gradient below -kkt_bound.

        Otherwise releases the most violating coordinate (or all violators)
        from G and returns False.
        """
        g = problem.gradient(x)
        bound = params.kkt_threshold
        active = G & problem.upper
        if not np.any(active):
            return True

        masked = np.where(active, g, np.inf)
        idx = int(np.argmin(masked))
        if masked.flat[idx] >= -bound:
            return True

        if self.release_all:
            release = active & (g < -bound)
            G[release] = False
            G[release.T] = False
        else:
            i, j = np.unravel_index(idx, G.shape)
            G[i, j] = G[j, i] = False
        return False

    def _run(self, problem, x, params, max_outer, cancel) -> NNLSResult:
        max_inner = params.inner_cap(problem.n)
        bound = problem.stationarity_bound(params)
        G = zero_mask(x)
        incumbent = _Incumbent(problem, x)
        f_old = incumbent.f
        history = []
        converged = False
        k = 0

        while k < max_outer:
            _check_cancel(cancel)
            k += 1
            optimal_for_face = self._search_face(problem, x, G, params, max_inner, bound)
            f = problem.objective(x)
            history.append(incumbent.offer(x, f))
            self._trace(problem, k, x)

            # A face solve that is not yet exact keeps iterating on the same G
            if optimal_for_face or f_old - f < params.tolerance:
                if self._check_kkt(problem, x, G, params) and (
                    problem.free_gradient_norm(x, G) <= bound
                ):
                    converged = True
                    break
            f_old = f

        return NNLSResult(incumbent.x, converged, k, history, self.strategy)


class GradientProjectionStrategy(ActiveSetStrategy):
    """Active-set loop with a projected golden-section face search."""

    strategy = Strategy.GRADIENT_PROJECTION
    face_search = "golden"
    release_all = True


class BlockPivotStrategy(NNLSStrategy):
    """Block principal pivoting with a stall counter against cycling."""

    strategy = Strategy.BLOCK_PIVOT

    def _run(self, problem, x, params, max_outer, cancel) -> NNLSResult:
        max_inner = params.inner_cap(problem.n)
        bound = problem.stationarity_bound(params)
        snap = params.tolerance * 1e-3
        upper = problem.upper

        incumbent = _Incumbent(problem, x)
        G = zero_mask(x)
        x[G] = 0.0
        cgnr(problem, x, G, params.cg_epsilon, max_inner, bound)
        y = problem.gradient(x)
        incumbent.offer(np.maximum(x, 0.0))

        best_bad = np.inf
        patience = 3
        history = []
        converged = False
        k = 0

        while k < max_outer:
            _check_cancel(cancel)
            infeasible = upper & ((~G & (x < 0)) | (G & (y < 0)))
            num_bad = int(np.count_nonzero(infeasible))
            if num_bad == 0 and problem.free_gradient_norm(x, G, y) <= bound:
                converged = True
                break

            k += 1
            if num_bad == 0:
                # Sign pattern is consistent; keep solving on the same face
                flip = None
            elif num_bad < best_bad:
                best_bad = num_bad
                patience = 3
                flip = infeasible
            elif patience > 0:
                patience -= 1
                flip = infeasible
            else:
                # Single flip of the first violator in row-major order
                i, j = np.unravel_index(int(np.argmax(infeasible)), G.shape)
                logger.debug(
                    f"  block-pivot: {num_bad} violations after {k} rounds, "
                    f"single flip at ({i}, {j})"
                )
                flip = np.zeros_like(infeasible)
                flip[i, j] = True

            if flip is not None:
                flip = flip | flip.T
                G ^= flip
                np.fill_diagonal(G, True)

            x[G] = 0.0
            cgnr(problem, x, G, params.cg_epsilon, max_inner, bound)
            y = problem.gradient(x)
            x[np.abs(x) < snap] = 0.0
            y[np.abs(y) < snap] = 0.0

            history.append(incumbent.offer(np.maximum(x, 0.0)))
            self._trace(problem, k, np.maximum(x, 0.0))

        if not history:
            history.append(incumbent.f)
        return NNLSResult(incumbent.x, converged, k, history, self.strategy)


class ProjectedGradientStrategy(NNLSStrategy):
    """Projected gradient descent with fixed step 1/L."""

    strategy = Strategy.PROJECTED_GRADIENT

    def _run(self, problem, x, params, max_outer, cancel) -> NNLSResult:
        L = estimate_norm(problem.n)
        f_old = problem.objective(x)
        history = []
        converged = False
        k = 0

        while k < max_outer:
            _check_cancel(cancel)
            k += 1
            g = problem.gradient(x)
            x_new = np.maximum(x - g / L, 0.0)
            f_new = problem.objective(x_new)
            if f_new > f_old:
                x_new = golden_projection(problem, x, x_new, params.tolerance)
                f_new = problem.objective(x_new)

            decrease = f_old - f_new
            x, f_old = x_new, f_new
            history.append(f_new)
            self._trace(problem, k, x)

            if decrease < params.tolerance or problem.projected_gradient_norm(x) < params.pg_bound:
                converged = True
                break

        return NNLSResult(x, converged, k, history, self.strategy)


class AcceleratedProjectedGradientStrategy(NNLSStrategy):
    """Projected gradient with Nesterov momentum, restarting on ascent."""

    strategy = Strategy.ACCELERATED_PROJECTED_GRADIENT
    alpha0 = 0.5

    def _run(self, problem, x, params, max_outer, cancel) -> NNLSResult:
        L = estimate_norm(problem.n)
        f_old = problem.objective(x)
        y = x.copy()
        alpha_old = self.alpha0
        history = []
        converged = False
        k = 0

        while k < max_outer:
            _check_cancel(cancel)
            k += 1
            x_old = x
            x = np.maximum(y - problem.gradient(y) / L, 0.0)
            f_new = problem.objective(x)

            if f_new > f_old:
                # Restart: plain step from the previous iterate
                x = np.maximum(x_old - problem.gradient(x_old) / L, 0.0)
                f_new = problem.objective(x)
                if f_new > f_old:
                    x = golden_projection(problem, x_old, x, params.tolerance)
                    f_new = problem.objective(x)
                y = x.copy()
                alpha = self.alpha0
            elif problem.projected_gradient_norm(x) < params.pg_bound:
                history.append(f_new)
                converged = True
                break
            else:
                a2 = alpha_old * alpha_old
                alpha = 0.5 * (math.sqrt(a2 * a2 + 4.0 * a2) - a2)
                beta = alpha_old * (1.0 - alpha_old) / (a2 + alpha)
                y = x + beta * (x - x_old)

            alpha_old = alpha
            f_old = f_new
            history.append(f_new)
            self._trace(problem, k, x)

        return NNLSResult(x, converged, k, history, self.strategy)


_STRATEGIES: Dict[Strategy, type] = {
    Strategy.ACTIVE_SET: ActiveSetStrategy,
    Strategy.GRADIENT_PROJECTION: GradientProjectionStrategy,
    Strategy.BLOCK_PIVOT: BlockPivotStrategy,
    Strategy.PROJECTED_GRADIENT: ProjectedGradientStrategy,
    Strategy.ACCELERATED_PROJECTED_GRADIENT: AcceleratedProjectedGradientStrategy,
}


def get_strategy(strategy: Union[str, Strategy]) -> NNLSStrategy:
    """
    Instantiate the strategy registered under ``strategy``.

    Raises
    ------
    ValueError
        If the name is not a Strategy value.
    """
    return _STRATEGIES[_coerce_strategy(strategy)]()


# ============================================================================ #
# Functional interface
# ============================================================================ #


def solve_nnls(
    d: np.ndarray,
    params: Optional[NNLSParams] = None,
    x0: Optional[np.ndarray] = None,
    backend: str = "best",
    cancel: Optional[threading.Event] = None,
) -> NNLSResult:
    """
    Non-negative circular split weights for distances in cycle order.

    Parameters
    ----------
    d : np.ndarray
        Symmetric (n, n) distances, already permuted into cycle-position
        order.
    params : NNLSParams or None
        Solver parameters; defaults to NNLSParams().
    x0 : np.ndarray or None
        Feasible starting weights.  Defaults to all-ones off the diagonal.
    backend : str, default 'best'
        Operator backend, see CircularOperator.
    cancel : threading.Event or None
        Cooperative cancellation flag.

    Returns
    -------
    NNLSResult

    Examples
    --------
    >>> res = solve_nnls(d_in_cycle_order, NNLSParams(strategy='active-set'))
    >>> res.converged, res.x.min() >= 0
    (True, True)
    """
    if params is None:
        params = NNLSParams()
    d = np.asarray(d, dtype=np.float64)
    n = d.shape[0]
    operator = CircularOperator(n, backend)
    problem = NNLSProblem(operator, d, params.regularization)

    if x0 is None:
        x0 = np.ones((n, n), dtype=np.float64)
        np.fill_diagonal(x0, 0.0)
    elif np.shape(x0) != (n, n):
        raise ValueError(f"x0 must have shape ({n}, {n}), got {np.shape(x0)}")

    return get_strategy(params.strategy).minimize(problem, x0, params, cancel)
