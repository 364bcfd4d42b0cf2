"""
_network.py
===========
The NeighborNet pipeline: circular ordering, split weights, split system.

``neighbor_net`` runs the whole method on a distance matrix and returns a
SplitNetwork.  ``split_weights`` is the second half on its own, for callers
that already have a cycle.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from circnet._distances import as_distance_matrix
from circnet._incremental import incremental_fitting
from circnet._logging import log_split_summary
from circnet._operators import CircularOperator
from circnet._ordering import neighbor_net_cycle
from circnet._solver import (
    NNLSParams,
    NNLSProblem,
    Strategy,
    get_strategy,
)
from circnet._splits import (
    ASplit,
    extract_splits,
    least_squares_fit,
    splits_to_distances,
    total_weight,
)
from circnet._utils import validate_cycle


logger = logging.getLogger(__name__)


@dataclass
class SplitNetwork:
    """
    Result of a NeighborNet run.

    Attributes
    ----------
    cycle : np.ndarray
        int64 array of 1-based taxon ids in circular order.
    splits : list of ASplit
        Weighted circular splits, trivial splits included.
    labels : list of str
        Taxon names, indexed by taxon id - 1.
    converged : bool
        False if the weight solver hit its iteration cap.
    iterations : int
        Outer solver iterations (0 when the unconstrained fit was feasible).
    strategy : Strategy
    fit : float
        Least-squares fit percentage of the split distances to the input.
    """

    cycle: np.ndarray
    splits: List[ASplit]
    labels: List[str] = field(default_factory=list)
    converged: bool = True
    iterations: int = 0
    strategy: Strategy = Strategy.GRADIENT_PROJECTION
    fit: float = 0.0

    @property
    def ntax(self) -> int:
        return len(self.cycle)

    def __len__(self) -> int:
        return len(self.splits)

    @property
    def total_weight(self) -> float:
        return total_weight(self.splits)

    def nontrivial(self) -> List[ASplit]:
        """Splits with at least two taxa on each side."""
        return [s for s in self.splits if not s.is_trivial()]

    def distances(self) -> np.ndarray:
        """Distance matrix implied by the split system (taxon id - 1 indexing)."""
        return splits_to_distances(self.splits, self.ntax)

    def labelled_cycle(self) -> List[str]:
        return [self.labels[t - 1] for t in self.cycle]


def _fit_weights(d, cycle, params, backend, cancel):
    """Weights in cycle-position order, with the convergence details."""
    n = len(cycle)
    operator = CircularOperator(n, backend)
    logger.info(
        f"split_weights(strategy={params.strategy.value!r}, backend={operator.backend!r})"
    )

    x = operator.inverse(d)
    if params.regularization == 0.0 and x[np.triu_indices(n, 1)].min() >= -params.tolerance:
        logger.info("  unconstrained fit is feasible; no NNLS iterations needed")
        x = np.maximum(x, 0.0)
        np.fill_diagonal(x, 0.0)
        return x, True, 0

    if params.warm_start:
        x0 = incremental_fitting(d, params.tolerance / 100.0, cancel)
    else:
        x0 = np.ones((n, n), dtype=np.float64)
        np.fill_diagonal(x0, 0.0)

    problem = NNLSProblem(operator, d, params.regularization)
    result = get_strategy(params.strategy).minimize(problem, x0, params, cancel)
    return result.x, result.converged, result.iterations


def split_weights(
    distances,
    cycle: Sequence[int],
    params: Optional[NNLSParams] = None,
    backend: str = "best",
    cancel: Optional[threading.Event] = None,
) -> List[ASplit]:
    """
    Non-negative least-squares weights for the splits circular in ``cycle``.

    Parameters
    ----------
    distances : DistanceMatrix or array_like
        Symmetric (n, n) distances indexed by taxon id - 1.
    cycle : sequence of int
        Circular ordering of the taxa 1..n.
    params : NNLSParams or None
        Solver parameters; defaults to NNLSParams().
    backend : str, default 'best'
        Operator backend: 'python', 'cpu-parallel' or 'best'.
    cancel : threading.Event or None
        Cooperative cancellation flag.

    Returns
    -------
    list of ASplit
        Trivial splits always, non-trivial splits with weight above
        ``params.cutoff``.

    Raises
    ------
    DistanceMatrixError
        If the distances are invalid.
    ValueError
        If ``cycle`` is not a permutation of 1..n.
    ComputationCancelled
        If ``cancel`` is set.

    Warns
    -----
    NNLSConvergenceWarning
        If the solver hits its outer iteration cap.
    """
    splits, _, _ = _split_weights(distances, cycle, params, backend, cancel)
    return splits


def _split_weights(distances, cycle, params, backend, cancel):
    if params is None:
        params = NNLSParams()
    dm = as_distance_matrix(distances)
    cycle = validate_cycle(cycle, dm.ntax)
    n = dm.ntax

    if n == 1:
        return [], True, 0
    if n == 2:
        d = dm.get(1, 2)
        if d > 0:
            return [ASplit(frozenset({int(cycle[0])}), d, 2)], True, 0
        return [], True, 0

    x, converged, iterations = _fit_weights(
        dm.in_cycle_order(cycle), cycle, params, backend, cancel
    )
    return extract_splits(x, cycle, params.cutoff), converged, iterations


def neighbor_net(
    distances,
    ntax: Optional[int] = None,
    labels: Optional[Sequence[str]] = None,
    method: str = "agglomerative",
    params: Optional[NNLSParams] = None,
    backend: str = "best",
    cancel: Optional[threading.Event] = None,
) -> SplitNetwork:
    """
    Run NeighborNet on a distance matrix.

    Computes a circular ordering with ``neighbor_net_cycle``, fits
    non-negative weights to every split circular in it, and drops the
    non-trivial splits at or below the cutoff.

    Parameters
    ----------
    distances : DistanceMatrix or array_like
        Symmetric (n, n) non-negative distances with zero diagonal.
    ntax : int or None
        Expected number of taxa, checked against the matrix.
    labels : sequence of str or None
        Taxon names.  Defaults to the matrix's labels.
    method : {'agglomerative', 'components'}
        Ordering method.
    params : NNLSParams or None
        Solver parameters; defaults to NNLSParams().
    backend : str, default 'best'
        Operator backend.
    cancel : threading.Event or None
        Cooperative cancellation flag, checked between outer iterations of
        the ordering and the solver.

    Returns
    -------
    SplitNetwork

    Raises
    ------
    DistanceMatrixError
        If the input fails validation.
    ValueError
        If ``method`` or a parameter is invalid.
    ComputationCancelled
        If ``cancel`` is set before the run completes.

    Examples
    --------
    >>> d = [[0, 2, 4, 4], [2, 0, 4, 4], [4, 4, 0, 2], [4, 4, 2, 0]]
    >>> net = neighbor_net(d)
    >>> [str(s) for s in net.nontrivial()]
    ['3 4 | 1 2 (2)']
    """
    if params is None:
        params = NNLSParams()
    dm = as_distance_matrix(distances, ntax=ntax, labels=labels)
    dm.log_summary()

    cycle = neighbor_net_cycle(dm, method=method, cancel=cancel)
    splits, converged, iterations = _split_weights(dm, cycle, params, backend, cancel)

    fit = least_squares_fit(dm.values, splits)
    n_trivial = sum(1 for s in splits if s.is_trivial())
    log_split_summary(len(splits), n_trivial, total_weight(splits), fit)

    return SplitNetwork(
        cycle=cycle,
        splits=splits,
        labels=list(dm.labels),
        converged=converged,
        iterations=iterations,
        strategy=params.strategy,
        fit=fit,
    )
