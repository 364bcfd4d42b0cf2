"""
circnet
=======

NeighborNet split networks from distance matrices.

*circnet* computes a circular ordering of the taxa by NeighborNet
agglomeration, then fits non-negative least-squares weights to every split
that is an arc of that ordering.  The circular split operator and its
adjoint and inverse run in O(n^2) without forming a matrix, with numba
parallel kernels when numba is installed.

Main Functions
--------------
neighbor_net : Ordering + split weights, returns a SplitNetwork
neighbor_net_cycle : Circular ordering only
split_weights : Split weights for a given ordering
solve_nnls : Raw NNLS solve on distances in cycle order
incremental_fitting : Fast feasible warm start

Main Classes
------------
DistanceMatrix : Validated symmetric distances
ASplit : A weighted bipartition of the taxa
SplitNetwork : Result of neighbor_net
NNLSParams : Solver configuration
CircularOperator : The circular split operator for n taxa

Context Managers
----------------
quiet : Suppress logging during operations
suppress_logger : Suppress specific logger
suppress_warnings : Suppress specific warnings
use_backend : Force specific computational backend
num_threads : Temporarily set the numba thread count
silent_benchmark : Combine quiet + backend selection + warning suppression

Backend Information
-------------------
get_available_backends : Query available computational backends
get_backend_info : Get comprehensive backend status
check_numba_available : Check if numba is available

Examples
--------
Basic usage:

>>> from circnet import neighbor_net
>>> d = [[0, 2, 4, 4], [2, 0, 4, 4], [4, 4, 0, 2], [4, 4, 2, 0]]
>>> net = neighbor_net(d, labels=['A', 'B', 'C', 'D'])
>>> len(net.splits), round(net.fit, 6)
(5, 100.0)

Choosing a solver:

>>> from circnet import NNLSParams
>>> net = neighbor_net(d, params=NNLSParams(strategy='block-pivot'))

With context managers:

>>> from circnet import quiet, use_backend
>>> with quiet(), use_backend('python'):
...     net = neighbor_net(d)
"""

__version__ = "0.1.0"

# Main functions
from ._network import SplitNetwork, neighbor_net, split_weights
from ._ordering import ORDERING_METHODS, neighbor_net_cycle
from ._solver import NNLSParams, NNLSResult, Strategy, get_strategy, solve_nnls
from ._incremental import incremental_fitting

# Data types
from ._distances import DistanceMatrix
from ._splits import (
    ASplit,
    extract_splits,
    splits_to_distances,
    least_squares_fit,
    normalize_cycle,
    is_circular,
    total_weight,
)

# Circular operators
from ._operators import CircularOperator, calc_ax, calc_atx, calc_ainvx

# Errors
from ._exceptions import (
    DistanceMatrixError,
    ComputationCancelled,
    NNLSConvergenceWarning,
)

# Context managers (user-facing utilities)
from ._context import (
    suppress_logger,
    quiet,
    suppress_warnings,
    use_backend,
    num_threads,
    silent_benchmark,
)

# Backend information (useful for checking capabilities)
from ._backend import (
    get_available_backends,
    get_backend_info,
    check_numba_available,
)

# Public API
__all__ = [
    # Main functions
    "neighbor_net",
    "neighbor_net_cycle",
    "split_weights",
    "solve_nnls",
    "incremental_fitting",
    "get_strategy",
    "ORDERING_METHODS",
    # Main classes
    "DistanceMatrix",
    "ASplit",
    "SplitNetwork",
    "NNLSParams",
    "NNLSResult",
    "Strategy",
    "CircularOperator",
    # Circular operators
    "calc_ax",
    "calc_atx",
    "calc_ainvx",
    # Split utilities
    "extract_splits",
    "splits_to_distances",
    "least_squares_fit",
    "normalize_cycle",
    "is_circular",
    "total_weight",
    # Errors
    "DistanceMatrixError",
    "ComputationCancelled",
    "NNLSConvergenceWarning",
    # Context managers
    "suppress_logger",
    "quiet",
    "suppress_warnings",
    "use_backend",
    "num_threads",
    "silent_benchmark",
    # Backend information
    "get_available_backends",
    "get_backend_info",
    "check_numba_available",
    # Version info
    "__version__",
]
