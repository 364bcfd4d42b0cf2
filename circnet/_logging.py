"""
_logging.py
===========
Logging functions for circnet.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages.

This separation ensures:
- Logging can be easily disabled/mocked in tests
- Computation is separate from presentation
"""

import logging
from typing import List

import numpy as np


logger = logging.getLogger(__name__)


# ============================================================================ #
# System and Backend Logging (called at module import time)
# ============================================================================ #


def log_optimization_status(numba_available: bool) -> None:
    """
    Log system capabilities and optimization library availability at INFO level.

    Called once at module import time. Reports CPU count, memory, numba version
    (if available), LLVM info, and threading configuration.

    Parameters
    ----------
    numba_available : bool
        Whether numba was successfully imported.
    """
    import os
    import platform

    cpu_count = os.cpu_count() or 1
    logger.info(
        f"System: {platform.machine()} ({platform.system()}), "
        f"{cpu_count} CPU cores, Python {platform.python_version()}"
    )

    # Memory info (optional psutil)
    try:
        import psutil

        mem = psutil.virtual_memory()
        logger.info(
            f"Memory: {mem.total / (1024**3):.1f} GB total, "
            f"{mem.available / (1024**3):.1f} GB available"
        )
    except ImportError:
        pass  # psutil not required

    if numba_available:
        import numba

        logger.info(f"Numba {numba.__version__} loaded successfully")

        try:
            import llvmlite

            logger.info(f"LLVM backend: llvmlite {llvmlite.__version__}")
        except (ImportError, AttributeError):
            pass  # LLVM version unavailable

        # threading_layer() raises until a parallel kernel has run
        try:
            threading_layer = numba.threading_layer()
        except ValueError:
            threading_layer = "unselected"
        logger.info(
            f"Numba threading: {threading_layer} layer, "
            f"{numba.get_num_threads()} threads active"
        )

    else:
        logger.info("Numba not installed; circular operators will run as numpy")
        logger.info("Install numba for parallel operators: pip install numba")


def install_numba_warning_filter(numba_available: bool) -> None:
    """
    Capture NumbaPerformanceWarning and route it through our logger.

    numba issues performance warnings (e.g., "parallel=True but no prange found")
    via Python's warnings module. This filter intercepts them and logs them at
    WARNING level via our logger so they appear in the same stream as other
    circnet diagnostics.

    Parameters
    ----------
    numba_available : bool
        Whether numba was successfully imported.
    """
    import warnings

    if not numba_available:
        return

    try:
        from numba.core.errors import NumbaPerformanceWarning
    except ImportError:
        return  # NumbaPerformanceWarning not available in this numba version

    original_showwarning = warnings.showwarning

    def custom_showwarning(message, category, filename, lineno, file=None, line=None):
        if issubclass(category, NumbaPerformanceWarning):
            logger.warning(f"Numba performance issue: {message}")
            logger.warning(f"  at {filename}:{lineno}")
            return
        original_showwarning(message, category, filename, lineno, file, line)

    warnings.showwarning = custom_showwarning


def log_backend_availability(
    backends_available: List[str], numba_available: bool
) -> None:
    """
    Log which execution backends are available for the circular operators.

    Parameters
    ----------
    backends_available : List[str]
        List of available backends (e.g., ['python', 'cpu-parallel'])
    numba_available : bool
        Whether numba was successfully imported.
    """
    logger.info(f"Available backends: {', '.join(backends_available)}")

    if "cpu-parallel" in backends_available:
        logger.info("  cpu-parallel: LLVM-compiled parallel code (numba.njit + prange)")
    elif numba_available:
        logger.info("  cpu-parallel: unavailable (kernel module failed to import)")

    if "python" in backends_available:
        logger.info("  python: vectorized numpy reference implementation")

    best = backends_available[-1]  # Last in list is most optimized
    logger.info(f"Default backend='best' will use: {best}")


# ============================================================================ #
# Pipeline Logging (called during a NeighborNet run)
# ============================================================================ #


def log_distance_matrix_summary(
    ntax: int, max_distance: float, mean_distance: float, n_zero_pairs: int
) -> None:
    """
    Log a one-line summary of a validated distance matrix.

    Parameters
    ----------
    ntax : int
        Number of taxa.
    max_distance, mean_distance : float
        Statistics over the off-diagonal entries.
    n_zero_pairs : int
        Number of distinct taxon pairs at distance zero.
    """
    logger.info(
        "Distance matrix: %d taxa, max=%.6g, mean=%.6g",
        ntax,
        max_distance,
        mean_distance,
    )
    if n_zero_pairs > 0:
        logger.warning(
            "%d taxon pair(s) at distance zero; their split weights will be "
            "determined by the remaining taxa only.",
            n_zero_pairs,
        )


def log_cycle(cycle: np.ndarray, method: str) -> None:
    """Log the circular ordering produced by a NeighborNet ordering method."""
    if len(cycle) <= 20:
        logger.info("Circular ordering (%s): %s", method, " ".join(map(str, cycle)))
    else:
        head = " ".join(map(str, cycle[:10]))
        logger.info("Circular ordering (%s): %s ... (%d taxa)", method, head, len(cycle))


def log_solver_start(
    strategy: str, ntax: int, max_outer: int, tolerance: float, regularization: float
) -> None:
    """
    Log solver configuration at the start of a split-weight fit.

    Parameters
    ----------
    strategy : str
        Name of the NNLS strategy.
    ntax : int
        Number of taxa (the problem has ntax*(ntax-1)/2 unknowns).
    max_outer : int
        Resolved outer-iteration cap.
    tolerance : float
        Convergence tolerance on objective decrease.
    regularization : float
        Lasso fraction in [0, 1).
    """
    logger.info(
        "NNLS %s: %d taxa, %d weights, max %d outer iterations, tol=%.1e",
        strategy,
        ntax,
        ntax * (ntax - 1) // 2,
        max_outer,
        tolerance,
    )
    if regularization > 0:
        logger.info("  lasso regularization: %.3g of max gradient", regularization)


def solver_trace_enabled() -> bool:
    """Whether per-iteration solver diagnostics would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def log_solver_progress(
    strategy: str,
    iteration: int,
    residual_norm: float,
    pg_norm: float,
    n_nonzero: int,
) -> None:
    """
    Per-iteration solver trace at DEBUG level.

    Callers should check solver_trace_enabled() first, since the projected
    gradient norm costs an extra operator application.
    """
    logger.debug(
        "  %s iter %d: ||Ax-d||=%.10g, ||proj grad||=%.4g, %d non-zero weights",
        strategy,
        iteration,
        residual_norm,
        pg_norm,
        n_nonzero,
    )


def log_solver_finish(
    strategy: str, converged: bool, iterations: int, objective: float
) -> None:
    """Log the outcome of a completed solver run."""
    if converged:
        logger.info(
            "NNLS %s converged after %d iterations (f=%.10g)",
            strategy,
            iterations,
            objective,
        )


def log_convergence_failure(strategy: str, max_outer: int, objective: float) -> str:
    """
    Log that a strategy ran out of outer iterations.

    Returns the message so the caller can also issue it as a warning.
    """
    msg = (
        f"NNLS {strategy} did not converge within {max_outer} outer "
        f"iterations (f={objective:.10g}); returning the best iterate found"
    )
    logger.warning(msg)
    return msg


def log_split_summary(n_splits: int, n_trivial: int, total_weight: float, fit: float) -> None:
    """
    Log the split system extracted from a weight matrix.

    Parameters
    ----------
    n_splits : int
        Number of splits kept.
    n_trivial : int
        How many of them are trivial (one taxon on a side).
    total_weight : float
        Sum of the kept weights.
    fit : float
        Least-squares fit percentage.
    """
    logger.info(
        "Split network: %d splits (%d trivial, %d non-trivial), "
        "total weight %.6g, fit %.4f%%",
        n_splits,
        n_trivial,
        n_splits - n_trivial,
        total_weight,
        fit,
    )
