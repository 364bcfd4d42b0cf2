"""
_exceptions.py
==============
Exception and warning types raised by circnet.

Precondition violations on the input are caller bugs and raise
DistanceMatrixError.  Running out of iterations is not an error: the solver
returns its best iterate and issues NNLSConvergenceWarning.  Cancellation is a
separate signal so that callers never mistake a cancelled run for a result.
"""


class DistanceMatrixError(ValueError):
    """Raised when a distance matrix fails validation."""


class ComputationCancelled(Exception):
    """
    Raised when a cooperative cancellation flag is set during a computation.

    Any partial state (weight matrices, active sets, join stacks) belongs to
    the interrupted call and must be discarded by the caller.
    """


class NNLSConvergenceWarning(RuntimeWarning):
    """Issued when a solver strategy exhausts its outer-iteration cap."""
