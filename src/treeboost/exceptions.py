"""Exception types raised by the tree ensemble learners."""


class TreeEnsembleError(Exception):
    """Base class for all errors raised by treeboost."""


class ConfigurationError(TreeEnsembleError, ValueError):
    """
    Invalid settings or input data violating a learner precondition.

    Raised synchronously at the point of the offending computation, e.g. a
    loss function given target values it is not defined for, or a condition
    referring to a category index that does not exist.
    """


class CanceledExecutionError(TreeEnsembleError):
    """Raised when a running learner observes a cancellation request."""


class LearnerExecutionError(TreeEnsembleError, RuntimeError):
    """Wraps a failure of a worker thread; the original error is the __cause__."""
