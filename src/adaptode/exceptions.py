# exceptions.py ------------------------------------------------------------
"""
Error taxonomy of the integrator.

Every fatal error carries the statistics gathered up to the failure point in
``stat`` (``None`` when raised before any stepping, e.g. bad configuration).
"""


class OdeError(Exception):
    """Base exception for adaptode errors.

    Parameters
    ----------
    message : str
        The error message.
    stat : Stat, optional
        Counters collected before the failure.
    """

    def __init__(self, message: str, stat=None):
        super().__init__(message)
        self.stat = stat


class ConfigurationError(OdeError):
    """Raised for unknown/invalid options or mismatched problem data."""


class NewtonConvergenceError(OdeError):
    """Raised when a Newton iteration exhausts its budget and the caller
    cannot recover by shrinking the step (fixed step, root finding)."""

    def __init__(self, message: str, stat=None, iterations: int = 0):
        super().__init__(message, stat)
        self.iterations = iterations


class DivergenceError(OdeError):
    """Raised when the contraction ratio Θ = Ldx_k/Ldx_{k-1} exceeds 0.99."""

    def __init__(self, message: str, stat=None, *, theta: float = 0.0,
                 ldx: float = 0.0, ldx_prev: float = 0.0):
        super().__init__(message, stat)
        self.theta    = theta
        self.ldx      = ldx
        self.ldx_prev = ldx_prev


class StepBudgetError(OdeError):
    """Raised when the number of step attempts exceeds ``max_steps``."""


class StepSizeError(OdeError):
    """Raised when the step size underflows."""


class LinearSolverError(OdeError):
    """Raised when a factorization fails (singular matrix)."""
