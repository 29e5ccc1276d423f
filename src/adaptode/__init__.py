# adaptode -----------------------------------------------------------------
"""Adaptive ODE / DAE integration (Euler, explicit RK, Radau IIA) on torch."""
from .config import Config, Method
from .dense import DenseOutput
from .exceptions import (ConfigurationError, DivergenceError, LinearSolverError,
                         NewtonConvergenceError, OdeError, StepBudgetError,
                         StepSizeError)
from .jacobian import RowPartitionedJacobian, compare_jacobians, numerical_jacobian
from .linsolve import LinSolver, Triplet
from .log_config import setup_logging
from .nlsolver import NlSolver
from .output import Output
from .problems import (Problem, arenstorf, hw_amplifier, hw_eq11, robertson,
                       van_der_pol)
from .solver import DRIVERS, Solver
from .stat import Stat

__version__ = "0.1.0"

__all__ = [
    "Config", "Method", "Solver", "DRIVERS", "Stat", "Output", "DenseOutput",
    "Problem", "hw_eq11", "van_der_pol", "robertson", "arenstorf", "hw_amplifier",
    "NlSolver", "LinSolver", "Triplet", "RowPartitionedJacobian",
    "numerical_jacobian", "compare_jacobians", "setup_logging",
    "OdeError", "ConfigurationError", "NewtonConvergenceError", "DivergenceError",
    "StepBudgetError", "StepSizeError", "LinearSolverError",
]
