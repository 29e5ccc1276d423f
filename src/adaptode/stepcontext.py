# stepcontext.py -----------------------------------------------------------
from dataclasses import dataclass, field

import torch


@dataclass
class StepContext:
    """Integration state shared between the solver loop and the drivers."""
    ndim:    int

    # step geometry
    h:       float = 0.0
    h_new:   float = 0.0          # proposal of the current trial
    h_max:   float = float("inf")
    first:   bool  = True         # no step accepted yet
    last:    bool  = False        # this trial lands on xf
    reject:  bool  = False        # previous attempt was rejected

    # error control
    rerr:    float = 0.0          # scaled error of the current trial

    # Newton outcome of the current trial
    diverged: bool  = False       # corrector failed: retry with h·dvfac
    dvfac:    float = 0.0
    newt:     int   = 0           # iterations used
    theta:    float = 0.0         # contraction estimate

    # buffers
    scal:     torch.Tensor = field(default=None)   # atol + rtol·|y|
    f0:       torch.Tensor = field(default=None)   # f(x, y) at the step start
    f0_valid: bool = False

    def __post_init__(self):
        if self.scal is None:
            self.scal = torch.zeros(self.ndim, dtype=torch.float64)
        if self.f0 is None:
            self.f0 = torch.zeros(self.ndim, dtype=torch.float64)

    def reset(self, h: float, h_max: float) -> None:
        self.h, self.h_new, self.h_max = h, h, h_max
        self.first, self.last, self.reject = True, False, False
        self.rerr = 0.0
        self.diverged, self.dvfac, self.newt, self.theta = False, 0.0, 0, 0.0
        self.f0_valid = False


# --------------------------------------------------------------------------- #
class MethodDriver:
    """Protocol shared by all integration formulas.

    The solver loop calls ``step`` for every attempt, then either ``accept``
    followed by ``next_step_size`` or one of ``reject``/``newton_failed``.
    Drivers report through ``work`` (``rerr``, ``h_new``, ``diverged``…).
    """

    landing  = 1.0         # land on xf when x + landing·h_new ≥ xf
    fsal     = False

    def __init__(self, problem, conf, stat, work: StepContext, mass=None):
        self.problem = problem
        self.conf    = conf
        self.stat    = stat
        self.work    = work
        self.mass    = mass
        self.fixed   = conf.fixed

    def start(self, x: float, y: torch.Tensor) -> None:
        pass

    def step(self, x: float, y: torch.Tensor) -> None:
        raise NotImplementedError

    def accept(self, x: float, y: torch.Tensor, x_new: float):
        """Commit the trial into ``y``; returns the dense block or None."""
        raise NotImplementedError

    def next_step_size(self, x: float, h: float, xf: float):
        """(h, last) for the step after an accepted one."""
        work  = self.work
        h_new = min(work.h_new, work.h_max)
        if work.reject:
            h_new = min(h_new, h)
        if x + self.landing * h_new >= xf:
            return xf - x, True
        return h_new, False

    def reject(self, x: float, h: float, xf: float):
        """(h, last) after an error-test rejection."""
        return self.work.h_new, False

    def newton_failed(self, h: float) -> float:
        return h * self.work.dvfac

    def free(self) -> None:
        pass
