# euler.py -----------------------------------------------------------------
"""
First-order fixed-step formulas.

    FwEuler :  y₁ = y₀ + h·f(x₀, y₀)
    BwEuler :  M(y₁ − y₀) = h·f(x₀ + h, y₁)     (Newton, see ``newton``)
"""
import torch

from .exceptions import NewtonConvergenceError
from .newton import OneStageCorrector
from .stepcontext import MethodDriver


class FwEuler(MethodDriver):

    def __init__(self, problem, conf, stat, work, mass=None):
        super().__init__(problem, conf, stat, work, mass)
        n = problem.ndim
        self.f     = torch.zeros(n, dtype=torch.float64)
        self.y_new = torch.zeros(n, dtype=torch.float64)

    def step(self, x, y):
        self.problem.fcn(self.f, x, y)
        self.stat.nfeval += 1
        torch.add(y, self.f, alpha=self.work.h, out=self.y_new)

    def accept(self, x, y, x_new):
        y.copy_(self.y_new)
        return None


class BwEuler(MethodDriver):

    def __init__(self, problem, conf, stat, work, mass=None):
        super().__init__(problem, conf, stat, work, mass)
        self.corrector = OneStageCorrector(problem, conf, stat, mass)
        self.y_new     = torch.zeros(problem.ndim, dtype=torch.float64)

    def start(self, x, y):
        self.corrector.start()

    def free(self):
        self.corrector.free()

    def step(self, x, y):
        h = self.work.h
        self.y_new.copy_(y)                       # initial guess
        res = self.corrector.solve(self.y_new, y, x + h, h, self.work.scal)
        self.work.newt, self.work.theta = res.iterations, res.theta
        if not res.converged:
            raise NewtonConvergenceError(
                f"bweuler: Newton iterations did not converge after "
                f"{res.iterations} iterations at x={x + h:g} (Ldx={res.ldx:.4g})",
                self.stat.copy(), iterations=res.iterations)

    def accept(self, x, y, x_new):
        y.copy_(self.y_new)
        return None
