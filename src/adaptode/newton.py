# newton.py ----------------------------------------------------------------
"""
Full Newton corrector for a one-stage implicit formula

    r(y) = M·(y − y0) − h·f(x1, y) = 0 ,    ∂r/∂y = M − h·J

used by backward Euler.  ``newton="exact"`` refreshes J and the
factorization every iteration, ``"modified"`` once per step; with
``cte_jac`` J is evaluated once per solve and the factorization is kept while
h does not change.
"""
import logging
import math
from dataclasses import dataclass

import numpy as np
import scipy.sparse as sp
import torch

from .exceptions import DivergenceError
from .jacobian import JacobianEvaluator
from .line_search import line_search
from .linsolve import LinSolver, mass_times, shifted_matrix
from .norms import rms_norm

logger = logging.getLogger(__name__)

THETA_DIVERGE = 0.99


@dataclass
class NewtonResult:
    converged:  bool       # tolerance met
    iterations: int        # iterations started
    ldx:        float      # last scaled increment
    theta:      float      # last contraction estimate


def newton_tolerance(rtol: float, eps: float) -> float:
    """fnewt = max(10·eps/rtol, min(0.03, sqrt(rtol)))."""
    return max(10.0 * eps / rtol, min(0.03, math.sqrt(rtol)))


class OneStageCorrector:
    """Newton iteration of  M(y − y0) = h·f(x1, y)  with counters on ``stat``."""

    def __init__(self, problem, conf, stat, mass=None):
        n = problem.ndim
        self.problem = problem
        self.conf    = conf
        self.stat    = stat
        self.mass    = mass                     # torch / scipy / None
        self.jac     = JacobianEvaluator(problem, stat, eps=conf.eps, nworkers=conf.distr)
        self.lsolver = LinSolver("I - hJ")
        self.f       = torch.zeros(n, dtype=torch.float64)
        self.r       = torch.zeros(n, dtype=torch.float64)
        self.K       = None                     # M − hJ of the current factorization
        self._h_fact = None
        self._have_jac = False

    def start(self) -> None:
        self.lsolver.free()
        self.K, self._h_fact, self._have_jac = None, None, False

    def free(self) -> None:
        self.lsolver.free()

    # ------------------------------------------------------------------ #
    def _residual(self, out: torch.Tensor, y: torch.Tensor, y0: torch.Tensor,
                  x1: float, h: float) -> torch.Tensor:
        self.problem.fcn(self.f, x1, y)
        self.stat.nfeval += 1
        out.copy_(mass_times(self.mass, y - y0) - h * self.f)
        return out

    def _factorize(self, h: float) -> None:
        self.K = shifted_matrix(1.0, h * self.jac.op, self.mass)   # M − hJ
        self.lsolver.fact(self.K)
        self._h_fact = h
        self.stat.ndecomp += 1

    def _gradient(self, r: torch.Tensor) -> torch.Tensor:
        """∇φ = Kᵀ r  for φ = ½‖r‖²."""
        if sp.issparse(self.K):
            return torch.from_numpy(np.asarray(self.K.T @ r.numpy()))
        return self.K.T @ r

    # ------------------------------------------------------------------ #
    def solve(self, y: torch.Tensor, y0: torch.Tensor, x1: float, h: float,
              scal: torch.Tensor) -> NewtonResult:
        """Iterate y (in place, initial guess on entry) to convergence."""
        conf, stat = self.conf, self.stat
        fnewt = conf.fnewt
        ldx, ldx_prev, theta = 0.0, 0.0, 0.0

        for it in range(conf.max_it):
            stat.update_nitmax(it + 1)
            self._residual(self.r, y, y0, x1, h)
            if rms_norm(self.r, scal) < fnewt:
                return NewtonResult(True, it + 1, ldx, theta)

            # Jacobian and factorization
            if conf.cte_jac:
                need_jac = not self._have_jac
            else:
                need_jac = it == 0 or conf.newton == "exact"
            if need_jac:
                self.jac.evaluate(x1, y, self.f)
                self._have_jac = True
            if need_jac or self._h_fact != h or not self.lsolver.ready:
                self._factorize(h)

            dy = self.lsolver.solve(self.r)
            stat.nlinsol += 1

            if conf.line_search:
                def phi(yt):
                    rt = self._residual(torch.empty_like(self.r), yt, y0, x1, h)
                    return 0.5 * float(torch.dot(rt, rt)), rt
                phi0 = 0.5 * float(torch.dot(self.r, self.r))
                y_new, *_ = line_search(
                    y, phi0, self._gradient(self.r), -dy, phi,
                    max_it=conf.line_search_max_it)
                dy = (y - y_new)
                y.copy_(y_new)
            else:
                y.sub_(dy)

            ldx = rms_norm(dy, scal)
            if it > 0:
                theta = ldx / ldx_prev
                if theta > THETA_DIVERGE:
                    raise DivergenceError(
                        f"Newton iterations diverging at x={x1:g}: "
                        f"Θ={theta:.4g} (Ldx={ldx:.4g}, previous {ldx_prev:.4g})",
                        stat.copy(), theta=theta, ldx=ldx, ldx_prev=ldx_prev)
                if ldx < fnewt:
                    return NewtonResult(True, it + 1, ldx, theta)
            ldx_prev = max(ldx, conf.eps)
            logger.debug("newton it=%d  Ldx=%.3e  Θ=%.3e", it, ldx, theta)

        return NewtonResult(False, conf.max_it, ldx, theta)
