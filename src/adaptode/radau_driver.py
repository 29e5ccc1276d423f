# radau_driver.py ----------------------------------------------------------
"""
Radau IIA of order 5 (Hairer & Wanner's RADAU5) as a method driver.

The Jacobian and the two factorizations

    E1 = u1/h·M − J ,      E2 = (α + iβ)/h·M − J

are kept between steps: after an accepted step J is re-evaluated only when
the Newton contraction Θ exceeded ``theta_max``, and E1/E2 are kept when
moreover the proposed step ratio lies in [c1h, c2h].  After a rejection or a
Newton failure J is recomputed unless it was already evaluated since the last
accepted step.
"""
import logging

import torch

from .controller import gustafsson, radau_propose
from .dense import RadauBlock
from .estrad import estrad
from .exceptions import NewtonConvergenceError
from .interp_radau import radau_cont
from .jacobian import JacobianEvaluator
from .linsolve import LinSolver, shifted_matrix
from .radau_tables import ALPH, BETA, C1, C1M1, C2, C2M1, U1, coertv3
from .simplified_newton import simplified_newton
from .stepcontext import MethodDriver

logger = logging.getLogger(__name__)


class Radau5(MethodDriver):

    landing = 1.0001       # first step only; later steps land via c1h

    def __init__(self, problem, conf, stat, work, mass=None):
        super().__init__(problem, conf, stat, work, mass)
        n = problem.ndim
        self.T, self.TI, *_ = coertv3()
        self.jac  = JacobianEvaluator(problem, stat, eps=conf.eps, nworkers=conf.distr)
        self.e1   = LinSolver("E1 = u1/h·M - J")
        self.e2   = LinSolver("E2 = (α+iβ)/h·M - J")
        self.z    = torch.zeros(n, 3, dtype=torch.float64)
        self.w    = torch.zeros(n, 3, dtype=torch.float64)
        self.cont = torch.zeros(n, 3, dtype=torch.float64)
        self._reset_flags()

    def _reset_flags(self) -> None:
        self.need_jac    = True
        self.need_decomp = True
        self.caljac      = False      # J evaluated since the last accepted step
        self.have_jac    = False
        self.faccon      = 1.0
        self.quot        = 1.0
        self.h_old       = 0.0        # last accepted step
        self.h_acc       = 0.0        # Gustafsson memory
        self.err_acc     = 1e-2
        self._h_fact     = None

    def start(self, x, y):
        self.free()
        self.z.zero_(); self.w.zero_(); self.cont.zero_()
        self._reset_flags()

    def free(self):
        self.e1.free()
        self.e2.free()

    # ------------------------------------------------------------------ #
    def _jacobian(self, x, y):
        work = self.work
        if self.jac.jac_fn is None and not work.f0_valid:
            self.problem.fcn(work.f0, x, y)
            self.stat.nfeval += 1
            work.f0_valid = True
        self.jac.evaluate(x, y, work.f0)
        self.caljac = self.have_jac = True
        self.need_decomp = True

    def _decompose(self, h):
        J = self.jac.op
        self.e1.fact(shifted_matrix(U1 / h, J, self.mass))
        self.e2.fact(shifted_matrix(complex(ALPH / h, BETA / h), J, self.mass))
        self.stat.ndecomp += 1
        self._h_fact, self.need_decomp = h, False
        logger.debug("radau5: factorized E1/E2 with h=%.6e", h)

    def _start_values(self):
        """Extrapolate the previous collocation polynomial to the new stages."""
        work, z, w = self.work, self.z, self.w
        if work.first or self.conf.zero_trial:
            z.zero_()
            w.zero_()
            return
        c3q = work.h / self.h_old
        ak1, ak2, ak3 = self.cont[:, 0], self.cont[:, 1], self.cont[:, 2]
        for q, cq in enumerate((C1 * c3q, C2 * c3q, c3q)):
            z[:, q] = cq * (ak1 + (cq - C2M1) * (ak2 + (cq - C1M1) * ak3))
        w.copy_(z @ self.TI.T)

    # ------------------------------------------------------------------ #
    def step(self, x, y):
        conf, work, stat = self.conf, self.work, self.stat
        h = work.h

        if self.need_jac and not (conf.cte_jac and self.have_jac):
            self._jacobian(x, y)
        self.need_jac = False
        if self.need_decomp or self._h_fact != h or not self.e1.ready:
            self._decompose(h)

        self._start_values()
        res = simplified_newton(
            self.problem.fcn, x, y, h, self.z, self.w,
            T=self.T, TI=self.TI, e1=self.e1, e2=self.e2, mass=self.mass,
            scal=work.scal, fnewt=conf.fnewt, faccon=self.faccon,
            theta0=conf.theta_max, nit=conf.max_it, eps=conf.eps, stat=stat)
        self.faccon = res.faccon
        work.newt, work.theta = res.newt, res.theta

        if not res.converged:
            if self.fixed:
                raise NewtonConvergenceError(
                    f"radau5: Newton iterations did not converge at x={x:g} "
                    f"with fixed h={h:g} (Θ={res.theta:.4g})",
                    stat.copy(), iterations=res.newt)
            work.diverged, work.dvfac = True, res.dvfac
            return
        work.diverged = False

        if self.fixed:
            work.rerr = 0.0
            return

        work.rerr = estrad(self.z, h, self.e1, self.mass, work.scal, work.f0,
                           first=work.first, reject=work.reject, stat=stat,
                           fcn=self.problem.fcn, x=x, y=y)
        work.h_new, self.quot = radau_propose(
            h, work.rerr, res.newt, nit=conf.max_it, safe=conf.safe,
            facmin=conf.facmin, facmax=conf.facmax)

    def accept(self, x, y, x_new):
        conf, work, stat = self.conf, self.work, self.stat
        h = work.h
        if not self.fixed and conf.pred_ctrl:
            if stat.naccepted > 1:
                work.h_new = gustafsson(
                    h, self.quot, work.rerr, self.h_acc, self.err_acc,
                    safe=conf.safe, facmin=conf.facmin, facmax=conf.facmax)
            self.h_acc   = h
            self.err_acc = max(1e-2, work.rerr)

        y += self.z[:, 2]
        radau_cont(self.cont, self.z)
        self.h_old  = h
        self.caljac = False

        if self.fixed:
            self.need_jac = not conf.cte_jac
            work.f0_valid = False
        elif not work.last:
            self.problem.fcn(work.f0, x_new, y)
            stat.nfeval += 1
            work.f0_valid = True

        if conf.dense:
            return RadauBlock(x_new, h, y.clone(), self.cont.clone())
        return None

    # ------------------------------------------------------------------ #
    def next_step_size(self, x, h, xf):
        conf, work = self.conf, self.work
        h_new = min(work.h_new, work.h_max)
        if work.reject:
            h_new = min(h_new, h)
        theta_ok = work.theta <= conf.theta_max

        if x + h_new / conf.c1h >= xf:
            h_next, last = xf - x, True
        else:
            qt = h_new / h
            if theta_ok and conf.c1h <= qt <= conf.c2h:
                return h, False                 # keep h, J and E1/E2
            h_next, last = h_new, False
        self.need_decomp = True
        self.need_jac    = not theta_ok
        return h_next, last

    def reject(self, x, h, xf):
        work = self.work
        h_new = h * self.conf.mfirst_rej if work.first else work.h_new
        self.need_decomp = True
        self.need_jac    = not self.caljac
        return h_new, False

    def newton_failed(self, h):
        self.need_decomp = True
        self.need_jac    = not self.caljac
        return h * self.work.dvfac
