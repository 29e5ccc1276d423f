# solver.py ----------------------------------------------------------------
"""
Integration loop shared by all methods.

``Solver(problem, conf)`` owns the workspace, the statistics and the output
of its integrations; ``solve(y0, x0, xf)`` runs either the fixed-step loop
(no error control) or the adaptive accept/reject loop and returns the final
state together with a copy of the counters.  Drivers are looked up in
``DRIVERS`` by ``Method``.
"""
import logging
import math
from typing import Optional

import torch

from .config import Config, Method
from .controller import accept
from .dense import DenseCursor
from .erk import DoPri5, ModEuler
from .euler import BwEuler, FwEuler
from .exceptions import ConfigurationError, OdeError, StepBudgetError, StepSizeError
from .linsolve import as_operator
from .norms import scaling
from .output import Output
from .radau_driver import Radau5
from .stat import Stat
from .stepcontext import StepContext

logger = logging.getLogger(__name__)

DRIVERS = {
    Method.FWEULER: FwEuler,
    Method.BWEULER: BwEuler,
    Method.MOEULER: ModEuler,
    Method.DOPRI5:  DoPri5,
    Method.RADAU5:  Radau5,
}


class Solver:
    """ODE solver for  M·y′ = f(x, y).

    Parameters
    ----------
    problem : Problem
        ``ndim``, ``fcn(f, x, y)`` and optionally ``jac``, ``mass``,
        ``sparse``; ``y0``, ``x0``, ``xf`` serve as defaults for ``solve``.
    conf : Config, optional
        Defaults to ``Config()`` (Radau5, atol = rtol = 1e-4).

    Use as a context manager (or call ``free``) to release factorizations.
    """

    def __init__(self, problem, conf: Optional[Config] = None):
        self.problem = problem
        self.conf    = conf if conf is not None else Config()
        self.conf.validate()
        self.ndim    = int(problem.ndim)
        if self.ndim < 1:
            raise ConfigurationError(f"ndim must be positive (got {problem.ndim})")
        self.mass    = self._mass_operator()
        self.stat    = Stat()
        self.work    = StepContext(self.ndim)
        self.out     = Output(self.ndim, step_out=self.conf.step_out,
                              dense_on=self.conf.dense)
        self.driver  = None

    def _mass_operator(self):
        mass = getattr(self.problem, "mass", None)
        if mass is None:
            return None
        if not self.conf.method.implicit:
            raise ConfigurationError(
                f"{self.conf.method.value} cannot handle a mass matrix; "
                "use bweuler or radau5")
        try:
            return as_operator(mass, self.ndim)
        except ValueError as exc:
            raise ConfigurationError(f"invalid mass matrix: {exc}") from exc

    # ---- resources -----------------------------------------------------------
    def free(self) -> None:
        if self.driver is not None:
            self.driver.free()

    def __enter__(self) -> "Solver":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.free()
        return False

    # ---- driver --------------------------------------------------------------
    def _setup(self) -> None:
        conf = self.conf
        conf.validate()
        self.free()
        self.out.step_out = conf.step_out
        self.out.dense_on = conf.dense
        self.driver = DRIVERS[conf.method](self.problem, conf, self.stat,
                                           self.work, self.mass)

    # ---- main entry ----------------------------------------------------------
    def solve(self, y0=None, x0: Optional[float] = None,
              xf: Optional[float] = None):
        """Integrate from x0 to xf; returns (y(xf), stat).

        Defaults come from the problem.  ``y0`` is not modified.
        """
        p = self.problem
        y0 = getattr(p, "y0", None) if y0 is None else y0
        x0 = getattr(p, "x0", 0.0) if x0 is None else x0
        xf = getattr(p, "xf", None) if xf is None else xf
        if y0 is None or xf is None:
            raise ConfigurationError("solve needs y0 and xf (none given by the problem)")
        y = torch.as_tensor(y0, dtype=torch.float64).clone().reshape(-1)
        if y.numel() != self.ndim:
            raise ConfigurationError(
                f"y0 has {y.numel()} components but the problem has ndim={self.ndim}")
        x0, xf = float(x0), float(xf)
        if not (xf > x0):
            raise ConfigurationError(f"need x0 < xf (got x0={x0:g}, xf={xf:g})")

        self._setup()
        conf, work = self.conf, self.work
        self.stat.reset()
        self.out.reset()
        h_max = conf.h_max if conf.h_max is not None else xf - x0
        work.reset(min(conf.ini_h, h_max), h_max)

        try:
            self.driver.start(x0, y)
            self.out.push_step(x0, y, 0.0)
            stop = bool(conf.step_fn(0, 0.0, x0, y.clone())) if conf.step_fn else False
            if not stop:
                if conf.fixed:
                    x = self._solve_fixed(x0, xf, y)
                else:
                    x = self._solve_variable(x0, xf, y)
            else:
                x = x0
        except OdeError as exc:
            if exc.stat is None:
                exc.stat = self.stat.copy()
            raise

        logger.info("%s: x=%g reached; %d steps (%d accepted, %d rejected), "
                    "%d f-evaluations", conf.method.value, x, self.stat.nsteps,
                    self.stat.naccepted, self.stat.nrejected, self.stat.nfeval)
        return y.clone(), self.stat.copy()

    # ---- fixed steps -----------------------------------------------------------
    def _solve_fixed(self, x0: float, xf: float, y: torch.Tensor) -> float:
        conf, work, stat, drv = self.conf, self.work, self.stat, self.driver
        n = max(1, math.ceil((xf - x0) / conf.fixed_dx - 1e-10))
        h = (xf - x0) / n
        work.h = h
        x = x0
        for k in range(n):
            stat.nsteps += 1
            if stat.nsteps > conf.max_steps:
                raise StepBudgetError(
                    f"number of steps exceeds max_steps={conf.max_steps}", stat.copy())
            scaling(work.scal, y, conf.atol_int, conf.rtol_int)
            work.last = k == n - 1
            drv.step(x, y)
            x_new = xf if work.last else x0 + (k + 1) * h
            drv.accept(x, y, x_new)
            x = x_new
            self.out.push_step(x, y, h)
            if conf.step_fn and conf.step_fn(k + 1, h, x, y.clone()):
                logger.debug("stopped by the step callback at x=%g", x)
                break
        return x

    # ---- adaptive steps --------------------------------------------------------
    def _solve_variable(self, x: float, xf: float, y: torch.Tensor) -> float:
        conf, work, stat, drv = self.conf, self.work, self.stat, self.driver
        out = self.out

        h, last = work.h, False
        if x + drv.landing * h >= xf:
            h, last = xf - x, True

        self.problem.fcn(work.f0, x, y)
        stat.nfeval += 1
        work.f0_valid = True

        cursor = None
        if conf.dense:
            out.dense.start(x, y)
            if conf.dense_dx is not None:
                cursor = DenseCursor(x, xf, conf.dense_dx)
                if self._emit_dense([cursor.first(y)], 0.0, x, y):
                    return x

        while True:
            stat.nsteps += 1
            if stat.nsteps > conf.max_steps:
                raise StepBudgetError(
                    f"number of steps exceeds max_steps={conf.max_steps} "
                    f"at x={x:g}", stat.copy())
            if 0.1 * abs(h) <= abs(x) * conf.eps or (h < conf.h_min and not last):
                raise StepSizeError(
                    f"step size too small at x={x:g}: h={h:g} (h_min={conf.h_min:g})",
                    stat.copy())

            scaling(work.scal, y, conf.atol_int, conf.rtol_int)
            work.h, work.last = h, last
            drv.step(x, y)

            # --- Newton failure: shrink and retry -----------------------------
            if work.diverged:
                h = drv.newton_failed(h)
                work.reject, last = True, False
                logger.debug("x=%.6e  Newton failed (Θ=%.3e); retry with h=%.3e",
                             x, work.theta, h)
                continue

            # --- accepted -----------------------------------------------------
            if accept(work.rerr):
                stat.naccepted += 1
                x_new = xf if last else x + h
                block = drv.accept(x, y, x_new)
                work.first = False
                out.push_step(x_new, y, h)
                logger.debug("x=%.6e  accepted h=%.3e  err=%.3e", x_new, h, work.rerr)

                stop = False
                if block is not None:
                    out.dense.push(block)
                    if cursor is not None:
                        stop = self._emit_dense(
                            cursor.advance(stat.naccepted, block, last), h, x_new, y)
                if conf.step_fn and conf.step_fn(stat.naccepted, h, x_new, y.clone()):
                    stop = True
                x = x_new
                if last:
                    break
                if stop:
                    logger.debug("stopped by an output callback at x=%g", x)
                    break
                h, last = drv.next_step_size(x, h, xf)
                work.reject = False

            # --- rejected -----------------------------------------------------
            else:
                if stat.naccepted >= 1:
                    stat.nrejected += 1
                h_old = h
                h, last = drv.reject(x, h, xf)
                work.reject = True
                logger.debug("x=%.6e  rejected h=%.3e  err=%.3e; retry with h=%.3e",
                             x, h_old, work.rerr, h)
        return x

    def _emit_dense(self, rows, h: float, x: float, y: torch.Tensor) -> bool:
        stop = False
        fn = self.conf.dense_fn
        for istep, xo, yo in rows:
            self.out.push_dense(istep, xo, yo)
            if fn is not None and fn(istep, h, x, y.clone(), xo, yo.clone()):
                stop = True
        return stop
