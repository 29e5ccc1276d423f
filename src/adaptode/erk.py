# erk.py -------------------------------------------------------------------
"""
Embedded explicit Runge–Kutta pairs.

    ModEuler : Euler predictor / Heun corrector, error = y₁ − ŷ₁, expo 1/2
    DoPri5   : Dormand–Prince 5(4), FSAL, expo 1/5, Shampine dense output

The first stage is evaluated by the driver on the first step and, for pairs
without FSAL, on every step after an acceptance; the solver's own initial
f(x0, y0) is not reused.  DoPri5 carries its last stage over (FSAL), so an
adaptive run costs 6·nsteps + 2 evaluations.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

import torch

from .controller import propose_lund, shrink_after_reject
from .dense import DopriBlock
from .norms import rms_error
from .stepcontext import MethodDriver


@dataclass(frozen=True)
class Tableau:
    name: str
    c:    Tuple[float, ...]
    a:    Tuple[Tuple[float, ...], ...]      # strictly lower rows, a[0] = ()
    b:    Tuple[float, ...]
    e:    Tuple[float, ...]                  # b − b̂ (error weights)
    expo: float                              # 1/(q̂ + 1)
    fsal: bool = False
    d:    Optional[Tuple[float, ...]] = None # dense-output weights


MOEULER = Tableau(
    name="moeuler",
    c=(0.0, 1.0),
    a=((), (1.0,)),
    b=(0.5, 0.5),
    e=(-0.5, 0.5),
    expo=0.5,
)

DOPRI5 = Tableau(
    name="dopri5",
    c=(0.0, 1.0 / 5.0, 3.0 / 10.0, 4.0 / 5.0, 8.0 / 9.0, 1.0, 1.0),
    a=((),
       (1.0 / 5.0,),
       (3.0 / 40.0, 9.0 / 40.0),
       (44.0 / 45.0, -56.0 / 15.0, 32.0 / 9.0),
       (19372.0 / 6561.0, -25360.0 / 2187.0, 64448.0 / 6561.0, -212.0 / 729.0),
       (9017.0 / 3168.0, -355.0 / 33.0, 46732.0 / 5247.0, 49.0 / 176.0,
        -5103.0 / 18656.0),
       (35.0 / 384.0, 0.0, 500.0 / 1113.0, 125.0 / 192.0, -2187.0 / 6784.0,
        11.0 / 84.0)),
    b=(35.0 / 384.0, 0.0, 500.0 / 1113.0, 125.0 / 192.0, -2187.0 / 6784.0,
       11.0 / 84.0, 0.0),
    e=(71.0 / 57600.0, 0.0, -71.0 / 16695.0, 71.0 / 1920.0,
       -17253.0 / 339200.0, 22.0 / 525.0, -1.0 / 40.0),
    expo=0.2,
    fsal=True,
    d=(-12715105075.0 / 11282082432.0, 0.0, 87487479700.0 / 32700410799.0,
       -10690763975.0 / 1880347072.0, 701980252875.0 / 199316789632.0,
       -1453857185.0 / 822651844.0, 69997945.0 / 29380423.0),
)


class ExplicitRK(MethodDriver):
    """Driver for an embedded pair given by a ``Tableau``."""

    tableau: Tableau = None
    landing = 1.01

    def __init__(self, problem, conf, stat, work, mass=None):
        super().__init__(problem, conf, stat, work, mass)
        tab = self.tableau
        s, n = len(tab.c), problem.ndim
        self.fsal  = tab.fsal
        self.A     = torch.zeros(s, s, dtype=torch.float64)
        for i, row in enumerate(tab.a):
            self.A[i, :len(row)] = torch.tensor(row, dtype=torch.float64)
        self.b     = torch.tensor(tab.b, dtype=torch.float64)
        self.e     = torch.tensor(tab.e, dtype=torch.float64)
        self.d     = None if tab.d is None else torch.tensor(tab.d, dtype=torch.float64)
        self.k     = torch.zeros(s, n, dtype=torch.float64)
        self.kbuf  = torch.zeros(n, dtype=torch.float64)
        self.y_new = torch.zeros(n, dtype=torch.float64)
        self.facold = 1e-4
        self.fac11  = 1.0
        self.k0_valid = False       # k[0] holds f(x, y) of the current step

    def start(self, x, y):
        self.facold, self.fac11 = 1e-4, 1.0
        self.k0_valid = False

    # ------------------------------------------------------------------ #
    def step(self, x, y):
        work, stat, fcn = self.work, self.stat, self.problem.fcn
        h, k, c = work.h, self.k, self.tableau.c
        s = len(c)

        if not self.k0_valid:
            fcn(self.kbuf, x, y)
            k[0] = self.kbuf
            stat.nfeval += 1
            self.k0_valid = True

        for i in range(1, s):
            ytmp = y + h * (self.A[i, :i] @ k[:i])
            if self.fsal and i == s - 1:
                self.y_new.copy_(ytmp)              # last row of A is b
            fcn(self.kbuf, x + c[i] * h, ytmp)
            k[i] = self.kbuf
        stat.nfeval += s - 1
        if not self.fsal:
            torch.add(y, self.b @ k, alpha=h, out=self.y_new)

        if self.fixed:
            work.rerr = 0.0
            return

        conf = self.conf
        errv = h * (self.e @ k)
        work.rerr = rms_error(errv, y, self.y_new, conf.atol_int, conf.rtol_int)
        work.h_new, self.fac11 = propose_lund(
            h, work.rerr, self.facold, expo=self.tableau.expo,
            beta=conf.stab_beta, safe=conf.safe,
            facmin=conf.facmin, facmax=conf.facmax)

    def accept(self, x, y, x_new):
        work = self.work
        block = None
        if not self.fixed:
            self.facold = max(work.rerr, 1e-4)
            if self.conf.dense and self.d is not None:
                block = DopriBlock(x, x_new, work.h, self._dense_rows(y),
                                   self.y_new.clone())
        y.copy_(self.y_new)
        if self.fsal:
            self.k[0] = self.k[-1]
        else:
            self.k0_valid = False
        return block

    def _dense_rows(self, y_old: torch.Tensor) -> torch.Tensor:
        """Shampine's continuous extension, (5, n)."""
        h, k = self.work.h, self.k
        ydiff = self.y_new - y_old
        bspl  = h * k[0] - ydiff
        return torch.stack([
            y_old.clone(),
            ydiff,
            bspl,
            ydiff - h * k[-1] - bspl,
            h * (self.d @ k),
        ])

    def reject(self, x, h, xf):
        conf = self.conf
        h_new = shrink_after_reject(h, self.fac11, safe=conf.safe,
                                    facmin=conf.facmin)
        if x + self.landing * h_new >= xf:
            return xf - x, True
        return h_new, False


class ModEuler(ExplicitRK):
    tableau = MOEULER


class DoPri5(ExplicitRK):
    tableau = DOPRI5
