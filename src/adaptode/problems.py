# problems.py --------------------------------------------------------------
"""
Problem definition and reference test problems (Hairer & Wanner, vol. I/II).

Callbacks write into pre-allocated buffers:

    fcn(f, x, y)          f    (ndim,)          ← f(x, y)
    jac(dfdy, x, y)       dfdy (ndim, ndim) zeroed tensor, or started Triplet
"""
import math
from dataclasses import dataclass, field
from typing import Callable, Optional

import torch

from .config import Config
from .linsolve import Triplet
from .solver import Solver


@dataclass
class Problem:
    ndim:     int
    fcn:      Callable
    jac:      Optional[Callable] = None
    mass:     object = None                  # tensor, Triplet, scipy or None (= I)
    sparse:   bool = False                   # jac fills a Triplet
    jac_rows: Optional[Callable] = None      # jac_rows(part, x, y, rows), sparse only
    name:     str = ""
    y0:       Optional[torch.Tensor] = None
    x0:       float = 0.0
    xf:       float = 1.0
    dx:       Optional[float] = None         # suggested fixed step
    yana:     Optional[Callable] = None      # yana(x) → (ndim,) exact solution
    options:  dict = field(default_factory=dict)   # suggested Config options

    def calc_yana(self, i: int, x: float) -> float:
        if self.yana is None:
            raise ValueError(f"problem {self.name!r} has no analytic solution")
        return float(self.yana(x)[i])

    def solve(self, method: str, fixed: bool = False, numjac: bool = False,
              **options):
        """Integrate with ``method`` from y0; returns (y, stat, out).

        ``fixed`` uses the suggested step ``dx``; ``numjac`` ignores the
        analytic Jacobian.  Extra keyword options go to ``Config.create``.
        """
        opts = dict(self.options)
        opts.update(options)
        conf = Config.create(method, **opts)
        if fixed:
            conf.set_fixed_h(self.dx)
        prob = self if not numjac else Problem(
            self.ndim, self.fcn, None, self.mass, False, None, self.name,
            self.y0, self.x0, self.xf, self.dx, self.yana, self.options)
        with Solver(prob, conf) as sol:
            y, stat = sol.solve(self.y0, self.x0, self.xf)
        return y, stat, sol.out


def _vec(*v) -> torch.Tensor:
    return torch.tensor(v, dtype=torch.float64)


# --------------------------------------------------------------------------- #
def hw_eq11() -> Problem:
    """Hairer–Wanner VII-p2 Eq. (1.1):  y′ = −50 (y − cos x)."""
    lam = -50.0

    def fcn(f, x, y):
        f[0] = lam * y[0] - lam * math.cos(x)

    def jac(dfdy, x, y):
        dfdy[0, 0] = lam

    def yana(x):
        return _vec(-2500.0 / 2501.0 * math.exp(lam * x)
                    + 50.0 / 2501.0 * (50.0 * math.cos(x) + math.sin(x)))

    return Problem(1, fcn, jac, name="HwEq11", y0=_vec(0.0), x0=0.0, xf=1.5,
                   dx=1.875 / 50.0, yana=yana)


def van_der_pol(eps: float = 1e-6, stationary: bool = False) -> Problem:
    """Hairer–Wanner VII-p5 Eq. (1.5), y0 = (2, −0.6); stiff for small eps."""
    def fcn(f, x, y):
        f[0] = y[1]
        f[1] = ((1.0 - y[0] * y[0]) * y[1] - y[0]) / eps

    def jac(dfdy, x, y):
        dfdy[0, 0] = 0.0
        dfdy[0, 1] = 1.0
        dfdy[1, 0] = (-2.0 * y[0] * y[1] - 1.0) / eps
        dfdy[1, 1] = (1.0 - y[0] * y[0]) / eps

    y0 = _vec(2.0, 0.0) if stationary else _vec(2.0, -0.6)
    return Problem(2, fcn, jac, name="VanDerPol", y0=y0, x0=0.0, xf=2.0,
                   dx=0.1)


def robertson() -> Problem:
    """Robertson's chemical reaction, Hairer–Wanner VII-p3 Eq. (1.4)."""
    def fcn(f, x, y):
        f[0] = -0.04 * y[0] + 1.0e4 * y[1] * y[2]
        f[1] =  0.04 * y[0] - 1.0e4 * y[1] * y[2] - 3.0e7 * y[1] * y[1]
        f[2] =  3.0e7 * y[1] * y[1]

    def jac(dfdy, x, y):
        dfdy[0, 0] = -0.04
        dfdy[0, 1] =  1.0e4 * y[2]
        dfdy[0, 2] =  1.0e4 * y[1]
        dfdy[1, 0] =  0.04
        dfdy[1, 1] = -1.0e4 * y[2] - 6.0e7 * y[1]
        dfdy[1, 2] = -1.0e4 * y[1]
        dfdy[2, 1] =  6.0e7 * y[1]

    return Problem(3, fcn, jac, name="Robertson", y0=_vec(1.0, 0.0, 0.0),
                   x0=0.0, xf=0.3,
                   options=dict(atol=1e-8, rtol=1e-2, ini_h=1e-6))


def arenstorf() -> Problem:
    """Arenstorf orbit (Hairer–Nørsett–Wanner I-p129), periodic with period xf."""
    mu  = 0.012277471
    mup = 1.0 - mu

    def fcn(f, x, y):
        d1 = ((y[0] + mu) ** 2 + y[1] ** 2) ** 1.5
        d2 = ((y[0] - mup) ** 2 + y[1] ** 2) ** 1.5
        f[0] = y[2]
        f[1] = y[3]
        f[2] = y[0] + 2.0 * y[3] - mup * (y[0] + mu) / d1 - mu * (y[0] - mup) / d2
        f[3] = y[1] - 2.0 * y[2] - mup * y[1] / d1 - mu * y[1] / d2

    return Problem(4, fcn, name="Arenstorf",
                   y0=_vec(0.994, 0.0, 0.0, -2.00158510637908252240537862224),
                   x0=0.0, xf=17.0652165601579625588917206249)


# --------------------------------------------------------------------------- #
def hw_amplifier() -> Problem:
    """Transistor amplifier, Hairer–Wanner VII-p376 (index 1, singular M).

    Sparse Jacobian and mass matrix; ``jac_rows`` allows row-partitioned
    assembly (``Config.distr``).
    """
    ue, ub, uf = 0.1, 6.0, 0.026
    alpha, beta = 0.99, 1.0e-6
    r0 = 1000.0
    r1 = r2 = r3 = r4 = r5 = r6 = r7 = r8 = r9 = 9000.0
    w = 2.0 * math.pi * 100.0
    c1, c2, c3, c4, c5 = 1e-6, 2e-6, 3e-6, 4e-6, 5e-6

    def fcn(f, x, y):
        uet  = ue * math.sin(w * x)
        fac1 = beta * (math.exp((y[3] - y[2]) / uf) - 1.0)
        fac2 = beta * (math.exp((y[6] - y[5]) / uf) - 1.0)
        f[0] = y[0] / r9
        f[1] = (y[1] - ub) / r8 + alpha * fac1
        f[2] = y[2] / r7 - fac1
        f[3] = y[3] / r5 + (y[3] - ub) / r6 + (1.0 - alpha) * fac1
        f[4] = (y[4] - ub) / r4 + alpha * fac2
        f[5] = y[5] / r3 - fac2
        f[6] = y[6] / r1 + (y[6] - ub) / r2 + (1.0 - alpha) * fac2
        f[7] = (y[7] - uet) / r0

    def entries(y):
        fac14 = beta * math.exp((y[3] - y[2]) / uf) / uf
        fac27 = beta * math.exp((y[6] - y[5]) / uf) / uf
        return [
            (0, 0, 1.0 / r9),
            (1, 1, 1.0 / r8),
            (1, 2, -alpha * fac14),
            (1, 3, alpha * fac14),
            (2, 2, 1.0 / r7 + fac14),
            (2, 3, -fac14),
            (3, 2, -(1.0 - alpha) * fac14),
            (3, 3, 1.0 / r5 + 1.0 / r6 + (1.0 - alpha) * fac14),
            (4, 4, 1.0 / r4),
            (4, 5, -alpha * fac27),
            (4, 6, alpha * fac27),
            (5, 5, 1.0 / r3 + fac27),
            (5, 6, -fac27),
            (6, 5, -(1.0 - alpha) * fac27),
            (6, 6, 1.0 / r1 + 1.0 / r2 + (1.0 - alpha) * fac27),
            (7, 7, 1.0 / r0),
        ]

    def jac(dfdy, x, y):
        for i, j, v in entries(y):
            dfdy.put(i, j, v)

    def jac_rows(part, x, y, rows):
        for i, j, v in entries(y):
            if i in rows:
                part.put(i, j, v)

    mass = Triplet(8, 8, 14)
    for i, j, v in [(0, 0, -c5), (0, 1, c5), (1, 0, c5), (1, 1, -c5),
                    (2, 2, -c4),
                    (3, 3, -c3), (3, 4, c3), (4, 3, c3), (4, 4, -c3),
                    (5, 5, -c2),
                    (6, 6, -c1), (6, 7, c1), (7, 6, c1), (7, 7, -c1)]:
        mass.put(i, j, v)

    y0 = _vec(0.0, ub, ub / (r6 / r5 + 1.0), ub / (r6 / r5 + 1.0),
              ub, ub / (r2 / r1 + 1.0), ub / (r2 / r1 + 1.0), 0.0)
    return Problem(8, fcn, jac, mass=mass, sparse=True, jac_rows=jac_rows,
                   name="HwAmplifier", y0=y0, x0=0.0, xf=0.05,
                   options=dict(atol=1e-11, rtol=1e-5, ini_h=1e-6))
