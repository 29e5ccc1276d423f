# simplified_newton.py
import logging
import math
from dataclasses import dataclass
from typing import Callable

import torch

from .linsolve import LinSolver
from .norms import rms_norm
from .radau_tables import C1, C2
from .solvrad import solve_radau           # stage linear solves

logger = logging.getLogger(__name__)

THETA_DIVERGE = 0.99


@dataclass
class StageNewtonResult:
    converged: bool           # True  if Newton satisfied the conv. test
    newt:      int            # iterations used
    theta:     float          # last contraction estimate Θ
    faccon:    float          # Θ/(1 − Θ), carried over to the next step
    dvfac:     float = 1.0    # step factor for the retry when not converged


# --------------------------------------------------------------------------- #
def simplified_newton(
    fcn:      Callable,                # fcn(f, x, y)
    x:        float,
    y:        torch.Tensor,            # (n,)
    h:        float,
    z:        torch.Tensor,            # (n, 3) start values, overwritten
    w:        torch.Tensor,            # (n, 3) TI·z,         overwritten
    *,
    T:        torch.Tensor,            # (3, 3)
    TI:       torch.Tensor,            # (3, 3)
    e1:       LinSolver,
    e2:       LinSolver,
    mass=None,
    scal:     torch.Tensor,            # (n,)
    fnewt:    float,
    faccon:   float,
    theta0:   float,                   # Θ reported when one iteration suffices
    nit:      int = 7,
    eps:      float = 1e-16,
    stat=None,
) -> StageNewtonResult:
    """
    Simplified Newton iteration for the coupled Radau IIA stage system.

    Uses the factorizations held by ``e1``/``e2`` (computed by the caller);
    does *not* compute the local error, the caller runs ``estrad`` afterwards.
    On success ``z`` holds the stage increments and ``w`` their transform.

    A failure is step-local: the result carries the factor by which the
    caller should shrink h before retrying (0.5, or less when slow
    convergence is predicted).
    """
    n = y.numel()
    f      = torch.empty(n, 3, dtype=y.dtype)
    fbuf   = torch.empty(n, dtype=y.dtype)
    cs     = (C1, C2, 1.0)

    faccon = max(faccon, eps) ** 0.8
    theta  = theta0
    dynold = thqold = 1.0
    newt   = 0

    while True:
        if newt >= nit:                       # exceeded max iterations
            return _failed(stat, newt, theta, faccon, 0.5)

        # --- RHS evaluations at each stage ---------------------------------
        for q in range(3):
            fcn(fbuf, x + cs[q] * h, y + z[:, q])
            f[:, q] = fbuf
        stat.nfeval += 3

        # --- z = TI·f and the stage linear solves ---------------------------
        z.copy_(f @ TI.T)
        solve_radau(z, w, h, e1, e2, mass)
        stat.nlinsol += 1
        newt += 1

        # --- Newton convergence measure ------------------------------------
        dyno = rms_norm(z, scal)

        if 1 < newt < nit:
            thq    = dyno / dynold
            theta  = thq if newt == 2 else math.sqrt(thq * thqold)
            thqold = thq

            if theta < THETA_DIVERGE:
                # slow convergence?
                faccon = theta / (1.0 - theta)
                dyth   = faccon * dyno * theta ** (nit - 1 - newt) / fnewt
                if dyth >= 1.0:
                    qnewt = max(1e-4, min(20.0, dyth))
                    hhfac = 0.8 * qnewt ** (-1.0 / (4.0 + nit - 1 - newt))
                    return _failed(stat, newt, theta, faccon, hhfac)
            else:
                # divergence
                return _failed(stat, newt, theta, faccon, 0.5)

        dynold = max(dyno, eps)

        # update for next iteration
        w += z
        z.copy_(w @ T.T)

        logger.debug("radau newton it=%d  dyno=%.3e  Θ=%.3e", newt, dyno, theta)
        if faccon * dyno <= fnewt:
            stat.update_nitmax(newt)
            return StageNewtonResult(True, newt, theta, faccon)


def _failed(stat, newt, theta, faccon, dvfac) -> StageNewtonResult:
    stat.update_nitmax(newt)
    logger.debug("radau newton failed after %d iterations (Θ=%.3e); h·%.3g",
                 newt, theta, dvfac)
    return StageNewtonResult(False, newt, theta, faccon, dvfac)
