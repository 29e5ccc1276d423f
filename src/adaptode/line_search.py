"""Backtracking line search for damped Newton corrections.

Minimises φ(x) = ½‖r(x)‖² along a Newton direction with quadratic/cubic
backtracking (sufficient decrease, Armijo constant ``alf``).  The number of
trials is bounded; when the bound is hit the best point seen is returned.
"""
import logging
import math
from typing import Callable, Tuple

import torch

logger = logging.getLogger(__name__)


def line_search(
    x0:      torch.Tensor,                     # current point
    phi0:    float,                            # φ(x0)
    grad:    torch.Tensor,                     # ∇φ(x0)
    p:       torch.Tensor,                     # search direction
    phi_fn:  Callable,                         # x → (φ(x), r(x))
    *,
    max_it:  int   = 20,
    alf:     float = 1e-4,
    tolx:    float = 1e-12,
    stpmax:  float | None = None,
) -> Tuple[torch.Tensor, float, torch.Tensor, float, int]:
    """Return (x_new, φ(x_new), r(x_new), λ used, number of φ evaluations).

    Raises
    ------
    ValueError
        If ``p`` is not a descent direction (roundoff in the Jacobian).
    """
    if stpmax is not None:
        pnorm = float(torch.linalg.norm(p))
        if pnorm > stpmax:
            p = p * (stpmax / pnorm)

    slope = float(torch.dot(grad, p))
    if slope >= 0.0:
        raise ValueError(f"line search: direction is not a descent direction (slope={slope:g})")

    test   = float((p.abs() / torch.clamp(x0.abs(), min=1.0)).max())
    lammin = tolx / test if test > 0.0 else 0.0

    lam, lam2, phi2 = 1.0, 0.0, phi0
    best_x, best_phi, best_r, best_lam = x0, phi0, None, 0.0
    nev = 0
    for _ in range(max_it):
        x   = x0 + lam * p
        phi, r = phi_fn(x)
        nev += 1
        if phi < best_phi:
            best_x, best_phi, best_r, best_lam = x, phi, r, lam
        if phi <= phi0 + alf * lam * slope:
            logger.debug("line search: λ=%.3e, φ=%.3e (φ0=%.3e)", lam, phi, phi0)
            return x, phi, r, lam, nev
        if lam < lammin:
            break
        # backtrack
        if lam == 1.0:
            tmp = -slope / (2.0 * (phi - phi0 - slope))
        else:
            rhs1 = phi - phi0 - lam * slope
            rhs2 = phi2 - phi0 - lam2 * slope
            a = (rhs1 / lam**2 - rhs2 / lam2**2) / (lam - lam2)
            b = (-lam2 * rhs1 / lam**2 + lam * rhs2 / lam2**2) / (lam - lam2)
            if a == 0.0:
                tmp = -slope / (2.0 * b)
            else:
                disc = b * b - 3.0 * a * slope
                if disc < 0.0:
                    tmp = 0.5 * lam
                elif b <= 0.0:
                    tmp = (-b + math.sqrt(disc)) / (3.0 * a)
                else:
                    tmp = -slope / (b + math.sqrt(disc))
            tmp = min(tmp, 0.5 * lam)
        lam2, phi2 = lam, phi
        lam = max(tmp, 0.1 * lam)

    if best_lam > 0.0:
        logger.warning("line search exhausted; using best step (λ=%.3e, φ=%.3e)",
                       best_lam, best_phi)
        return best_x, best_phi, best_r, best_lam, nev
    logger.warning("line search found no decrease; taking the full step")
    x = x0 + p
    phi, r = phi_fn(x)
    return x, phi, r, 1.0, nev + 1
