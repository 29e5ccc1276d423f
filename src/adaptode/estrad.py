# estrad.py
from typing import Callable

import torch

from .linsolve import LinSolver, mass_times
from .norms import rms_norm
from .radau_tables import DD1, DD2, DD3


def estrad(
    z:      torch.Tensor,          # (n, 3)  stage increments after Newton
    h:      float,
    e1:     LinSolver,             # factorization of (u1/h·M − J)
    mass,                          # (n, n) tensor, scipy matrix or None
    scal:   torch.Tensor,          # (n,)   error scale vector
    f0:     torch.Tensor,          # (n,)   f(x, y) at the step start
    *,
    first:  bool,
    reject: bool,
    stat,
    fcn:    Callable,              # fcn(f, x, y)
    x:      float,
    y:      torch.Tensor,
) -> float:
    """
    Radau local-error estimator (Hairer II Sec. IV.8).

        err = ‖(u1/h·M − J)⁻¹ (f0 + M·Σ dd_i z_i / h)‖

    On the first step or after a rejection an estimate ≥ 1 is refined once
    with f evaluated at the perturbed state y + err; that evaluation counts
    in ``stat.nfeval``.  The solves here are not Newton solves and do not
    count in ``nlinsol``.
    """
    # 1 · f2 = M · z·dd / h
    temp = (DD1 * z[:, 0] + DD2 * z[:, 1] + DD3 * z[:, 2]) / h
    f2   = mass_times(mass, temp)

    # 2 · error vector via the real stage solve
    err_vec = e1.solve(f0 + f2)
    err     = max(rms_norm(err_vec, scal), 1e-10)     # avoid exact zero

    # 3 · second evaluation if the first estimate is pessimistic
    if err >= 1.0 and (first or reject):
        f_new = torch.empty_like(f0)
        fcn(f_new, x, y + err_vec)
        stat.nfeval += 1
        err_vec = e1.solve(f_new + f2)
        err     = max(rms_norm(err_vec, scal), 1e-10)

    return err
