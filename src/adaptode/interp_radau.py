# interp_radau.py
import torch
from typing import Sequence

from .radau_tables import C1, C1M1, C1MC2, C2, C2M1

# nodes of the Newton form, in the order of the cont columns
_NODES = (0.0, C2M1, C1M1)


def radau_cont(cont: torch.Tensor, z: torch.Tensor) -> torch.Tensor:
    """
    Fill ``cont`` (n, 3) with the divided differences of the collocation
    polynomial through the stage increments ``z`` (n, 3) of an accepted step.
    """
    z1, z2, z3 = z[:, 0], z[:, 1], z[:, 2]
    ak     = (z1 - z2) / C1MC2
    acont3 = (ak - z1 / C1) / C2
    cont[:, 0] = (z2 - z3) / C2M1
    cont[:, 1] = (ak - cont[:, 0]) / C1M1
    cont[:, 2] = cont[:, 1] - acont3
    return cont


def radau_interpolate(
    x_interp: Sequence[float] | torch.Tensor,
    x:        float,                 # end of the accepted step
    y:        torch.Tensor,          # y(x)                        (n,)
    h:        float,                 # accepted step size
    cont:     torch.Tensor,          # divided differences          (n, 3)
) -> torch.Tensor:
    """
    Dense output for Radau IIA (collocation polynomial of degree 3).

    Parameters
    ----------
    x_interp : 1-D array of target abscissae in [x − h, x]   (len = m)
    x, y     : right end of the step and the accepted value there
    h        : step size
    cont     : coefficients produced by :func:`radau_cont`

    Returns
    -------
    y_interp : y evaluated at each x_interp   (n, m)
    """
    # --- normalise targets to s = (τ − x)/h ∈ [−1, 0] ----------------------
    τ = torch.as_tensor(x_interp, dtype=y.dtype, device=y.device).reshape(-1)
    s = (τ - x) / h                                       # (m,)

    # --- Horner scheme over all targets at once ----------------------------
    #   yi = s·(cont0 + (s − C2M1)·(cont1 + (s − C1M1)·cont2))
    yi = (s - _NODES[2]).unsqueeze(0) * cont[:, 2].unsqueeze(1)          # (n, m)
    for k in (1, 0):
        yi = (s - _NODES[k]).unsqueeze(0) * (yi + cont[:, k].unsqueeze(1))

    return yi + y.unsqueeze(1)                                          # (n, m)
