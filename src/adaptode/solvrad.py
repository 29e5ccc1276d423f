# solvrad.py
import torch

from .linsolve import LinSolver, mass_times
from .radau_tables import ALPH, BETA, U1


def solve_radau(
    z:    torch.Tensor,                   # (n, 3) – mutated in place
    w:    torch.Tensor,                   # (n, 3)  transformed stage values
    h:    float,
    e1:   LinSolver,                      # (u1/h·M − J)          real
    e2:   LinSolver,                      # ((α+iβ)/h·M − J)      complex
    mass=None,
) -> torch.Tensor:
    """
    Overwrites z with the solution of the transformed stage systems.

    Column 0 is the real stage, columns (1, 2) are the real and imaginary
    parts of the complex-conjugate pair, solved as one complex system.
    """
    fac1  = U1 / h
    alphn = ALPH / h
    betan = BETA / h

    Mw = mass_times(mass, w)                          # (n, 3)

    # --- stage 0: purely real ---------------------------------------------
    rhs0 = z[:, 0] - fac1 * Mw[:, 0]
    z[:, 0] = e1.solve(rhs0)

    # --- (Re, Im) pair ------------------------------------------------------
    rhs_re = z[:, 1] - alphn * Mw[:, 1] + betan * Mw[:, 2]
    rhs_im = z[:, 2] - alphn * Mw[:, 2] - betan * Mw[:, 1]
    sol_c  = e2.solve(torch.complex(rhs_re, rhs_im))
    z[:, 1] = sol_c.real
    z[:, 2] = sol_c.imag
    return z
