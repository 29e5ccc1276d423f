# radau_tables.py ----------------------------------------------------------
"""
Radau IIA (3 stages, order 5) coefficients as used by Hairer & Wanner's
RADAU5.  T, TI transform the stage system so that A⁻¹ becomes

    TI·A⁻¹·T = [[u1, 0, 0], [0, α, −β], [0, β, α]]

i.e. one real eigenvalue u1 and the complex pair α ± iβ.  The values are
kept verbatim (not recomputed) so that step sequences match the Fortran code.
"""
import math
from typing import Tuple

import torch

SQ6   = math.sqrt(6.0)
C1    = (4.0 - SQ6) / 10.0
C2    = (4.0 + SQ6) / 10.0
C1M1  = C1 - 1.0
C2M1  = C2 - 1.0
C1MC2 = C1 - C2

# error-estimate weights
DD1 = -(13.0 + 7.0 * SQ6) / 3.0
DD2 = (-13.0 + 7.0 * SQ6) / 3.0
DD3 = -1.0 / 3.0

# eigenvalues of A⁻¹
_U1   = (6.0 + 81.0 ** (1.0 / 3.0) - 9.0 ** (1.0 / 3.0)) / 30.0
_ALPH = (12.0 - 81.0 ** (1.0 / 3.0) + 9.0 ** (1.0 / 3.0)) / 60.0
_BETA = (81.0 ** (1.0 / 3.0) + 9.0 ** (1.0 / 3.0)) * math.sqrt(3.0) / 60.0
_CNO  = _ALPH ** 2 + _BETA ** 2
U1    = 1.0 / _U1
ALPH  = _ALPH / _CNO
BETA  = _BETA / _CNO

T11 =  9.1232394870892942792e-02
T12 = -0.14125529502095420843
T13 = -3.0029194105147424492e-02
T21 =  0.24171793270710701896
T22 =  0.20412935229379993199
T23 =  0.38294211275726193779
T31 =  0.96604818261509293619
T32 =  1.0
T33 =  0.0

TI11 =  4.3255798900631553510
TI12 =  0.33919925181580986954
TI13 =  0.54177053993587487119
TI21 = -4.1787185915519047273
TI22 = -0.32768282076106238708
TI23 =  0.47662355450055045196
TI31 = -0.50287263494578687595
TI32 =  2.5719269498556054292
TI33 = -0.59603920482822492497


def coertv3(dtype=torch.float64, device="cpu"):
    """
    3-stage Radau II-A  (order 5): returns T, TI, C, ValP = (u1, α, β), Dd.
    """
    T  = torch.tensor([[T11, T12, T13],
                       [T21, T22, T23],
                       [T31, T32, T33]], dtype=dtype, device=device)
    TI = torch.tensor([[TI11, TI12, TI13],
                       [TI21, TI22, TI23],
                       [TI31, TI32, TI33]], dtype=dtype, device=device)
    C    = torch.tensor([C1, C2, 1.0], dtype=dtype, device=device)
    ValP = torch.tensor([U1, ALPH, BETA], dtype=dtype, device=device)
    Dd   = torch.tensor([DD1, DD2, DD3], dtype=dtype, device=device)
    return T, TI, C, ValP, Dd


# --------------------------------------------------------------------------- #
def _vandermonde(c: torch.Tensor, power: int) -> torch.Tensor:
    """Row-wise Vandermonde: V[i,j] = c[i]**j  for j=0…power-1."""
    exps = torch.arange(power, dtype=c.dtype, device=c.device)
    return c.unsqueeze(1).pow(exps)          # (s, power)


def _integral_vandermonde(c: torch.Tensor) -> torch.Tensor:
    """Q[i,j] = c[i]**(j+1)/(j+1)  (∫₀ᶜ τʲ dτ)."""
    s = c.numel()
    exps = torch.arange(1, s + 1, dtype=c.dtype, device=c.device)
    return c.unsqueeze(1).pow(exps) / exps


def butcher_matrix(c: torch.Tensor) -> torch.Tensor:
    """Collocation matrix A for abscissae ``c`` (A = CQ·CP⁻¹)."""
    CP = _vandermonde(c, c.numel())
    CQ = _integral_vandermonde(c)
    return CQ @ torch.linalg.inv(CP)


def transformed_inverse(dtype=torch.float64) -> Tuple[torch.Tensor, torch.Tensor]:
    """(TI·A⁻¹·T, expected block form) – a consistency check of the tables."""
    T, TI, C, ValP, _ = coertv3(dtype)
    Ainv = torch.linalg.inv(butcher_matrix(C))
    u1, a, b = ValP.tolist()
    block = torch.tensor([[u1, 0.0, 0.0],
                          [0.0, a, -b],
                          [0.0, b, a]], dtype=dtype)
    return TI @ Ainv @ T, block
