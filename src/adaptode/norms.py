# norms.py -----------------------------------------------------------------
import math
import torch


def scaling(scal: torch.Tensor, y: torch.Tensor, atol: float, rtol: float) -> torch.Tensor:
    """scal ← atol + rtol·|y|  (in place)."""
    torch.abs(y, out=scal)
    scal.mul_(rtol).add_(atol)
    return scal


def rms_norm(v: torch.Tensor, scal: torch.Tensor) -> float:
    """Scaled RMS norm  sqrt(mean((v_i/scal_i)²))  over all entries of v.

    ``v`` may be (n,) or (n, s) with ``scal`` (n,); stage columns are pooled,
    i.e. the mean runs over n·s entries.
    """
    if v.dim() == 2:
        q = v / scal.unsqueeze(1)
    else:
        q = v / scal
    return math.sqrt(float(torch.sum(q * q)) / q.numel())


def rms_error(err: torch.Tensor, y0: torch.Tensor, y1: torch.Tensor,
              atol: float, rtol: float) -> float:
    """Explicit-pair error norm with sk = atol + rtol·max(|y0|, |y1|)."""
    sk = atol + rtol * torch.maximum(y0.abs(), y1.abs())
    q  = err / sk
    return math.sqrt(float(torch.sum(q * q)) / q.numel())
