# jacobian.py --------------------------------------------------------------
"""
Jacobian helpers.

* ``numerical_jacobian`` – one-sided differences around a base point whose
  residual is already known (Hairer's increment  δ_j = sqrt(ε·max(1e-5,|y_j|)) ).
* ``RowPartitionedJacobian`` – assembles a sparse Jacobian from row blocks
  computed concurrently, each worker filling a private ``Triplet``; the blocks
  are gathered in partition order so the result is deterministic.
* ``compare_jacobians`` – analytic vs. numerical check.
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Tuple

import torch

from .linsolve import Triplet

logger = logging.getLogger(__name__)


def numerical_jacobian(
    residual: Callable[[torch.Tensor, torch.Tensor], None],
    y:        torch.Tensor,          # (n,) base point
    fy:       torch.Tensor,          # (n,) residual(y), already evaluated
    dfdy,                            # (n,n) tensor or Triplet, overwritten
    *,
    eps:      float = 1e-16,
) -> int:
    """Fill ``dfdy`` with (r(y + δ_j e_j) − r(y))/δ_j.

    ``residual(out, y)`` writes r(y) into ``out``.  Returns the number of
    residual evaluations (= n) so callers can account for them.
    """
    n  = y.numel()
    yy = y.clone()
    fp = torch.empty_like(fy)
    sparse = isinstance(dfdy, Triplet)
    if sparse:
        dfdy.start()
    else:
        dfdy.zero_()

    for j in range(n):
        ysafe = float(yy[j])
        delta = math.sqrt(eps * max(1.0e-5, abs(ysafe)))
        yy[j] = ysafe + delta
        residual(fp, yy)
        col = (fp - fy) / delta
        yy[j] = ysafe
        if sparse:
            for i in torch.nonzero(col).flatten().tolist():
                dfdy.put(i, j, float(col[i]))
        else:
            dfdy[:, j] = col
    return n


class JacobianEvaluator:
    """Evaluates ∂f/∂y of a problem into reusable storage.

    Uses ``problem.jac`` when given, else :func:`numerical_jacobian` with the
    residual already known at the base point.  With ``nworkers > 1`` and a
    sparse problem that provides ``jac_rows``, the matrix is assembled by a
    :class:`RowPartitionedJacobian`.  Counts ``njeval`` (and the perturbed
    ``nfeval``) on the supplied statistics record.
    """

    def __init__(self, problem, stat, *, eps: float = 1e-16, nworkers: int = 1):
        n = problem.ndim
        self.problem = problem
        self.stat    = stat
        self.eps     = eps
        self.sparse  = bool(getattr(problem, "sparse", False))
        self.store   = Triplet(n, n) if self.sparse else \
                       torch.zeros(n, n, dtype=torch.float64)
        self.op      = None              # torch (n,n) or scipy CSC
        self.jac_fn  = problem.jac
        jac_rows = getattr(problem, "jac_rows", None)
        if self.sparse and jac_rows is not None and nworkers > 1:
            self.jac_fn = RowPartitionedJacobian(jac_rows, n, nworkers)

    def evaluate(self, x: float, y: torch.Tensor, fy: torch.Tensor):
        p = self.problem
        if self.jac_fn is None:
            self.stat.nfeval += numerical_jacobian(
                lambda out, yy: p.fcn(out, x, yy), y, fy, self.store, eps=self.eps)
        else:
            if self.sparse:
                self.store.start()
            else:
                self.store.zero_()
            self.jac_fn(self.store, x, y)
        self.stat.njeval += 1
        self.op = self.store.to_scipy("csc") if self.sparse else self.store
        return self.op


# --------------------------------------------------------------------------- #
class RowPartitionedJacobian:
    """Sparse Jacobian assembled from row ranges on a thread pool.

    Parameters
    ----------
    block_fn : callable ``block_fn(part, x, y, rows)``
        Puts the entries of rows ``rows`` (a ``range``) into the Triplet
        ``part``.  Called once per partition, possibly concurrently.
    ndim     : problem dimension
    nworkers : number of row partitions / threads

    The instance itself is a valid ``jac(dfdy, x, y)`` callback for a sparse
    ``Problem``; the solver sees one atomic Jacobian evaluation.
    """

    def __init__(self, block_fn: Callable, ndim: int, nworkers: int = 2):
        if ndim < 1 or nworkers < 1:
            raise ValueError("ndim and nworkers must be positive")
        self.block_fn = block_fn
        self.ndim     = ndim
        self.nworkers = min(nworkers, ndim)

    def partitions(self) -> List[range]:
        """Contiguous, nearly equal row ranges covering 0..ndim-1."""
        base, extra = divmod(self.ndim, self.nworkers)
        out, i0 = [], 0
        for k in range(self.nworkers):
            i1 = i0 + base + (1 if k < extra else 0)
            out.append(range(i0, i1))
            i0 = i1
        return out

    def __call__(self, dfdy: Triplet, x: float, y: torch.Tensor) -> None:
        ranges = self.partitions()
        parts  = [Triplet(self.ndim, self.ndim) for _ in ranges]
        with ThreadPoolExecutor(max_workers=self.nworkers) as ex:
            futs = [ex.submit(self.block_fn, part, x, y, rows)
                    for part, rows in zip(parts, ranges)]
            for fut in futs:
                fut.result()                    # re-raise worker errors
        # gather / reduce
        dfdy.start()
        for part in parts:
            dfdy.extend(part)
        logger.debug("assembled Jacobian from %d row blocks (nnz=%d)",
                     len(parts), dfdy.nnz)


# --------------------------------------------------------------------------- #
def compare_jacobians(
    residual: Callable[[torch.Tensor, torch.Tensor], None],
    jac:      Callable,              # jac(dfdy, y) filling tensor or Triplet
    y:        torch.Tensor,
    *,
    sparse:   bool = False,
    eps:      float = 1e-16,
) -> Tuple[torch.Tensor, torch.Tensor, float]:
    """Return (J_analytic, J_numerical, max |difference|), both dense."""
    n  = y.numel()
    fy = torch.empty_like(y)
    residual(fy, y)
    Jn = torch.zeros(n, n, dtype=torch.float64)
    numerical_jacobian(residual, y, fy, Jn, eps=eps)
    if sparse:
        t = Triplet(n, n)
        jac(t, y)
        Ja = t.to_dense()
    else:
        Ja = torch.zeros(n, n, dtype=torch.float64)
        jac(Ja, y)
    diff = float((Ja - Jn).abs().max()) if n else 0.0
    return Ja, Jn, diff
