# linsolve.py --------------------------------------------------------------
"""
Linear-system capability: factorize / solve / free for dense (torch LU) and
sparse (SciPy SuperLU) matrices, real or complex.

Matrices come in two flavours and are dispatched on their type:

* dense  : ``torch.Tensor`` of shape (n, n)
* sparse : ``Triplet`` (coordinate list, duplicates are summed) or any
           ``scipy.sparse`` matrix
"""
import logging
from typing import Optional

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
import torch

from .exceptions import LinearSolverError

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# ---- sparse coordinate list ----------------------------------------------- #
class Triplet:
    """(row, col, value) accumulator; entries at equal coordinates add up."""

    def __init__(self, m: int, n: int, max_nnz: int = 0):
        self.init(m, n, max_nnz)

    def init(self, m: int, n: int, max_nnz: int = 0) -> None:
        self.m, self.n = int(m), int(n)
        self.max_nnz   = int(max_nnz)         # hint only
        self._i: list  = []
        self._j: list  = []
        self._x: list  = []

    def start(self) -> None:
        """Forget all entries (keeps the shape)."""
        self._i.clear(); self._j.clear(); self._x.clear()

    def put(self, i: int, j: int, x: float) -> None:
        if not (0 <= i < self.m and 0 <= j < self.n):
            raise IndexError(f"entry ({i},{j}) outside {self.m}×{self.n} triplet")
        self._i.append(int(i)); self._j.append(int(j)); self._x.append(float(x))

    def put_dense(self, i0: int, j0: int, a) -> None:
        """Add the nonzeros of a small dense block at offset (i0, j0)."""
        a = np.asarray(a.detach().cpu() if torch.is_tensor(a) else a, dtype=float)
        for (di, dj), v in np.ndenumerate(a):
            if v != 0.0:
                self.put(i0 + di, j0 + dj, v)

    def extend(self, other: "Triplet") -> None:
        """Append all entries of ``other`` (gather step of a distributed assembly)."""
        if (other.m, other.n) != (self.m, self.n):
            raise ValueError(f"cannot merge {other.m}×{other.n} into {self.m}×{self.n}")
        self._i.extend(other._i); self._j.extend(other._j); self._x.extend(other._x)

    @property
    def nnz(self) -> int:
        return len(self._x)

    @property
    def shape(self) -> tuple:
        return (self.m, self.n)

    def pattern(self) -> tuple:
        return (self.m, self.n, tuple(zip(self._i, self._j)))

    def to_scipy(self, fmt: str = "csc") -> sp.spmatrix:
        coo = sp.coo_matrix((np.asarray(self._x, dtype=float),
                             (np.asarray(self._i, dtype=np.int64),
                              np.asarray(self._j, dtype=np.int64))),
                            shape=(self.m, self.n))
        return coo.asformat(fmt)                        # duplicates are summed

    def to_dense(self) -> torch.Tensor:
        a = torch.zeros(self.m, self.n, dtype=torch.float64)
        if self._x:
            idx = torch.tensor([self._i, self._j], dtype=torch.long)
            a.index_put_((idx[0], idx[1]),
                         torch.tensor(self._x, dtype=torch.float64),
                         accumulate=True)
        return a


# --------------------------------------------------------------------------- #
# ---- helpers -------------------------------------------------------------- #
def is_sparse(a) -> bool:
    return isinstance(a, Triplet) or sp.issparse(a)


def as_operator(a, n: Optional[int] = None):
    """Normalise a matrix argument: dense → float64 tensor, sparse → CSC."""
    if a is None:
        return None
    if isinstance(a, Triplet):
        op = a.to_scipy("csc")
    elif sp.issparse(a):
        op = sp.csc_matrix(a, dtype=float)
    else:
        op = torch.as_tensor(a, dtype=torch.float64)
        if op.dim() != 2:
            raise ValueError(f"matrix must be 2-D (got shape {tuple(op.shape)})")
    if n is not None and tuple(op.shape) != (n, n):
        raise ValueError(f"matrix shape {tuple(op.shape)} does not match ({n}, {n})")
    return op


def shifted_matrix(gamma, jac, mass=None):
    """Return γ·M − J (M = I when ``mass`` is None), dense or sparse like ``jac``.

    ``gamma`` may be complex; the result is then complex128.
    """
    cplx = isinstance(gamma, complex)
    if sp.issparse(jac):
        n = jac.shape[0]
        M = sp.identity(n, format="csc") if mass is None else \
            (mass if sp.issparse(mass) else sp.csc_matrix(mass.numpy()))
        dtype = np.complex128 if cplx else np.float64
        return (M.astype(dtype) * gamma - jac.astype(dtype)).tocsc()

    dtype = torch.complex128 if cplx else torch.float64
    n = jac.shape[0]
    if mass is None:
        M = torch.eye(n, dtype=dtype)
    elif sp.issparse(mass):
        M = torch.as_tensor(mass.toarray()).to(dtype)
    else:
        M = mass.to(dtype)
    return gamma * M - jac.to(dtype)


def mass_times(mass, v: torch.Tensor) -> torch.Tensor:
    """M·v for v of shape (n,) or (n, s); identity when ``mass`` is None."""
    if mass is None:
        return v
    if sp.issparse(mass):
        return torch.from_numpy(np.asarray(mass @ v.numpy()))
    return mass @ v


# --------------------------------------------------------------------------- #
# ---- factorization handle ------------------------------------------------- #
class LUHandle:
    """Opaque factorization handle returned by :func:`factorize`."""

    def __init__(self, kind: str, n: int, is_complex: bool, lu, piv=None,
                 pattern=None):
        self.kind       = kind              # "dense" | "sparse"
        self.n          = n
        self.is_complex = is_complex
        self.pattern    = pattern
        self._lu        = lu
        self._piv       = piv

    @property
    def valid(self) -> bool:
        return self._lu is not None

    def solve(self, b: torch.Tensor) -> torch.Tensor:
        if self._lu is None:
            raise LinearSolverError("solve called on a released factorization")
        if self.kind == "dense":
            dtype = torch.complex128 if self.is_complex else torch.float64
            b_col = b.to(dtype).unsqueeze(-1)                      # (n,1)
            x = torch.linalg.lu_solve(self._lu, self._piv, b_col).squeeze(-1)
        else:
            rhs = b.numpy().astype(np.complex128 if self.is_complex else np.float64)
            x = torch.from_numpy(np.asarray(self._lu.solve(rhs)))
        if not bool(torch.isfinite(x).all()):
            raise LinearSolverError(
                f"{self.kind} solve produced non-finite values "
                f"(matrix singular to working precision)")
        return x

    def free(self) -> None:
        self._lu = self._piv = None


def factorize(a) -> LUHandle:
    """Factorize a square matrix (dense tensor, Triplet or scipy.sparse)."""
    if is_sparse(a):
        pattern = a.pattern() if isinstance(a, Triplet) else None
        A = a.to_scipy("csc") if isinstance(a, Triplet) else sp.csc_matrix(a)
        n = A.shape[0]
        try:
            lu = spla.splu(A)
        except (RuntimeError, ValueError) as exc:       # singular or not square
            raise LinearSolverError(f"sparse LU failed: {exc}") from exc
        return LUHandle("sparse", n, np.iscomplexobj(A.data), lu, pattern=pattern)

    A = torch.as_tensor(a)
    if not A.is_complex():
        A = A.to(torch.float64)
    LU, piv, info = torch.linalg.lu_factor_ex(A)
    if int(info) > 0:
        k = int(info) - 1
        raise LinearSolverError(
            f"dense LU failed: U[{k},{k}] is exactly zero (lu_factor info={int(info)})")
    return LUHandle("dense", A.shape[0], A.is_complex(), LU, piv)


def free(handle: Optional[LUHandle]) -> None:
    if handle is not None:
        handle.free()


# --------------------------------------------------------------------------- #
class LinSolver:
    """Owner of one lazily acquired factorization handle.

    ``fact`` releases the previous handle before acquiring a new one; a change
    of dimension or sparsity pattern is logged.
    """

    def __init__(self, name: str = ""):
        self.name   = name
        self.handle: Optional[LUHandle] = None

    @property
    def ready(self) -> bool:
        return self.handle is not None and self.handle.valid

    def fact(self, a) -> None:
        old, self.handle = self.handle, None
        free(old)
        self.handle = factorize(a)
        if old is not None and (old.n, old.pattern) != (self.handle.n, self.handle.pattern):
            logger.debug("%s: matrix layout changed (n = %d → %d)",
                         self.name, old.n, self.handle.n)

    def solve(self, b: torch.Tensor) -> torch.Tensor:
        if not self.ready:
            raise LinearSolverError(f"{self.name or 'LinSolver'}: no factorization")
        return self.handle.solve(b)

    def free(self) -> None:
        free(self.handle)
        self.handle = None
