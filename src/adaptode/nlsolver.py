# nlsolver.py --------------------------------------------------------------
"""
Newton root finder for  f(x) = 0.

    NlSolver(ndim, ffcn(fx, x), jfcn(dfdx, x) = None, *, sparse=False, **options)

Options (defaults):  atol 1e-8, rtol 1e-8, ftol 1e-9, max_it 20,
cte_jac False, line_search False, line_search_max_it 20, chk_conv False.
"""
import logging
import math
from typing import Callable, Optional

import numpy as np
import torch

from .exceptions import ConfigurationError, DivergenceError, NewtonConvergenceError
from .jacobian import compare_jacobians, numerical_jacobian
from .line_search import line_search
from .linsolve import LinSolver, Triplet
from .newton import THETA_DIVERGE, newton_tolerance
from .stat import Stat

logger = logging.getLogger(__name__)

MACHEPS = torch.finfo(torch.float64).eps

_DEFAULTS = dict(atol=1e-8, rtol=1e-8, ftol=1e-9, max_it=20, cte_jac=False,
                 line_search=False, line_search_max_it=20, chk_conv=False)


class NlSolver:
    """Solves a nonlinear system with (modified) Newton iterations.

    Parameters
    ----------
    ndim : int
        Number of equations.
    ffcn : callable ``ffcn(fx, x)``
        Writes f(x) into ``fx``.
    jfcn : callable ``jfcn(dfdx, x)``, optional
        Fills a zeroed dense tensor (or a started ``Triplet`` with
        ``sparse=True``).  Finite differences are used when omitted; each
        costs ``ndim`` extra evaluations of ``ffcn``.
    """

    def __init__(self, ndim: int, ffcn: Callable, jfcn: Optional[Callable] = None,
                 *, sparse: bool = False, **options):
        unknown = sorted(set(options) - set(_DEFAULTS))
        if unknown:
            raise ConfigurationError(
                f"unknown option(s) {unknown}; accepted options: {sorted(_DEFAULTS)}")
        if ndim < 1:
            raise ConfigurationError(f"ndim must be positive (got {ndim})")
        opts = dict(_DEFAULTS, **options)

        self.ndim   = int(ndim)
        self.ffcn   = ffcn
        self.jfcn   = jfcn
        self.sparse = sparse
        self.cte_jac            = bool(opts["cte_jac"])
        self.line_search        = bool(opts["line_search"])
        self.line_search_max_it = int(opts["line_search_max_it"])
        self.max_it             = int(opts["max_it"])
        self.chk_conv           = bool(opts["chk_conv"])
        self.set_tols(opts["atol"], opts["rtol"], opts["ftol"])

        n = self.ndim
        self.fx    = torch.zeros(n, dtype=torch.float64)
        self.scal  = torch.zeros(n, dtype=torch.float64)
        self.J     = Triplet(n, n) if sparse else torch.zeros(n, n, dtype=torch.float64)
        self.lis   = LinSolver("NlSolver J")
        self.stat  = Stat()
        self.it    = 0

    def set_tols(self, atol: float, rtol: float, ftol: float,
                 eps: float = MACHEPS) -> None:
        if not (atol > 0.0 and rtol > 0.0 and ftol > 0.0):
            raise ConfigurationError(
                f"tolerances must be positive (atol={atol}, rtol={rtol}, ftol={ftol})")
        self.atol, self.rtol, self.ftol = float(atol), float(rtol), float(ftol)
        self.fnewt = newton_tolerance(self.rtol, eps)

    def free(self) -> None:
        self.lis.free()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.free()
        return False

    # ------------------------------------------------------------------ #
    def _jacobian(self, x: torch.Tensor) -> None:
        if self.jfcn is None:
            self.stat.nfeval += numerical_jacobian(self.ffcn, x, self.fx, self.J)
        else:
            if self.sparse:
                self.J.start()
            else:
                self.J.zero_()
            self.jfcn(self.J, x)
        self.stat.njeval += 1
        self.lis.fact(self.J)
        self.stat.ndecomp += 1

    def _gradient(self) -> torch.Tensor:
        """∇φ = Jᵀ f  for φ = ½‖f‖²."""
        if self.sparse:
            JT = self.J.to_scipy("csr").T
            return torch.from_numpy(np.asarray(JT @ self.fx.numpy()))
        return self.J.T @ self.fx

    def _ldx(self, dx: torch.Tensor) -> float:
        q = dx / self.scal
        return math.sqrt(float(torch.dot(q, q)) / self.ndim)

    # ------------------------------------------------------------------ #
    def solve(self, x: torch.Tensor) -> int:
        """Solve f(x) = 0 starting from ``x`` (updated in place).

        Returns the number of iterations.  Raises ``NewtonConvergenceError``
        when ``max_it`` is exhausted and ``DivergenceError`` (with
        ``chk_conv``) when Θ = Ldx/Ldx_prev > 0.99.
        """
        stat = self.stat
        stat.reset()
        self.lis.free()
        torch.abs(x, out=self.scal)
        self.scal.mul_(self.rtol).add_(self.atol)

        self.ffcn(self.fx, x)
        stat.nfeval = 1

        ldx = ldx_prev = 0.0
        for it in range(self.max_it):
            self.it = it

            # convergence on f(x)
            fx_max = float(self.fx.abs().max())
            if fx_max < self.ftol:
                logger.debug("nlsolver: converged on f (it=%d, fx_max=%.3e)", it, fx_max)
                return it
            logger.debug("nlsolver: it=%d  Ldx=%.6e  fx_max=%.6e", it, ldx, fx_max)

            if it == 0 or not self.cte_jac:
                self._jacobian(x)

            mdx = self.lis.solve(self.fx)             # mdx = J⁻¹ f
            stat.nlinsol += 1
            if self.line_search:
                phi0 = 0.5 * float(torch.dot(self.fx, self.fx))
                grad = self._gradient()
            x0 = x.clone()
            x.sub_(mdx)
            ldx = self._ldx(mdx)

            self.ffcn(self.fx, x)
            stat.nfeval += 1
            stat.update_nitmax(it + 1)

            fx_max = float(self.fx.abs().max())
            if fx_max < self.ftol:
                logger.debug("nlsolver: converged on f (it=%d)", it + 1)
                return it + 1
            if ldx < self.fnewt:
                logger.debug("nlsolver: converged on Ldx (it=%d)", it + 1)
                return it + 1

            if self.line_search:
                x_ls, _, r_ls, lam, nev = line_search(
                    x0, phi0, grad, -mdx, self._phi,
                    max_it=self.line_search_max_it)
                stat.nfeval += nev
                x.copy_(x_ls)
                self.fx.copy_(r_ls)
                ldx = self._ldx(x - x0)
                if ldx < self.fnewt:
                    logger.debug("nlsolver: converged on Ldx after line search "
                                 "(it=%d, λ=%.3e)", it + 1, lam)
                    return it + 1

            if it > 0 and self.chk_conv:
                theta = ldx / ldx_prev
                if theta > THETA_DIVERGE:
                    raise DivergenceError(
                        f"nlsolver is diverging with Θ = {theta:g} "
                        f"(Ldx={ldx:g}, previous {ldx_prev:g})",
                        stat.copy(), theta=theta, ldx=ldx, ldx_prev=ldx_prev)
            ldx_prev = ldx

        self.it = self.max_it
        raise NewtonConvergenceError(
            f"nlsolver: cannot converge after {self.max_it} iterations "
            f"(Ldx={ldx:g})", stat.copy(), iterations=self.max_it)

    def _phi(self, xt: torch.Tensor):
        r = torch.empty_like(self.fx)
        self.ffcn(r, xt)
        return 0.5 * float(torch.dot(r, r)), r

    # ------------------------------------------------------------------ #
    def check_jacobian(self, x: torch.Tensor, tol: float = 1e-5):
        """Return (condition number, max |J_analytic − J_numerical|).

        Raises ``ValueError`` when the condition number is not finite or
        the difference exceeds ``tol``.
        """
        x = torch.as_tensor(x, dtype=torch.float64)
        if self.jfcn is None:
            fx = torch.empty_like(x)
            self.ffcn(fx, x)
            J = torch.zeros(self.ndim, self.ndim, dtype=torch.float64)
            numerical_jacobian(self.ffcn, x, fx, J)
            maxdiff = 0.0
        else:
            J, _, maxdiff = compare_jacobians(
                self.ffcn, self.jfcn, x, sparse=self.sparse)
        cnd = float(torch.linalg.cond(J, p="fro"))
        if not math.isfinite(cnd):
            raise ValueError(f"condition number is not finite: {cnd}")
        if maxdiff > tol:
            raise ValueError(f"Jacobian check failed: maxdiff = {maxdiff:g} > {tol:g}")
        return cnd, maxdiff
