# config.py ----------------------------------------------------------------
"""
Validated integrator configuration.

``Config`` is a plain dataclass; values are checked in ``__post_init__`` and
again when a ``Solver`` is built (``validate``), so that options assigned
after construction (``conf.ini_h = 1e-6``) are covered as well.  Use
``Config.create`` to build from keyword options: unknown names are rejected
with the list of accepted ones instead of being silently ignored.
"""
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Callable, Optional

import torch

from .exceptions import ConfigurationError
from .newton import newton_tolerance

MACHEPS = torch.finfo(torch.float64).eps


class Method(str, Enum):
    FWEULER = "fweuler"
    BWEULER = "bweuler"
    MOEULER = "moeuler"
    DOPRI5  = "dopri5"
    RADAU5  = "radau5"

    @classmethod
    def parse(cls, name) -> "Method":
        if isinstance(name, Method):
            return name
        key = str(name).strip().lower()
        key = _ALIASES.get(key, key)
        for m in cls:
            if m.value == key:
                return m
        raise ConfigurationError(
            f"unknown method {name!r}; accepted: {[m.value for m in cls]}")

    @property
    def fixed_only(self) -> bool:
        return self in (Method.FWEULER, Method.BWEULER)

    @property
    def implicit(self) -> bool:
        return self in (Method.BWEULER, Method.RADAU5)

    @property
    def has_dense(self) -> bool:
        return self in (Method.DOPRI5, Method.RADAU5)


_ALIASES = {"modeuler": "moeuler", "fw-euler": "fweuler", "bw-euler": "bweuler",
            "dopri": "dopri5", "radau": "radau5", "radauiia": "radau5"}

_NEWTON_MODES = ("modified", "exact")

# controller settings that depend on the method (applied where left as None)
_BASE_DEFAULTS   = dict(facmax=8.0, stab_beta=0.0)
_METHOD_DEFAULTS = {Method.DOPRI5: dict(facmax=5.0, stab_beta=0.04)}


def _method_defaults(method: Method) -> dict:
    return dict(_BASE_DEFAULTS, **_METHOD_DEFAULTS.get(method, {}))


@dataclass
class Config:
    method:     Method = Method.RADAU5

    # user tolerances (internal copies in rtol_int/atol_int, see set_tols)
    atol:       float = 1e-4
    rtol:       float = 1e-4

    # step size
    ini_h:      float = 1e-4
    h_min:      float = 1e-10
    h_max:      Optional[float] = None     # None → whole interval

    # controller
    safe:       float = 0.9
    facmin:     float = 0.2                # h_new/h ≥ facmin
    facmax:     Optional[float] = None     # h_new/h ≤ facmax; None → method default
    mfirst_rej: float = 0.1                # Radau5: h ← mfirst_rej·h on first rejection
    pred_ctrl:  bool  = True               # Gustafsson predictive controller
    stab_beta:  Optional[float] = None     # Lund stabilisation; None → method default
    max_steps:  int   = 1000

    # Newton / Jacobian
    max_it:     int   = 7
    theta_max:  float = 1e-3               # reuse J when Θ ≤ theta_max
    c1h:        float = 1.0                # keep factorization when
    c2h:        float = 1.2                #   c1h ≤ h_new/h ≤ c2h
    cte_jac:    bool  = False
    newton:     str   = "modified"         # "modified" | "exact"  (BwEuler)
    line_search:        bool = False
    line_search_max_it: int  = 20
    zero_trial: bool  = False              # Radau5: z = 0 Newton start
    eps:        float = 1e-16              # unit roundoff
    distr:      int   = 1                  # workers for row-partitioned Jacobians

    # fixed steps
    fixed:      bool  = False
    fixed_dx:   Optional[float] = None

    # output
    step_out:   bool  = True
    step_fn:    Optional[Callable] = None  # (istep, h, x, y) → stop
    dense:      bool  = False
    dense_dx:   Optional[float] = None
    dense_fn:   Optional[Callable] = None  # (istep, h, x, y, xout, yout) → stop

    # derived, see set_tols
    rtol_int:   float = field(init=False, default=0.0)
    atol_int:   float = field(init=False, default=0.0)
    fnewt:      float = field(init=False, default=0.0)

    def __post_init__(self):
        self.method = Method.parse(self.method)
        self._fill_method_defaults()
        self.set_tols(self.atol, self.rtol)
        self._check_values()

    # ---- construction helpers ----------------------------------------------
    @classmethod
    def option_names(cls) -> list:
        return sorted(f.name for f in fields(cls) if f.init)

    @classmethod
    def create(cls, method="radau5", **options) -> "Config":
        """Build a configuration, rejecting unknown option names."""
        _check_names(options, cls.option_names())
        return cls(method=method, **options)

    def replace(self, **options) -> "Config":
        _check_names(options, self.option_names())
        if "method" in options:
            # settings still at the old method's default follow the new method
            old = _method_defaults(self.method)
            for key, value in old.items():
                if key not in options and getattr(self, key) == value:
                    options[key] = None
        return replace(self, **options)

    def _fill_method_defaults(self) -> None:
        for key, value in _method_defaults(self.method).items():
            if getattr(self, key) is None:
                setattr(self, key, value)

    # ---- setters -------------------------------------------------------------
    def set_tols(self, atol: float, rtol: float) -> None:
        """Store user tolerances and derive the internal ones.

        The implicit methods use Hairer's transformation
        rtol' = 0.1·rtol^(2/3), atol' = rtol'·atol/rtol; the explicit pairs
        use atol, rtol as given.  The Newton tolerance is
        fnewt = max(10·eps/rtol', min(0.03, sqrt(rtol'))).
        """
        if not (atol > 0.0):
            raise ConfigurationError(f"atol must be positive (got {atol})")
        if not (rtol > 10.0 * MACHEPS):
            raise ConfigurationError(
                f"rtol must exceed 10·machine-epsilon = {10.0*MACHEPS:g} (got {rtol})")
        self.atol, self.rtol = float(atol), float(rtol)
        if Method.parse(self.method).implicit:
            quot          = self.atol / self.rtol
            self.rtol_int = 0.1 * self.rtol ** (2.0 / 3.0)
            self.atol_int = self.rtol_int * quot
        else:
            self.rtol_int, self.atol_int = self.rtol, self.atol
        self.fnewt = newton_tolerance(self.rtol_int, self.eps)

    def set_fixed_h(self, dx: float) -> None:
        """Use fixed steps of (about) dx; the controller is disabled."""
        if dx is None or not (dx > 0.0):
            raise ConfigurationError(f"fixed step must be positive (got {dx})")
        self.fixed, self.fixed_dx = True, float(dx)

    def set_step_out(self, enabled: bool = True,
                     fn: Optional[Callable] = None) -> None:
        self.step_out, self.step_fn = bool(enabled), fn

    def set_dense_out(self, enabled: bool = True, dx: Optional[float] = None,
                      fn: Optional[Callable] = None) -> None:
        if enabled and dx is not None and not (dx > 0.0):
            raise ConfigurationError(f"dense output spacing must be positive (got {dx})")
        self.dense, self.dense_dx, self.dense_fn = bool(enabled), dx, fn

    # ---- validation ------------------------------------------------------------
    def _check_values(self) -> None:
        bad = []
        if not (self.ini_h > 0.0):
            bad.append(f"ini_h={self.ini_h} must be positive")
        if not (self.h_min > 0.0):
            bad.append(f"h_min={self.h_min} must be positive")
        if self.h_max is not None and not (self.h_max > 0.0):
            bad.append(f"h_max={self.h_max} must be positive")
        if not (0.0 < self.safe < 1.0):
            bad.append(f"safe={self.safe} must be in (0, 1)")
        if not (0.0 < self.facmin <= 1.0):
            bad.append(f"facmin={self.facmin} must be in (0, 1]")
        if not (self.facmax >= 1.0):
            bad.append(f"facmax={self.facmax} must be ≥ 1")
        if not (0.0 < self.mfirst_rej < 1.0):
            bad.append(f"mfirst_rej={self.mfirst_rej} must be in (0, 1)")
        if not (0.0 <= self.stab_beta <= 0.2):
            bad.append(f"stab_beta={self.stab_beta} must be in [0, 0.2]")
        if int(self.max_steps) != self.max_steps or self.max_steps < 1:
            bad.append(f"max_steps={self.max_steps} must be a positive integer")
        if int(self.max_it) != self.max_it or self.max_it < 1:
            bad.append(f"max_it={self.max_it} must be a positive integer")
        if int(self.line_search_max_it) != self.line_search_max_it \
                or self.line_search_max_it < 1:
            bad.append(f"line_search_max_it={self.line_search_max_it} "
                       "must be a positive integer")
        if not (0.0 < self.theta_max < 1.0):
            bad.append(f"theta_max={self.theta_max} must be in (0, 1)")
        if not (0.0 < self.c1h <= 1.0 <= self.c2h):
            bad.append(f"need 0 < c1h ≤ 1 ≤ c2h (got {self.c1h}, {self.c2h})")
        if self.newton not in _NEWTON_MODES:
            bad.append(f"newton={self.newton!r} must be one of {_NEWTON_MODES}")
        if not (0.0 < self.eps < 1e-10):
            bad.append(f"eps={self.eps} must be in (0, 1e-10)")
        if self.fixed and (self.fixed_dx is None or not (self.fixed_dx > 0.0)):
            bad.append("fixed steps need a positive fixed_dx")
        if int(self.distr) != self.distr or self.distr < 1:
            bad.append(f"distr={self.distr} must be a positive integer")
        if self.dense_dx is not None and not (self.dense_dx > 0.0):
            bad.append(f"dense_dx={self.dense_dx} must be positive")
        if bad:
            raise ConfigurationError("invalid configuration: " + "; ".join(bad))

    def validate(self) -> None:
        """Full check, including method/mode compatibility."""
        self.method = Method.parse(self.method)
        self._fill_method_defaults()
        self.set_tols(self.atol, self.rtol)
        self._check_values()
        if self.method.fixed_only and not self.fixed:
            raise ConfigurationError(
                f"{self.method.value} works with fixed steps only; call set_fixed_h")
        want_dense = self.dense or self.dense_dx is not None or self.dense_fn is not None
        if want_dense and not self.method.has_dense:
            raise ConfigurationError(
                f"{self.method.value} has no dense output; use dopri5 or radau5")
        if want_dense and self.fixed:
            raise ConfigurationError("dense output requires adaptive steps")
        if self.dense_fn is not None and self.dense_dx is None:
            raise ConfigurationError("a dense-output callback needs the spacing dense_dx")
        if want_dense:
            self.dense = True


def _check_names(options: dict, accepted: list) -> None:
    unknown = sorted(set(options) - set(accepted))
    if unknown:
        raise ConfigurationError(
            f"unknown option(s) {unknown}; accepted options: {accepted}")
