# controller.py ------------------------------------------------------------
"""
Step-size control.

All proposals are written as  h_new = h / quot  with
quot = clamp(err^expo / fac, 1/facmax, 1/facmin), which is the same law as
h·clamp(fac·err^(-expo), facmin, facmax) evaluated the way RADAU5/DOPRI5 do
(keeps step sequences bit-compatible with the Fortran codes).
"""


def accept(err: float) -> bool:
    """Accept the trial step iff the scaled error is below one."""
    return err < 1.0


def propose(h: float, err: float, *, expo: float, safe: float,
            facmin: float, facmax: float) -> float:
    """Classical controller  h·clamp(safe·err^(-expo), facmin, facmax)."""
    quot = max(1.0 / facmax, min(1.0 / facmin, err ** expo / safe))
    return h / quot


def propose_lund(h: float, err: float, err_old: float, *, expo: float,
                 beta: float, safe: float, facmin: float, facmax: float):
    """DOPRI5 controller with Lund stabilisation.

    Returns (h_new, fac11) where fac11 = err^(expo − 0.75β) is reused on
    rejection.  With beta = 0 this is :func:`propose`.
    """
    fac11 = err ** (expo - 0.75 * beta)
    fac   = fac11 / err_old ** beta if beta > 0.0 else fac11
    quot  = max(1.0 / facmax, min(1.0 / facmin, fac / safe))
    return h / quot, fac11


def shrink_after_reject(h: float, fac11: float, *, safe: float,
                        facmin: float) -> float:
    """h_new = h / min(1/facmin, fac11/safe)  (no growth after a rejection)."""
    return h / min(1.0 / facmin, fac11 / safe)


# --------------------------------------------------------------------------- #
def radau_propose(h: float, err: float, newt: int, *, nit: int, safe: float,
                  facmin: float, facmax: float):
    """RADAU5 proposal; the safety factor drops with the Newton iterations used.

    fac = min(safe, safe·(1 + 2·nit)/(newt + 2·nit)).  Returns (h_new, quot).
    """
    cfac = safe * (1.0 + 2.0 * nit)
    fac  = min(safe, cfac / (newt + 2 * nit))
    quot = max(1.0 / facmax, min(1.0 / facmin, err ** 0.25 / fac))
    return h / quot, quot


def gustafsson(h: float, quot: float, err: float, h_acc: float,
               err_acc: float, *, safe: float, facmin: float,
               facmax: float) -> float:
    """Predictive controller of Gustafsson; returns the more cautious step."""
    facgus  = (h_acc / h) * (err * err / err_acc) ** 0.25 / safe
    facgus  = max(1.0 / facmax, min(1.0 / facmin, facgus))
    quot    = max(quot, facgus)
    return h / quot
