import math

import pytest
import torch

from adaptode import Config, Solver, arenstorf, hw_eq11
from adaptode.erk import DOPRI5, MOEULER


def _counts(stat):
    return (stat.nfeval, stat.njeval, stat.nsteps, stat.naccepted, stat.nrejected,
            stat.ndecomp, stat.nlinsol, stat.nitmax)


@pytest.mark.parametrize("tab", [MOEULER, DOPRI5])
def test_tableau_consistency(tab):
    for ci, row in zip(tab.c, tab.a):
        assert math.isclose(sum(row), ci, abs_tol=1e-14)
    assert math.isclose(sum(tab.b), 1.0, abs_tol=1e-14)
    assert math.isclose(sum(tab.e), 0.0, abs_tol=1e-14)


def test_dopri5_fsal_row():
    assert DOPRI5.fsal
    assert DOPRI5.a[-1] == DOPRI5.b[:-1]


def test_dopri5_arenstorf_closes_orbit(run):
    prob = arenstorf()
    y, stat, _ = run(prob, "dopri5", atol=1e-12, rtol=1e-12, max_steps=50000)
    assert torch.allclose(y, prob.y0, atol=1e-3)
    assert stat.naccepted + stat.nrejected <= stat.nsteps
    # FSAL: six new stages per attempt, the first stage once and the
    # solver's initial evaluation
    assert stat.nfeval == 6 * stat.nsteps + 2


def test_moeuler_eq11():
    prob = hw_eq11()
    y, stat, _ = prob.solve("moeuler", atol=1e-6, rtol=1e-6, max_steps=5000)
    assert abs(float(y[0]) - prob.calc_yana(0, prob.xf)) < 1e-4
    assert stat.naccepted > 0


def test_dopri5_eq11_accuracy():
    prob = hw_eq11()
    y, stat, out = prob.solve("dopri5", atol=1e-8, rtol=1e-8)
    assert abs(float(y[0]) - prob.calc_yana(0, prob.xf)) < 1e-5
    assert out.step_x[-1] == prob.xf
    assert stat.njeval == 0 and stat.ndecomp == 0


def test_moeuler_fixed_second_order(decay, run):
    errs = []
    for dx in (0.02, 0.01):
        y, stat, _ = run(decay, "moeuler", fixed_dx=dx)
        errs.append(abs(float(y[0]) - math.exp(-1.0)))
    assert 3.6 < errs[0] / errs[1] < 4.4
    assert stat.naccepted == 0


def test_runs_are_deterministic():
    prob = arenstorf()
    conf = Config.create("dopri5", atol=1e-8, rtol=1e-8, max_steps=10000)
    with Solver(prob, conf) as sol:
        y1, s1 = sol.solve()
        x1 = list(sol.out.step_x)
        y2, s2 = sol.solve()
        x2 = list(sol.out.step_x)
    assert torch.equal(y1, y2)
    assert s1 == s2 and x1 == x2


@pytest.mark.parametrize("method, expected", [
    ("moeuler", (425, 0, 212, 212, 0, 0, 0, 0)),
    ("dopri5",  (242, 0, 40, 40, 0, 0, 0, 0)),
])
def test_eq11_counts(method, expected):
    prob = hw_eq11()
    _, stat, out = prob.solve(method)
    assert _counts(stat) == expected
    assert out.step_x[-1] == prob.xf


def test_explicit_pairs_use_user_tolerances():
    conf = Config.create("dopri5", atol=1e-6, rtol=1e-3)
    assert conf.rtol_int == 1e-3 and conf.atol_int == 1e-6
    assert conf.stab_beta == 0.04 and conf.facmax == 5.0

    conf = Config.create("moeuler")
    assert conf.rtol_int == conf.rtol and conf.atol_int == conf.atol
    assert conf.stab_beta == 0.0 and conf.facmax == 8.0

