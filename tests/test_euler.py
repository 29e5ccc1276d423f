import pytest
import torch

from adaptode import ConfigurationError, NewtonConvergenceError, Problem, hw_eq11


def _counts(stat):
    return (stat.nfeval, stat.njeval, stat.nsteps, stat.naccepted, stat.nrejected,
            stat.ndecomp, stat.nlinsol, stat.nitmax)


def test_fweuler_eq11():
    prob = hw_eq11()
    y, stat, out = prob.solve("fweuler", fixed=True)
    assert _counts(stat) == (40, 0, 40, 0, 0, 0, 0, 0)
    assert abs(float(y[0]) - prob.calc_yana(0, prob.xf)) < 0.004753
    assert out.nstep == 41 and out.step_x[-1] == prob.xf


def test_bweuler_eq11():
    prob = hw_eq11()
    y, stat, _ = prob.solve("bweuler", fixed=True)
    assert _counts(stat) == (80, 40, 40, 0, 0, 40, 40, 2)
    assert abs(float(y[0]) - prob.calc_yana(0, prob.xf)) < 0.005


def test_bweuler_numerical_jacobian_counts_perturbations():
    prob = hw_eq11()
    y_ana, st_ana, _ = prob.solve("bweuler", fixed=True)
    y_num, st_num, _ = prob.solve("bweuler", fixed=True, numjac=True)
    assert st_num.njeval == 40
    assert st_num.nfeval >= st_ana.nfeval + st_num.njeval
    assert torch.allclose(y_ana, y_num, atol=1e-8)


def test_bweuler_constant_jacobian():
    _, stat, _ = hw_eq11().solve("bweuler", fixed=True, cte_jac=True)
    assert stat.njeval == 1 and stat.ndecomp == 1


def test_fweuler_first_order(decay, run):
    errs = []
    for dx in (0.01, 0.005):
        y, _, _ = run(decay, "fweuler", fixed_dx=dx)
        errs.append(abs(float(y[0]) - 0.36787944117144233))
    assert 1.8 < errs[0] / errs[1] < 2.2


def test_bweuler_with_mass_matrix():
    # 2·y' = -2·y  ⇔  y' = -y
    def fcn(f, x, y):
        f[0] = -2.0 * y[0]

    def jac(dfdy, x, y):
        dfdy[0, 0] = -2.0

    prob = Problem(1, fcn, jac, mass=torch.tensor([[2.0]]),
                   y0=torch.tensor([1.0], dtype=torch.float64), xf=1.0, dx=0.001)
    y, _, _ = prob.solve("bweuler", fixed=True)
    assert abs(float(y[0]) - 0.36787944117144233) < 1e-3


def test_explicit_methods_reject_mass_matrix():
    prob = hw_eq11()
    prob.mass = torch.eye(1)
    with pytest.raises(ConfigurationError, match="mass matrix"):
        prob.solve("fweuler", fixed=True)


def test_bweuler_newton_failure_is_fatal():
    prob = hw_eq11()
    with pytest.raises(NewtonConvergenceError) as info:
        prob.solve("bweuler", fixed=True, max_it=1)
    assert info.value.stat is not None
