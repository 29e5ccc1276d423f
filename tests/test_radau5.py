import numpy as np
import pytest
import torch
from scipy.integrate import solve_ivp

from adaptode import Config, Solver, hw_amplifier, hw_eq11, robertson, van_der_pol


def _counts(stat):
    return (stat.nfeval, stat.njeval, stat.nsteps, stat.naccepted, stat.nrejected,
            stat.ndecomp, stat.nlinsol, stat.nitmax)


def test_eq11_counts_and_error():
    prob = hw_eq11()
    y, stat, out = prob.solve("radau5")
    assert _counts(stat) == (66, 1, 15, 15, 0, 13, 17, 2)
    assert abs(float(y[0]) - prob.calc_yana(0, prob.xf)) < 2.889e-5
    assert out.nstep == 16 and out.step_x[-1] == prob.xf


def test_robertson_counts():
    prob = robertson()
    y, stat, _ = prob.solve("radau5")
    assert _counts(stat) == (87, 8, 17, 15, 1, 15, 24, 2)
    assert float(y.sum()) == pytest.approx(1.0, abs=1e-6)          # mass conservation


def test_robertson_numerical_jacobian():
    prob = robertson()
    y_ana, _, _ = prob.solve("radau5")
    y_num, st_num, _ = prob.solve("radau5", numjac=True)
    assert st_num.njeval >= 1
    assert st_num.nfeval > 3 * st_num.njeval
    assert torch.allclose(y_num, y_ana, rtol=1e-2, atol=1e-7)


@pytest.mark.parametrize("distr", [1, 2])
def test_amplifier_reaches_end(distr):
    prob = hw_amplifier()
    y, stat, out = prob.solve("radau5", distr=distr, max_steps=5000)
    assert out.step_x[-1] == prob.xf
    assert stat.naccepted > 10
    assert torch.isfinite(y).all()


def test_amplifier_distributed_jacobian_is_identical():
    prob = hw_amplifier()
    y1, s1, _ = prob.solve("radau5", distr=1, max_steps=5000)
    y3, s3, _ = prob.solve("radau5", distr=3, max_steps=5000)
    assert torch.equal(y1, y3) and s1 == s3


def test_van_der_pol_against_scipy():
    eps = 1e-6
    prob = van_der_pol(eps)
    y, stat, _ = prob.solve("radau5", atol=1e-6, rtol=1e-6, ini_h=1e-6,
                            max_steps=10000)

    def rhs(t, u):
        return [u[1], ((1.0 - u[0] ** 2) * u[1] - u[0]) / eps]

    def jac(t, u):
        return [[0.0, 1.0],
                [(-2.0 * u[0] * u[1] - 1.0) / eps, (1.0 - u[0] ** 2) / eps]]

    ref = solve_ivp(rhs, (prob.x0, prob.xf), prob.y0.numpy(), method="Radau",
                    jac=jac, rtol=1e-10, atol=1e-10)
    assert ref.success
    assert np.allclose(y.numpy()[0], ref.y[0, -1], rtol=1e-3)
    assert stat.nrejected < stat.naccepted


def test_constant_jacobian_evaluates_once():
    prob = hw_eq11()
    _, stat, _ = prob.solve("radau5", cte_jac=True)
    assert stat.njeval == 1


def test_fixed_steps():
    prob = hw_eq11()
    y, stat, _ = prob.solve("radau5", fixed=True)
    assert stat.nsteps == 40 and stat.naccepted == 0
    assert abs(float(y[0]) - prob.calc_yana(0, prob.xf)) < 1e-4


def test_zero_trial_start_values():
    prob = robertson()
    y_ex, _, _ = prob.solve("radau5")
    y_zt, _, _ = prob.solve("radau5", zero_trial=True)
    assert torch.allclose(y_ex, y_zt, rtol=1e-2, atol=1e-6)


def test_h_max_limits_steps():
    prob = hw_eq11()
    _, _, out = prob.solve("radau5", h_max=0.05)
    h = out.get_step_h()[1:]
    assert float(h.max()) <= 0.05 + 1e-15


def test_large_first_step_recovers():
    prob = robertson()
    y, stat, out = prob.solve("radau5", ini_h=0.3)
    assert out.step_x[-1] == prob.xf
    assert stat.nsteps >= stat.naccepted + stat.nrejected
    assert float(y.sum()) == pytest.approx(1.0, abs=1e-6)


def test_newton_failure_bookkeeping():
    prob = robertson()
    conf = Config.create("radau5")
    sol = Solver(prob, conf)
    sol._setup()
    drv, work = sol.driver, sol.work
    drv.need_decomp, drv.need_jac, drv.caljac = False, False, False
    work.dvfac = 0.5
    assert drv.newton_failed(0.1) == pytest.approx(0.05)
    assert drv.need_decomp and drv.need_jac

    drv.caljac = True
    drv.newton_failed(0.1)
    assert not drv.need_jac


def test_reject_first_step_uses_mfirst_rej():
    prob = robertson()
    sol = Solver(prob, Config.create("radau5", mfirst_rej=0.1))
    sol._setup()
    sol.work.first = True
    h, last = sol.driver.reject(0.0, 0.2, 0.3)
    assert h == pytest.approx(0.02) and not last


def test_van_der_pol_counts():
    prob = van_der_pol()
    _, stat, out = prob.solve("radau5")
    assert _counts(stat) == (2233, 160, 280, 241, 7, 251, 663, 6)
    assert out.step_x[-1] == prob.xf


def test_van_der_pol_dense_grid_counts():
    prob = van_der_pol()
    rows = []

    def on_dense(istep, h, x, y, xout, yout):
        rows.append((istep, xout))

    conf = Config.create("radau5", ini_h=1e-6, atol=1e-4, rtol=1e-4)
    conf.set_dense_out(True, 0.2, on_dense)
    y0 = torch.tensor([2.0, -0.66], dtype=torch.float64)
    with Solver(prob, conf) as sol:
        sol.solve(y0)
        stat, out = sol.stat, sol.out

    assert _counts(stat) == (2218, 161, 275, 238, 8, 248, 660, 6)
    steps = [0, 10, 11, 13, 22, 123, 124, 126, 133, 237, 238]
    assert out.get_dense_s().tolist() == steps
    assert [s for s, _ in rows] == steps
    assert out.get_dense_x().tolist() == pytest.approx([0.2 * i for i in range(11)],
                                                       abs=1e-15)
