import logging

import pytest
import torch

from adaptode import (Config, ConfigurationError, OdeError, Problem, Solver,
                      StepBudgetError, StepSizeError, hw_eq11, robertson)


def test_default_config_is_radau5(decay):
    sol = Solver(decay)
    y, stat = sol.solve()
    assert sol.conf.method.value == "radau5"
    assert abs(float(y[0]) - 0.36787944117144233) < 1e-4
    assert stat.naccepted >= 1


def test_y0_is_not_modified(decay):
    y0 = decay.y0.clone()
    Solver(decay).solve()
    assert torch.equal(decay.y0, y0)


@pytest.mark.parametrize("method", ["moeuler", "dopri5", "radau5"])
def test_endpoint_is_exact(decay, run, method):
    _, _, out = run(decay, method, atol=1e-6, rtol=1e-6)
    assert out.step_x[-1] == 1.0
    assert out.step_x[0] == 0.0 and out.step_h[0] == 0.0


def test_fixed_endpoint_is_exact(decay, run):
    _, stat, out = run(decay, "dopri5", fixed_dx=0.3)
    assert stat.nsteps == 4
    assert out.step_x[-1] == 1.0
    assert out.get_step_h()[1:].sum().item() == pytest.approx(1.0)


def test_step_budget_error_carries_stat():
    with pytest.raises(StepBudgetError) as info:
        robertson().solve("radau5", max_steps=3)
    stat = info.value.stat
    assert stat is not None and stat.nsteps == 4


def test_step_size_error():
    # y' = y² blows up at x = 1
    def fcn(f, x, y):
        f[0] = y[0] * y[0]

    prob = Problem(1, fcn, y0=torch.tensor([1.0], dtype=torch.float64), xf=2.0)
    with pytest.raises(OdeError) as info:
        prob.solve("dopri5", atol=1e-6, rtol=1e-6, h_min=1e-6, max_steps=20000)
    assert isinstance(info.value, (StepSizeError, StepBudgetError))
    assert info.value.stat.naccepted > 0


def test_configuration_errors(decay):
    with pytest.raises(ConfigurationError):
        Solver(decay).solve(y0=torch.zeros(2))
    with pytest.raises(ConfigurationError):
        Solver(decay).solve(x0=1.0, xf=0.5)
    with pytest.raises(ConfigurationError, match="mass"):
        decay.mass = torch.eye(2)
        Solver(decay)
    with pytest.raises(ConfigurationError, match="y0 and xf"):
        Solver(Problem(1, decay.fcn)).solve()


def test_step_callback_sees_every_step(decay):
    seen = []

    def on_step(istep, h, x, y):
        seen.append((istep, x))

    conf = Config.create("dopri5", atol=1e-6, rtol=1e-6)
    conf.set_step_out(True, on_step)
    sol = Solver(decay, conf)
    _, stat = sol.solve()
    assert seen[0] == (0, 0.0)
    assert [s for s, _ in seen] == list(range(stat.naccepted + 1))
    assert [x for _, x in seen] == sol.out.step_x


def test_step_callback_can_stop(decay):
    conf = Config.create("radau5")
    conf.set_step_out(True, lambda istep, h, x, y: istep >= 2)
    sol = Solver(decay, conf)
    _, stat = sol.solve()
    assert stat.naccepted == 2
    assert sol.out.nstep == 3 and sol.out.step_x[-1] < 1.0


def test_step_output_disabled(decay, run):
    _, _, out = run(decay, "radau5", step_out=False)
    assert out.nstep == 0
    with pytest.raises(IndexError):
        out.get_step_y(1)


def test_context_manager_releases_factorizations():
    prob = hw_eq11()
    with Solver(prob, Config()) as sol:
        sol.solve()
        assert sol.driver.e1.ready
    assert not sol.driver.e1.ready


def test_solver_is_reusable_with_new_config(decay):
    sol = Solver(decay)
    y1, _ = sol.solve()
    sol.conf = Config.create("dopri5", atol=1e-6, rtol=1e-6)
    y2, stat = sol.solve()
    assert stat.ndecomp == 0
    assert torch.allclose(y1, y2, atol=1e-3)


def test_info_log_summary(decay, caplog):
    with caplog.at_level(logging.INFO, logger="adaptode"):
        Solver(decay).solve()
    assert any("f-evaluations" in r.getMessage() for r in caplog.records)


def test_output_accessors(decay, run):
    _, _, out = run(decay, "radau5")
    all_y = out.get_step_y_all()
    assert all_y.shape == (out.nstep, 1)
    assert torch.equal(all_y[:, 0], out.get_step_y(0))


def test_rejected_attempt_does_not_advance():
    prob = robertson()
    xs = []

    def on_step(istep, h, x, y):
        xs.append(x)

    conf = Config.create("radau5", **prob.options)
    conf.set_step_out(True, on_step)
    with Solver(prob, conf) as sol:
        _, stat = sol.solve()
        out = sol.out

    assert stat.nrejected >= 1
    assert len(xs) == stat.naccepted + 1
    assert all(b > a for a, b in zip(xs, xs[1:]))
    assert list(out.step_x) == xs
    assert out.nstep == stat.naccepted + 1
