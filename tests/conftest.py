import matplotlib
matplotlib.use("Agg")

import pytest
import torch

from adaptode import Config, Problem, Solver


@pytest.fixture
def decay():
    """y' = -y on [0, 1], y(0) = 1."""
    def fcn(f, x, y):
        f[0] = -y[0]

    def jac(dfdy, x, y):
        dfdy[0, 0] = -1.0

    return Problem(1, fcn, jac, name="decay",
                   y0=torch.tensor([1.0], dtype=torch.float64), x0=0.0, xf=1.0)


@pytest.fixture
def run():
    """Solve a problem with the given method and options; returns (y, stat, out)."""
    def _run(problem, method, fixed_dx=None, **options):
        conf = Config.create(method, **options)
        if fixed_dx is not None:
            conf.set_fixed_h(fixed_dx)
        with Solver(problem, conf) as sol:
            y, stat = sol.solve()
        return y, stat, sol.out
    return _run
