import math

import pytest
import torch

from adaptode import RowPartitionedJacobian, Triplet, compare_jacobians, numerical_jacobian
from adaptode.jacobian import JacobianEvaluator
from adaptode.problems import hw_amplifier, robertson
from adaptode.stat import Stat


def _residual(out, x):
    out[0] = x[0] ** 3 + x[1] - 1.0
    out[1] = -x[0] + x[1] ** 3 + 1.0


def _jac(dfdx, x):
    dfdx[0, 0] = 3.0 * x[0] ** 2
    dfdx[0, 1] = 1.0
    dfdx[1, 0] = -1.0
    dfdx[1, 1] = 3.0 * x[1] ** 2


def test_numerical_jacobian_dense_and_sparse():
    x = torch.tensor([0.7, -0.3], dtype=torch.float64)
    fx = torch.empty(2, dtype=torch.float64)
    _residual(fx, x)
    J = torch.zeros(2, 2, dtype=torch.float64)
    assert numerical_jacobian(_residual, x, fx, J) == 2
    Ja = torch.zeros(2, 2, dtype=torch.float64)
    _jac(Ja, x)
    assert torch.allclose(J, Ja, atol=1e-6)

    T = Triplet(2, 2)
    numerical_jacobian(_residual, x, fx, T)
    assert torch.allclose(T.to_dense(), J)


def test_compare_jacobians():
    x = torch.tensor([0.5, 0.5], dtype=torch.float64)
    _, _, diff = compare_jacobians(_residual, _jac, x)
    assert diff < 1e-6


def test_partitions_cover_rows():
    rpj = RowPartitionedJacobian(lambda *a: None, 8, 3)
    parts = rpj.partitions()
    assert [len(r) for r in parts] == [3, 3, 2]
    assert [i for r in parts for i in r] == list(range(8))
    assert len(RowPartitionedJacobian(lambda *a: None, 2, 5).partitions()) == 2
    with pytest.raises(ValueError):
        RowPartitionedJacobian(lambda *a: None, 0, 1)


def test_row_partitioned_matches_serial():
    prob = hw_amplifier()
    y = prob.y0.clone()
    y[3] += 0.1
    serial = Triplet(8, 8)
    prob.jac(serial, 0.0, y)
    parallel = Triplet(8, 8)
    RowPartitionedJacobian(prob.jac_rows, 8, 3)(parallel, 0.0, y)
    assert torch.equal(parallel.to_dense(), serial.to_dense())


def test_evaluator_counts_numerical_evaluations():
    prob = robertson()
    prob.jac = None
    stat = Stat()
    ev = JacobianEvaluator(prob, stat)
    y = torch.tensor([0.9, 1e-5, 0.1], dtype=torch.float64)
    fy = torch.empty(3, dtype=torch.float64)
    prob.fcn(fy, 0.0, y)
    J = ev.evaluate(0.0, y, fy)
    assert stat.njeval == 1 and stat.nfeval == 3
    assert J.shape == (3, 3)
    assert math.isclose(float(J[0, 0]), -0.04, rel_tol=1e-4)


def test_evaluator_uses_row_partitions_for_sparse_problems():
    prob = hw_amplifier()
    ev = JacobianEvaluator(prob, Stat(), nworkers=2)
    assert isinstance(ev.jac_fn, RowPartitionedJacobian)
    J = ev.evaluate(0.0, prob.y0, torch.zeros(8, dtype=torch.float64))
    assert J.shape == (8, 8) and J.nnz == 16
