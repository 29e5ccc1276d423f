import math

import pytest
import torch

from adaptode.controller import (accept, gustafsson, propose, propose_lund,
                                 radau_propose, shrink_after_reject)
from adaptode.norms import rms_error, rms_norm, scaling

BOUNDS = dict(safe=0.9, facmin=0.2, facmax=8.0)


def test_accept_threshold():
    assert accept(0.999) and not accept(1.0)


def test_propose_clamps():
    assert propose(1.0, 1e-30, expo=0.2, **BOUNDS) == pytest.approx(8.0)
    assert propose(1.0, 1e30, expo=0.2, **BOUNDS) == pytest.approx(0.2)
    h = propose(0.1, 0.5, expo=0.2, **BOUNDS)
    assert h == pytest.approx(0.1 * 0.9 * 0.5 ** -0.2)


def test_lund_reduces_to_classical_without_beta():
    h, fac11 = propose_lund(0.1, 0.3, 1e-4, expo=0.2, beta=0.0, **BOUNDS)
    assert h == pytest.approx(propose(0.1, 0.3, expo=0.2, **BOUNDS))
    assert fac11 == pytest.approx(0.3 ** 0.2)
    h_beta, _ = propose_lund(0.1, 0.3, 0.3, expo=0.2, beta=0.04, **BOUNDS)
    assert h_beta != h


def test_shrink_after_reject_never_grows():
    fac11 = 2.0 ** 0.2
    assert shrink_after_reject(0.1, fac11, safe=0.9, facmin=0.2) < 0.1
    assert shrink_after_reject(0.1, 1e6, safe=0.9, facmin=0.2) == pytest.approx(0.02)


def test_radau_safety_drops_with_iterations():
    h1, q1 = radau_propose(0.1, 0.5, 1, nit=7, **BOUNDS)
    h7, _ = radau_propose(0.1, 0.5, 7, nit=7, **BOUNDS)
    assert h7 < h1
    assert h1 == pytest.approx(0.1 / q1)
    assert q1 == pytest.approx(0.5 ** 0.25 / 0.9)


def test_gustafsson_is_more_cautious():
    h_new, quot = radau_propose(0.1, 0.5, 1, nit=7, **BOUNDS)
    h_g = gustafsson(0.1, quot, 0.5, 0.05, 1e-2, **BOUNDS)
    assert h_g <= h_new


def test_norms():
    y = torch.tensor([1.0, -2.0], dtype=torch.float64)
    scal = torch.empty(2, dtype=torch.float64)
    scaling(scal, y, 1e-3, 1e-2)
    assert torch.allclose(scal, torch.tensor([0.011, 0.021], dtype=torch.float64))
    v = torch.stack([scal, 2.0 * scal], dim=1)                 # (n, 2)
    assert rms_norm(v, scal) == pytest.approx(math.sqrt(2.5))
    err = torch.tensor([1e-3, 0.0], dtype=torch.float64)
    e = rms_error(err, y, 2.0 * y, 1e-3, 1e-2)
    assert e == pytest.approx(math.sqrt(0.5) * 1e-3 / (1e-3 + 2e-2))
