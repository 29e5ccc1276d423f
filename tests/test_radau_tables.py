import math

import torch

from adaptode.radau_tables import (ALPH, BETA, C1, C2, U1, butcher_matrix, coertv3,
                                   transformed_inverse)


def test_nodes():
    assert math.isclose(C1, (4.0 - math.sqrt(6.0)) / 10.0)
    assert math.isclose(C2, (4.0 + math.sqrt(6.0)) / 10.0)


def test_transformation_matrices_are_inverse():
    T, TI, C, *_ = coertv3()
    assert torch.allclose(T @ TI, torch.eye(3, dtype=torch.float64), atol=1e-12)
    assert torch.allclose(C, torch.tensor([C1, C2, 1.0], dtype=torch.float64))


def test_transformed_inverse_is_block_diagonal():
    got, block = transformed_inverse()
    assert torch.allclose(got, block, atol=1e-10)
    assert math.isclose(float(block[0, 0]), U1, rel_tol=1e-12)
    assert math.isclose(float(block[1, 1]), ALPH)
    assert math.isclose(float(block[2, 1]), BETA)


def test_butcher_matrix_row_sums_are_nodes():
    c = torch.tensor([C1, C2, 1.0], dtype=torch.float64)
    A = butcher_matrix(c)
    assert torch.allclose(A.sum(dim=1), c, atol=1e-13)
