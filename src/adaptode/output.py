# output.py ----------------------------------------------------------------
from dataclasses import dataclass, field
from typing import List

import torch

from .dense import DenseOutput


@dataclass
class Output:
    """Append-only record of one integration.

    Step output holds the accepted (x, y, h) triples, starting with the
    initial state recorded with h = 0.  Dense output holds the sampled
    (step_index, x, y) rows plus the coefficient store for point queries.
    All accessors return fresh tensors.
    """
    ndim:     int
    step_out: bool = True
    dense_on: bool = False

    step_x:   List[float]        = field(default_factory=list)
    step_y:   List[torch.Tensor] = field(default_factory=list)
    step_h:   List[float]        = field(default_factory=list)
    dense_s:  List[int]          = field(default_factory=list)
    dense_x:  List[float]        = field(default_factory=list)
    dense_y:  List[torch.Tensor] = field(default_factory=list)
    dense:    DenseOutput        = field(default_factory=DenseOutput)

    def reset(self) -> None:
        for buf in (self.step_x, self.step_y, self.step_h,
                    self.dense_s, self.dense_x, self.dense_y):
            buf.clear()
        self.dense.reset()

    # ---- recording -----------------------------------------------------------
    def push_step(self, x: float, y: torch.Tensor, h: float) -> None:
        if self.step_out:
            self.step_x.append(float(x))
            self.step_y.append(y.clone())
            self.step_h.append(float(h))

    def push_dense(self, istep: int, x: float, y: torch.Tensor) -> None:
        self.dense_s.append(int(istep))
        self.dense_x.append(float(x))
        self.dense_y.append(y.clone())

    # ---- accessors -----------------------------------------------------------
    @property
    def nstep(self) -> int:
        return len(self.step_x)

    @property
    def ndense(self) -> int:
        return len(self.dense_x)

    def get_step_x(self) -> torch.Tensor:
        return torch.tensor(self.step_x, dtype=torch.float64)

    def get_step_h(self) -> torch.Tensor:
        return torch.tensor(self.step_h, dtype=torch.float64)

    def get_step_y(self, i: int) -> torch.Tensor:
        """Component ``i`` at every recorded step."""
        self._check_component(i)
        return torch.tensor([float(y[i]) for y in self.step_y], dtype=torch.float64)

    def get_step_y_all(self) -> torch.Tensor:
        """(nstep, ndim) array of the recorded states."""
        if not self.step_y:
            return torch.zeros(0, self.ndim, dtype=torch.float64)
        return torch.stack(self.step_y).clone()

    def get_dense_s(self) -> torch.Tensor:
        return torch.tensor(self.dense_s, dtype=torch.long)

    def get_dense_x(self) -> torch.Tensor:
        return torch.tensor(self.dense_x, dtype=torch.float64)

    def get_dense_y(self, i: int) -> torch.Tensor:
        self._check_component(i)
        return torch.tensor([float(y[i]) for y in self.dense_y], dtype=torch.float64)

    def _check_component(self, i: int) -> None:
        if not (0 <= i < self.ndim):
            raise IndexError(f"component {i} outside 0..{self.ndim - 1}")
