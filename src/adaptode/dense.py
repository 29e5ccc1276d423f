# dense.py -----------------------------------------------------------------
"""
Dense (continuous) output.

Every accepted step stores one coefficient block covering [x_start, x_end]:

* ``RadauBlock`` – value at the step end plus the three divided differences
  of the collocation polynomial (exact at the step end);
* ``DopriBlock`` – Shampine's five rows for Dormand–Prince 5(4).

``DenseOutput`` answers point queries by bisection over the step ends and
replays equally spaced samples with ``sample(dx)``.  The live callback of the
solver uses the same ``DenseCursor``, so both produce identical sequences.
"""
import bisect
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import torch

from .interp_radau import radau_interpolate


@dataclass
class RadauBlock:
    x:     float                  # step end
    h:     float
    y:     torch.Tensor           # (n,) accepted value at x
    cont:  torch.Tensor           # (n, 3)

    @property
    def x_start(self) -> float:
        return self.x - self.h

    @property
    def x_end(self) -> float:
        return self.x

    @property
    def y_end(self) -> torch.Tensor:
        return self.y

    def __call__(self, x: float) -> torch.Tensor:
        return radau_interpolate([x], self.x, self.y, self.h, self.cont)[:, 0]


@dataclass
class DopriBlock:
    x_old: float                  # step start
    x_new: float                  # step end
    h:     float
    rows:  torch.Tensor           # (5, n) Shampine coefficients
    y_new: torch.Tensor           # (n,)

    @property
    def x_start(self) -> float:
        return self.x_old

    @property
    def x_end(self) -> float:
        return self.x_new

    @property
    def y_end(self) -> torch.Tensor:
        return self.y_new

    def __call__(self, x: float) -> torch.Tensor:
        θ  = (x - self.x_old) / self.h
        θ1 = 1.0 - θ
        r  = self.rows
        return r[0] + θ * (r[1] + θ1 * (r[2] + θ * (r[3] + θ1 * r[4])))


# --------------------------------------------------------------------------- #
class DenseCursor:
    """Walks the output grid x0 + k·dx across accepted steps.

    Grid points are computed from the integer k (no accumulated drift).  On
    the last step the grid stops short of xf and the exact end point is
    emitted instead.
    """

    def __init__(self, x0: float, xf: float, dx: float):
        self.x0, self.xf, self.dx = x0, xf, dx
        self.tiny = 1e-12 * max(1.0, abs(xf))
        self.k    = 1

    def first(self, y0: torch.Tensor) -> Tuple[int, float, torch.Tensor]:
        self.k = 1
        return 0, self.x0, y0.clone()

    def advance(self, istep: int, block, last: bool
                ) -> List[Tuple[int, float, torch.Tensor]]:
        out = []
        if last:
            while True:
                xo = self.x0 + self.k * self.dx
                if not xo < self.xf - self.tiny:
                    break
                out.append((istep, xo, block(xo)))
                self.k += 1
            out.append((istep, self.xf, block.y_end.clone()))
            return out
        while True:
            xo = self.x0 + self.k * self.dx
            if xo > block.x_end:
                break
            out.append((istep, xo, block(xo)))
            self.k += 1
        return out


# --------------------------------------------------------------------------- #
class DenseOutput:
    """Coefficient store of one integration."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.x0: Optional[float] = None
        self.y0: Optional[torch.Tensor] = None
        self.blocks: list = []
        self._ends: List[float] = []

    def start(self, x0: float, y0: torch.Tensor) -> None:
        self.reset()
        self.x0, self.y0 = x0, y0.clone()

    def push(self, block) -> None:
        self.blocks.append(block)
        self._ends.append(block.x_end)

    def __len__(self) -> int:
        return len(self.blocks)

    @property
    def x_end(self) -> float:
        return self._ends[-1] if self._ends else self.x0

    def __call__(self, x: float) -> torch.Tensor:
        """y(x) for x0 ≤ x ≤ x_end."""
        if self.x0 is None:
            raise ValueError("dense output is empty")
        if x == self.x0:
            return self.y0.clone()
        if not (self.x0 < x <= self.x_end):
            raise ValueError(
                f"x={x:g} outside the integrated interval [{self.x0:g}, {self.x_end:g}]")
        i = bisect.bisect_left(self._ends, x)
        return self.blocks[i](x)

    def sample(self, dx: float) -> Iterator[Tuple[int, float, torch.Tensor]]:
        """Yield (step_index, x, y) on the grid x0 + k·dx, ending at x_end."""
        if not (dx > 0.0):
            raise ValueError(f"dx must be positive (got {dx})")
        if self.x0 is None:
            return
        cursor = DenseCursor(self.x0, self.x_end, dx)
        yield cursor.first(self.y0)
        nb = len(self.blocks)
        for i, block in enumerate(self.blocks, start=1):
            yield from cursor.advance(i, block, last=(i == nb))
