# stat.py ------------------------------------------------------------------
from dataclasses import dataclass, fields


@dataclass
class Stat:
    """Counters of one integration (reset by every ``Solver.solve``)."""
    nfeval:    int = 0     # calls to fcn (incl. numerical-Jacobian perturbations)
    njeval:    int = 0     # Jacobian evaluations
    nsteps:    int = 0     # step attempts of the top-level loop
    naccepted: int = 0     # accepted steps (adaptive mode only)
    nrejected: int = 0     # error-test rejections after the first acceptance
    ndecomp:   int = 0     # factorizations (Radau5: real + complex = 1)
    nlinsol:   int = 0     # linear solves inside the Newton loops
    nitmax:    int = 0     # max Newton iterations used in a single solve

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, 0)

    def update_nitmax(self, nit: int) -> None:
        if nit > self.nitmax:
            self.nitmax = nit

    def copy(self) -> "Stat":
        return Stat(**{f.name: getattr(self, f.name) for f in fields(self)})

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def __str__(self) -> str:
        return (f"number of F evaluations   = {self.nfeval:6d}\n"
                f"number of J evaluations   = {self.njeval:6d}\n"
                f"total number of steps     = {self.nsteps:6d}\n"
                f"number of accepted steps  = {self.naccepted:6d}\n"
                f"number of rejected steps  = {self.nrejected:6d}\n"
                f"number of decompositions  = {self.ndecomp:6d}\n"
                f"number of lin solutions   = {self.nlinsol:6d}\n"
                f"max number of iterations  = {self.nitmax:6d}")
