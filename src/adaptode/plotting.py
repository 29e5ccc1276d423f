# plotting.py --------------------------------------------------------------
"""
Quick-look figures for a finished integration (matplotlib, object API).

    fig = plot_solution(out, problem=prob)     # y_i(x): steps, dense, exact
    fig = plot_step_sizes(out)                 # h(x) on a log axis
    fig.savefig("sol.png", dpi=300)
"""
from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np


def plot_solution(out, problem=None, components: Optional[Sequence[int]] = None,
                  fig=None, title: Optional[str] = None):
    """One panel per component: accepted steps (markers), dense rows
    (line) and, when ``problem.yana`` is known, the exact solution."""
    if out.nstep == 0 and out.ndense == 0:
        raise ValueError("output holds no data; enable step_out or dense output")
    comps = list(range(out.ndim)) if components is None else list(components)
    if fig is None:
        fig = plt.figure(figsize=(7, 2.2 * len(comps)))
    axes = fig.subplots(len(comps), 1, sharex=True, squeeze=False)[:, 0]

    xs = out.get_step_x().numpy() if out.nstep else None
    xd = out.get_dense_x().numpy() if out.ndense else None
    for ax, i in zip(axes, comps):
        if xd is not None:
            ax.plot(xd, out.get_dense_y(i).numpy(), "b-", lw=1.2, label="dense")
        if xs is not None:
            ax.plot(xs, out.get_step_y(i).numpy(), "ko", ms=3, label="steps")
        if problem is not None and getattr(problem, "yana", None) is not None:
            lo = xs[0] if xs is not None else xd[0]
            hi = xs[-1] if xs is not None else xd[-1]
            xx = np.linspace(lo, hi, 201)
            ax.plot(xx, [problem.calc_yana(i, x) for x in xx], "r--", lw=1,
                    label="exact")
        ax.set_ylabel(f"y{i}")
        ax.grid(True, ls="--", alpha=0.5)
    axes[-1].set_xlabel("x")
    axes[0].legend(loc="best", fontsize="small")
    if title is None and problem is not None:
        title = getattr(problem, "name", None)
    if title:
        axes[0].set_title(title)
    fig.tight_layout()
    return fig


def plot_step_sizes(out, ax=None, label: Optional[str] = None):
    """Accepted step sizes against x (initial point skipped, h = 0 there)."""
    if out.nstep < 2:
        raise ValueError("need at least one recorded step")
    if ax is None:
        fig, ax = plt.subplots(figsize=(7, 3))
    x = out.get_step_x().numpy()[1:]
    h = out.get_step_h().numpy()[1:]
    ax.semilogy(x, h, "-o", ms=3, label=label)
    ax.set_xlabel("x")
    ax.set_ylabel("h")
    ax.grid(True, which="both", ls="--", alpha=0.5)
    if label:
        ax.legend()
    return ax.figure
