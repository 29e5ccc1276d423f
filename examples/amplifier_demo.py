#!/usr/bin/env python3
# examples/amplifier_demo.py
"""
Transistor amplifier DAE (singular mass matrix, sparse Jacobian).
``--workers`` > 1 assembles the Jacobian from row blocks on a thread pool.
"""

import argparse, time
import matplotlib
matplotlib.use("Agg")

from adaptode import Config, Solver, hw_amplifier, setup_logging
from adaptode.plotting import plot_solution


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--dense-dx", type=float, default=5e-4)
    args = parser.parse_args()

    setup_logging()
    prob = hw_amplifier()
    conf = Config.create("radau5", distr=args.workers, max_steps=10000,
                         dense_dx=args.dense_dx, **prob.options)

    with Solver(prob, conf) as sol:
        t0 = time.perf_counter()
        y, stat = sol.solve()
        t1 = time.perf_counter()

    print(stat)
    print(f"y(xf) = {y.tolist()}")
    print(f"wall time: {1e3*(t1 - t0):.1f} ms with {args.workers} worker(s)")
    plot_solution(sol.out, problem=prob, components=[0, 4, 7]).savefig(
        "amplifier.png", dpi=300)


if __name__ == "__main__":
    main()
