#!/usr/bin/env python3
# examples/vdp_driver.py
"""
Integrate the Van-der-Pol oscillator with any of the adaptive methods.
You can switch methods with  --method {radau5,dopri5,moeuler}
"""

import argparse, time, logging
import matplotlib
matplotlib.use("Agg")

from adaptode import Config, Solver, setup_logging, van_der_pol
from adaptode.plotting import plot_solution, plot_step_sizes


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--method", choices=("radau5", "dopri5", "moeuler"),
                        default="radau5", help="integration method")
    parser.add_argument("--eps", type=float, default=1e-6,
                        help="stiffness parameter ε (small = stiff)")
    parser.add_argument("--tol", type=float, default=1e-4,
                        help="atol = rtol")
    parser.add_argument("--dense-dx", type=float, default=0.01,
                        help="spacing of the dense output")
    parser.add_argument("--numjac", action="store_true",
                        help="finite-difference Jacobian")
    parser.add_argument("--plot", default="",
                        help="save solution/step-size figures with this prefix")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    prob = van_der_pol(args.eps)
    if args.numjac:
        prob.jac = None
    conf = Config.create(args.method, atol=args.tol, rtol=args.tol,
                         ini_h=1e-6, max_steps=100000)
    conf.set_dense_out(True, args.dense_dx)

    print(f"\nMethod : {args.method.upper()}")
    print(f"ε       : {args.eps}")
    print(f"x span  : [{prob.x0}, {prob.xf}]")

    with Solver(prob, conf) as sol:
        t_start = time.perf_counter()
        y, stat = sol.solve()
        t_end   = time.perf_counter()

    print("\n--- results -------------------------------------------------")
    print(stat)
    print(f"y(xf)          : {y.tolist()}")
    print(f"wall time      : {1e3*(t_end - t_start):.1f} ms")

    if args.plot:
        plot_solution(sol.out, problem=prob).savefig(f"{args.plot}_sol.png", dpi=300)
        plot_step_sizes(sol.out, label=args.method).savefig(f"{args.plot}_h.png", dpi=300)


if __name__ == "__main__":
    main()
