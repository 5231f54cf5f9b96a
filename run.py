#!/usr/bin/env python3
"""colorpic simulation entrypoint

Runs a lattice Yang-Mills simulation with an optional light-cone source made
of random colored point charges (monopole moment removed) and an optional
Gaussian plane pulse.

Usage:
    python run.py                                  # 2D SU(2), one source
    python run.py --grid 16 16 32 --steps 64       # 3D lattice
    python run.py --colors 1 --solver maxwell      # Abelian run
    python run.py --no-source --pulse              # free plane pulse
"""

from __future__ import annotations

import argparse
import random

from colorpic.currents.particle_lc import ParticleLCCurrent
from colorpic.fields.generators import PlanePulse
from colorpic.kernels.leapfrog import SolverKind
from colorpic.simulation.config import SimulationConfig
from colorpic.simulation.runner import run_simulation


def build_source(args: argparse.Namespace) -> ParticleLCCurrent:
    d = len(args.grid)
    direction = d - 1
    num_components = 1 if args.colors == 1 else args.colors * args.colors - 1
    source = ParticleLCCurrent(
        direction=direction,
        orientation=args.orientation,
        location=args.location if args.location is not None else 0.5 * args.grid[direction] * args.spacing,
        longitudinal_width=args.width,
        remove_monopole=True,
    )
    rng = random.Random(args.seed)
    transverse = [n for k, n in enumerate(args.grid) if k != direction]
    for _ in range(args.charges):
        location = [rng.uniform(0.0, n * args.spacing) for n in transverse]
        color = [rng.gauss(0.0, 1.0) for _ in range(num_components)]
        source.add_charge(location, color, args.charge_magnitude)
    return source


def build_pulse(args: argparse.Namespace) -> PlanePulse:
    d = len(args.grid)
    num_components = 1 if args.colors == 1 else args.colors * args.colors - 1
    direction = [1.0] + [0.0] * (d - 1)
    position = [0.25 * args.grid[0] * args.spacing] + [0.0] * (d - 1)
    spatial = [0.0, 1.0] + [0.0] * (d - 2)
    color = [1.0] + [0.0] * (num_components - 1)
    return PlanePulse(direction, position, spatial, color, args.pulse_amplitude, args.pulse_width)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="colorpic lattice simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument("--grid", type=int, nargs="+", default=[16, 32], help="Cells per axis (2 or 3 values)")
    parser.add_argument("--spacing", type=float, default=1.0, help="Lattice spacing as")
    parser.add_argument("--dt", type=float, default=0.5, help="Time step at")
    parser.add_argument("--coupling", type=float, default=1.0, help="Gauge coupling g")
    parser.add_argument("--colors", type=int, default=2, help="1 for U(1), N >= 2 for SU(N)")
    parser.add_argument("--steps", type=int, default=32, help="Number of simulation steps")
    parser.add_argument(
        "--solver",
        type=str,
        default=SolverKind.YANG_MILLS.value,
        choices=[k.value for k in SolverKind],
        help="Field solver strategy",
    )
    parser.add_argument("--device", type=str, default="cpu", help="Device (cpu, cuda)")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--log-interval", type=int, default=8, help="Log observables every N steps")

    # Light-cone source
    parser.add_argument("--no-source", action="store_true", help="Run without a light-cone source")
    parser.add_argument("--charges", type=int, default=8, help="Number of random point charges")
    parser.add_argument("--charge-magnitude", type=float, default=1.0, help="Magnitude of each point charge")
    parser.add_argument("--orientation", type=int, default=1, choices=[-1, 1], help="Direction of motion")
    parser.add_argument("--location", type=float, default=None, help="Longitudinal center (default: box center)")
    parser.add_argument("--width", type=float, default=2.0, help="Longitudinal width of the source")

    # Plane pulse
    parser.add_argument("--pulse", action="store_true", help="Add a Gaussian plane pulse along the first axis")
    parser.add_argument("--pulse-amplitude", type=float, default=0.1, help="Plane pulse amplitude")
    parser.add_argument("--pulse-width", type=float, default=2.0, help="Plane pulse width sigma")

    return parser


def check_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if len(args.grid) not in (2, 3):
        parser.error(f"--grid needs 2 or 3 values, got {len(args.grid)}")
    # Maxwell is Abelian: SU(N) source links would evolve non-covariantly.
    if SolverKind(args.solver) is SolverKind.MAXWELL and args.colors >= 2 and not args.no_source:
        parser.error("--solver maxwell needs --colors 1 or --no-source when a light-cone source is present")


def main():
    parser = build_parser()
    args = parser.parse_args()
    check_args(parser, args)

    config = SimulationConfig(
        num_cells=tuple(args.grid),
        spacing=args.spacing,
        time_step=args.dt,
        coupling=args.coupling,
        num_colors=args.colors,
        solver=SolverKind(args.solver),
        num_steps=args.steps,
        seed=args.seed,
        device=args.device,
        current_generators=[] if args.no_source else [build_source(args)],
        field_generators=[build_pulse(args)] if args.pulse else [],
        log_interval=args.log_interval,
    )

    result = run_simulation(config)
    print("\nFinal results:")
    print(f"  Particles:        {result['final_particles']}")
    print(f"  Electric energy:  {result['final_electric_energy']:.6g}")
    print(f"  Magnetic energy:  {result['final_magnetic_energy']:.6g}")
    print(f"  Gauss violation:  {result['final_gauss_violation']:.3g}")


if __name__ == "__main__":
    main()
