#!/usr/bin/env python3
"""
Meshless Transport Benchmark Runner
===================================

Runs the piecewise absorbing slab benchmark through the full meshless
pipeline (discretization, integration, sweep, source iteration) for a
refinement sequence and writes a JSON summary.

Usage
-----
    # Default two-region slab, 11/21/41 points
    python -m meshless.run_transport

    # Custom refinement, SUPG weighting, matrix dump of the finest case
    python -m meshless.run_transport --points 21 41 81 --supg \\
        --output results/slab.json --matrices results/sweep.xml
"""

import argparse
import json
import logging
import os
import sys
import time

from . import __version__
from .config import (Discretization, IterationOptions, SolverType, SweepOptions,
                     TauScaling, WeakSpatialDiscretizationOptions, WeightingMethod)
from .discretization.energy import EnergyDiscretization
from .discretization.factory import WeakSpatialDiscretizationFactory
from .discretization.transport import TransportDiscretization
from .exceptions import MeshlessError
from .geometry.solid import BoxGeometry
from .geometry.surfaces import BoundarySource
from .logging_config import setup_logging
from .solvers.factory import SolverFactory
from .validation.analytical_benchmarks import (PiecewiseAbsorberSlab,
                                               benchmark_slab)

logger = logging.getLogger(__name__)

DIVIDER = "=" * 70

BANNER = f"""
{DIVIDER}
  MESHLESS DISCRETE-ORDINATES TRANSPORT
  Piecewise absorbing slab benchmark (version {__version__})
{DIVIDER}"""


def build_parser():
    parser = argparse.ArgumentParser(
        description="Run the meshless slab transport benchmark.")
    parser.add_argument('--points', type=int, nargs='+', default=[11, 21, 41],
                        help="point counts of the refinement sequence")
    parser.add_argument('--interfaces', type=float, nargs='+',
                        default=[0.0, 1.0, 2.0], help="region boundaries")
    parser.add_argument('--sigma-t', type=float, nargs='+', default=[1.0, 2.0],
                        help="total cross section per region")
    parser.add_argument('--source', type=float, nargs='+', default=[1.0, 0.5],
                        help="isotropic source per region")
    parser.add_argument('--ordinates', type=int, default=4,
                        help="Gauss-Legendre ordinates")
    parser.add_argument('--discretization', choices=[d.value for d in Discretization],
                        default=Discretization.WEAK.value)
    parser.add_argument('--weighting', choices=[w.value for w in WeightingMethod],
                        default=WeightingMethod.WEIGHT.value)
    parser.add_argument('--supg', action='store_true',
                        help="include SUPG stabilization")
    parser.add_argument('--tau-scaling', choices=[t.value for t in TauScaling],
                        default=TauScaling.NONE.value)
    parser.add_argument('--solver', choices=[s.value for s in SolverType],
                        default=SolverType.DIRECT.value)
    parser.add_argument('--threads', type=int, default=1)
    parser.add_argument('--tolerance', type=float, default=1e-10,
                        help="source iteration tolerance")
    parser.add_argument('--output', default=None, help="JSON summary path")
    parser.add_argument('--matrices', default=None,
                        help="XML dump of the sweep matrices for the first case")
    parser.add_argument('--log-file', default=None)
    parser.add_argument('--verbose', '-v', action='store_true')
    return parser


def _options(args):
    return WeakSpatialDiscretizationOptions(
        discretization=Discretization(args.discretization),
        weighting=WeightingMethod(args.weighting),
        include_supg=args.supg,
        tau_scaling=TauScaling(args.tau_scaling),
        num_threads=args.threads,
    )


def write_matrices(args, options, sweep_options, path):
    """Dump the sweep matrices of the coarsest case."""
    slab = PiecewiseAbsorberSlab(args.interfaces, args.sigma_t, args.source,
                                 number_of_ordinates=args.ordinates)
    solid = BoxGeometry(slab.limits, BoundarySource.vacuum(1))
    spatial = WeakSpatialDiscretizationFactory(solid, options).get_simple_discretization(
        args.points[0], slab.material_function())
    transport = TransportDiscretization(spatial, slab.angular,
                                        EnergyDiscretization(1))
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    SolverFactory(transport, sweep_options).get_sweep().write_matrices(path)


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    print(BANNER)
    t_start = time.time()
    options = _options(args)
    sweep_options = SweepOptions(solver=SolverType(args.solver),
                                 num_threads=args.threads)
    iteration_options = IterationOptions(tolerance=args.tolerance)

    try:
        results = benchmark_slab(
            point_counts=args.points, interfaces=args.interfaces,
            sigma_t=args.sigma_t, source=args.source,
            number_of_ordinates=args.ordinates, options=options,
            sweep_options=sweep_options, iteration_options=iteration_options)
        if args.matrices:
            write_matrices(args, options, sweep_options, args.matrices)
    except MeshlessError as e:
        logger.error("Benchmark failed: %s", e)
        return 1

    print(f"\n  {'Points':>8s} {'L2 error':>12s} {'Max error':>12s} "
          f"{'Iterations':>11s} {'Time [s]':>9s}")
    print("  " + "-" * 56)
    for case in results['cases']:
        print(f"  {case['points']:8d} {case['l2_error']:12.4e} "
              f"{case['max_error']:12.4e} {case['iterations']:11d} "
              f"{case['time']:9.2f}")
    if results['order'] is not None:
        print(f"\n  Observed L2 order: {results['order']:.2f}")

    elapsed = time.time() - t_start
    print(f"\n{DIVIDER}")
    print(f"  Elapsed time: {elapsed:.1f} s")
    print(DIVIDER)

    if args.output:
        directory = os.path.dirname(args.output)
        if directory:
            os.makedirs(directory, exist_ok=True)
        summary = dict(results)
        summary['settings'] = {
            'discretization': args.discretization,
            'weighting': args.weighting,
            'supg': args.supg,
            'ordinates': args.ordinates,
            'solver': args.solver,
        }
        summary['total_time'] = elapsed
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(summary, f, indent=2)
        logger.info("Summary written to %s", args.output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
