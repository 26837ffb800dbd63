#!/usr/bin/env python3
"""
===============================================================================
GRID DP OPTIMAL CONTROL - MAIN ENTRY POINT
===============================================================================
Solves the configured finite-horizon optimal control problem by exhaustive
dynamic programming on a state/control grid, then prints the optimal control
sequence, state trajectory and total optimal cost.

USAGE:
    python main.py                        # Reference LQ tracking problem
    python main.py --config my.yaml       # Custom problem / grids
    python main.py --workers 4            # Threaded backward sweep
    python main.py --no-plot              # Skip the stem plots

OUTPUTS:
    output/trajectory.csv   - k, x(k), u(k)
    output/trajectory.png   - Stem plots of x(k) and u(k)
    output/solver.log       - Run log

DEPENDENCIES:
    numpy, pandas, matplotlib, pyyaml
===============================================================================
"""

import sys
import argparse
import logging
import time
from dataclasses import replace
from pathlib import Path

# ---------------------------------------------------------------------------
# Path setup: ensure all project modules are importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from control.dp_solver import DPResult, DynamicProgrammingSolver
from control.problem import LinearQuadraticProblem
from core.config import RunConfig, load_config
from core.constants import LOG_FORMAT
from visualization.trajectory_plots import plot_trajectory


logger = logging.getLogger('GRID_DP_MAIN')


def setup_logging(output_dir: Path, verbose: bool = False) -> None:
    """Log to stdout and to output_dir/solver.log."""
    output_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(output_dir / 'solver.log', mode='w'),
        ],
        force=True,
    )


def run(config: RunConfig, output_dir: Path, plot: bool = True) -> DPResult:
    """
    Build the problem and grids from config, solve, and write outputs.

    Args:
        config: Parsed run configuration
        output_dir: Directory receiving the CSV and the plot
        plot: Whether to save the stem plots

    Returns:
        The DPResult of the solve
    """
    pc = config.problem
    problem = LinearQuadraticProblem(
        a=pc.a, b=pc.b, q=pc.q, r=pc.r,
        p_terminal=pc.p_terminal, x_target=pc.x_target,
    )
    state_grid = config.state_grid.build('state')
    control_grid = config.control_grid.build('control')
    logger.info("Problem: %r", problem)
    logger.info("Grids: %r, %r", state_grid, control_grid)

    solver = DynamicProgrammingSolver(
        problem, state_grid, control_grid,
        workers=config.solver.workers,
        chunk_size=config.solver.chunk_size,
    )
    result = solver.run(pc.x0, pc.horizon)

    reference = problem.closed_form(pc.horizon)
    logger.info(
        "Closed-form LQ cost %.6f, grid DP cost %.6f (difference %.3e)",
        reference.cost_to_go(pc.x0), result.J_opt,
        result.J_opt - reference.cost_to_go(pc.x0),
    )

    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = output_dir / 'trajectory.csv'
    result.to_dataframe().to_csv(csv_path, index=False)
    logger.info("Trajectory written to %s", csv_path)

    if plot:
        png_path = output_dir / 'trajectory.png'
        plot_trajectory(result.x_opt, result.u_opt, str(png_path), x_target=pc.x_target)
        logger.info("Plot saved to %s", png_path)

    return result


def main(argv=None):
    """
    Main entry point. Parses command line arguments and runs the solver.
    """
    parser = argparse.ArgumentParser(
        description='Finite-horizon optimal control by grid dynamic programming',
    )
    parser.add_argument('--config', type=str, default=None,
                        help='Path to problem config YAML')
    parser.add_argument('--workers', type=int, default=None,
                        help='Threads per backward time step (overrides config)')
    parser.add_argument('--output', type=str, default=None,
                        help='Output directory (overrides config)')
    parser.add_argument('--no-plot', action='store_true',
                        help='Do not save the trajectory plots')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Debug logging')
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.workers is not None:
        config = replace(config, solver=replace(config.solver, workers=args.workers))
    output_dir = Path(args.output or config.output.directory)
    setup_logging(output_dir, verbose=args.verbose)

    start = time.time()
    result = run(config, output_dir, plot=config.output.plot and not args.no_plot)

    print("\n" + "=" * 70)
    print(result.summary())
    print("=" * 70)
    print(f"  Wall time: {time.time() - start:.2f} seconds")
    print(f"  Outputs saved to: {output_dir}")
    print("=" * 70)
    return result


if __name__ == '__main__':
    main()
