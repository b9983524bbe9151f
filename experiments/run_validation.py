"""
Validation run of the temporal ART dynamics.

Runs the equation suite and the behavioural scenario suite, then
demonstrates the two memory subsystems:
- STORE 2 working memory holding a nine-item list (primacy gradient,
  7 +- 2 recall)
- Masking field chunking a ten-digit phone number into 3 + 3 + 4

Settings are read from TEMPORALART_* variables or a .env file in the
project root.
"""

import json
import time
from pathlib import Path

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))
sys.path.insert(0, str(Path(__file__).parent.parent))

from temporalart.config import HarnessConfig
from temporalart.memory import MaskingField, TemporalART, WorkingMemory
from temporalart.parameters import TemporalARTParameters
from temporalart.utils import compute_trajectory_metrics, setup_logging
from temporalart.validation import ValidationHarness
from temporalart.validation.scenarios import PHONE_NUMBER, one_hot


def run_validation(config: HarnessConfig = None,
                   output_dir: str = None,
                   make_plots: bool = False,
                   verbose: bool = True):
    """
    Run the full validation and the memory demonstrations.

    Args:
        config: Harness settings (from the environment if None)
        output_dir: Where to write the JSON report and figures
        make_plots: Whether to save figures (requires output_dir)
        verbose: Whether to print progress

    Returns:
        dict: Report, working-memory result and chunking result
    """
    config = config or HarnessConfig.from_env(Path(__file__).parent.parent / '.env')
    setup_logging(config.log_level)

    if verbose:
        print("=" * 70)
        print("TEMPORAL ART - Validation Run")
        print("=" * 70)
        print("Configuration:")
        print(f"  Base step (dt): {config.dt * 1000:.3g} ms")
        print(f"  Step budget: {config.max_steps}")
        print(f"  Convergence: |dE| < {config.convergence_epsilon:g} for {config.patience} checks")
        print(f"  Equation tolerance: {config.tolerance:g}")
        print(f"  Workers: {config.max_workers}")
        print("=" * 70)

    harness = ValidationHarness(config)

    if verbose:
        print(f"\n[1/3] Running equation suite ({len(harness.cases)} cases)...")
    start = time.time()
    equations = harness.run_equation_suite()
    if verbose:
        print(f"  {'✓' if equations.passed else '✗'} {equations.summary()}")
        print(f"  Done in {time.time() - start:.2f}s")

    if verbose:
        print(f"\n[2/3] Running scenario suite ({len(harness.scenarios)} scenarios)...")
    start = time.time()
    scenarios = harness.run_scenario_suite()
    if verbose:
        print(f"  {'✓' if scenarios.passed else '✗'} {scenarios.summary()}")
        print(f"  Done in {time.time() - start:.2f}s")

    if verbose:
        print("\n[3/3] Memory demonstrations...")
    integrator_parameters = config.integrator_parameters()
    memory = WorkingMemory(integrator_parameters=integrator_parameters)
    stored = memory.store_sequence([one_hot(i) for i in range(9)])
    recalled = stored.retrieve()
    masking = MaskingField(integrator_parameters=integrator_parameters)
    chunks = masking.chunk_sequence([one_hot(d) for d in PHONE_NUMBER])
    learner = TemporalART(TemporalARTParameters.phone_number_defaults(), integrator_parameters)
    learned = learner.process_sequence([one_hot(d) for d in PHONE_NUMBER])
    recalled_category = learner.predict_sequence([one_hot(d) for d in PHONE_NUMBER])
    learner_stats = learner.statistics()
    metrics = compute_trajectory_metrics(stored.trajectory)

    if verbose:
        print(f"  Working memory: recalled positions {recalled.positions} "
              f"(primacy {recalled.primacy_gradient:.3f})")
        print(f"  Activity after {metrics['duration']:.2f}s: peak {metrics['peak']:.3f}, "
              f"final max {metrics['final_max']:.3f}")
        print(f"  Phone number {''.join(map(str, PHONE_NUMBER))} -> chunks {chunks.sizes}")
        print(f"  Sequence learner: category {learned.category}, recalled as {recalled_category}, "
              f"compression {learner_stats.compression_ratio:.2f} items per chunk")

    report = equations.merge(scenarios, title="Temporal ART validation")

    if output_dir:
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        with open(out / 'validation_report.json', 'w') as f:
            json.dump(report.to_dict(), f, indent=2)
        if make_plots:
            import matplotlib
            matplotlib.use('Agg')
            from visualization import (plot_chunks, plot_energy_evolution,
                                       plot_serial_position, plot_trajectory,
                                       plot_validation_report)
            plot_validation_report(report, save_path=str(out / 'report.png'))
            plot_trajectory(stored.trajectory, units=9, title='Working Memory Activity',
                            save_path=str(out / 'wm_activity.png'))
            plot_serial_position(stored, save_path=str(out / 'serial_position.png'))
            plot_energy_evolution(stored.trajectory, save_path=str(out / 'wm_energy.png'))
            plot_chunks(chunks, labels=PHONE_NUMBER, save_path=str(out / 'chunks.png'))
        if verbose:
            print(f"\n  Results written to {out}")

    if verbose:
        print("\n" + "=" * 70)
        print("VALIDATION " + ("PASSED" if report.passed else f"FAILED: {', '.join(report.failures)}"))
        print("=" * 70)

    return {
        'report': report,
        'working_memory': stored,
        'chunks': chunks,
        'sequence': learned,
    }


def main():
    """Main entry point for the validation run."""
    import argparse

    parser = argparse.ArgumentParser(
        description='Validate the temporal ART dynamics'
    )
    parser.add_argument('--output', '-o', type=str, default=None,
                        help='Directory for the JSON report and figures')
    parser.add_argument('--plots', action='store_true',
                        help='Save figures (requires --output)')
    parser.add_argument('--workers', '-w', type=int, default=None,
                        help='Threads for the scenario suite')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Suppress output')

    args = parser.parse_args()

    config = HarnessConfig.from_env(Path(__file__).parent.parent / '.env')
    if args.workers is not None:
        config = config.with_overrides(max_workers=args.workers)

    results = run_validation(config, output_dir=args.output,
                             make_plots=args.plots, verbose=not args.quiet)
    sys.exit(0 if results['report'].passed else 1)


if __name__ == '__main__':
    main()
