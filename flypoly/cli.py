"""Command-line entry point.

Usage:
    python -m flypoly
    python -m flypoly --config configs/default.yaml --generations 200 --seed 7
    python -m flypoly --set reproduction.male_freq_dep_coef=0.8 --stop-when-fixated
    python -m flypoly --replicates 10 --seed 1 --output results/run.csv --plot results/freq.png

Exit status: 0 when every run completed or fixated, 3 when any run ended
on degenerate mating weights, 2 on configuration errors.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from flypoly import __version__
from flypoly.config import (
    SimulationConfig,
    config_to_dict,
    deep_merge,
    default_config,
    load_config,
    parse_overrides,
)
from flypoly.model import SimulationResult, run_replicates
from flypoly.reporting import ConsoleReporter, CsvReporter, MultiReporter
from flypoly.types import TerminationReason

logger = logging.getLogger("flypoly")

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_DEGENERATE = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flypoly",
        description="Simulate a two-allele polymorphism under survival, "
                    "maturation-window and frequency-dependent mating selection.",
    )
    parser.add_argument('--config', type=Path, default=None,
                        help='Base YAML configuration (defaults built in)')
    parser.add_argument('--scenario', type=Path, default=None,
                        help='Scenario YAML merged over the base configuration')
    parser.add_argument('--set', dest='overrides', action='append', default=[],
                        metavar='SECTION.KEY=VALUE',
                        help='Override one parameter (repeatable)')
    parser.add_argument('--generations', type=int, default=None,
                        help='Number of generations')
    parser.add_argument('--seed', type=int, default=None,
                        help='Master random seed')
    parser.add_argument('--output', type=Path, default=None,
                        help='CSV output file')
    parser.add_argument('--stop-when-fixated', action='store_true', default=None,
                        help='Stop as soon as one allele is lost from the egg pool')
    parser.add_argument('--replicates', type=int, default=None,
                        help='Number of independent sequential runs')
    parser.add_argument('--plot', type=Path, default=None,
                        help='Save a trajectory plot (PNG) to this path')
    parser.add_argument('--print-config', action='store_true',
                        help='Print the resolved configuration as YAML and exit')
    parser.add_argument('--quiet', action='store_true',
                        help='No per-generation progress output')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {__version__}')
    return parser


def _flag_overrides(args: argparse.Namespace) -> Dict[str, Dict]:
    """Nested override dict from the convenience flags."""
    flags: Dict[str, Dict] = {}
    if args.generations is not None:
        flags.setdefault('simulation', {})['n_generations'] = args.generations
    if args.seed is not None:
        flags.setdefault('simulation', {})['seed'] = args.seed
    if args.stop_when_fixated:
        flags.setdefault('simulation', {})['stop_when_fixated'] = True
    if args.replicates is not None:
        flags.setdefault('simulation', {})['n_replicates'] = args.replicates
    if args.output is not None:
        flags.setdefault('output', {})['file'] = str(args.output)
    if args.plot is not None:
        flags.setdefault('output', {})['plot'] = str(args.plot)
    if args.quiet:
        flags.setdefault('output', {})['progress'] = False
    return flags


def resolve_config(args: argparse.Namespace) -> SimulationConfig:
    """Merge base → scenario → --set → flag overrides and validate.

    Raises:
        FileNotFoundError, ValueError: On a bad configuration.
    """
    overrides = deep_merge(parse_overrides(args.overrides), _flag_overrides(args))
    if args.config is not None:
        return load_config(args.config, args.scenario, overrides)
    if args.scenario is not None:
        scenario = load_config(args.scenario)
        return default_config(deep_merge(config_to_dict(scenario), overrides))
    return default_config(overrides)


def replicate_path(path: Path, index: int, n_replicates: int) -> Path:
    """``run.csv`` → ``run_rep3.csv`` when there is more than one replicate."""
    if n_replicates <= 1:
        return path
    return path.with_name(f"{path.stem}_rep{index}{path.suffix}")


def _plot(results: List[SimulationResult], path: Path) -> None:
    # Imported lazily so matplotlib is only loaded when a plot is requested
    import matplotlib
    matplotlib.use('Agg')

    from flypoly.viz import plot_allele_frequency, plot_genotype_trajectories

    if len(results) == 1:
        plot_genotype_trajectories(results[0], save_path=path)
    else:
        plot_allele_frequency(results, save_path=path)
    logger.info("Plot saved to %s", path)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(levelname)-7s %(name)s: %(message)s',
    )

    try:
        config = resolve_config(args)
    except (FileNotFoundError, ValueError) as e:
        parser.error(str(e))

    if args.print_config:
        yaml.safe_dump(config_to_dict(config), sys.stdout, sort_keys=False)
        return EXIT_OK

    n_replicates = config.simulation.n_replicates
    output = Path(config.output.file)
    csv_reporters: List[CsvReporter] = []

    def reporter_factory(index: int):
        csv_reporter = CsvReporter(replicate_path(output, index, n_replicates))
        csv_reporters.append(csv_reporter)
        if not config.output.progress:
            return csv_reporter
        label = f"rep {index}" if n_replicates > 1 else ""
        return MultiReporter(csv_reporter, ConsoleReporter(label=label))

    try:
        results = run_replicates(config, reporter_factory=reporter_factory)
    finally:
        for r in csv_reporters:
            r.close()

    for i, result in enumerate(results):
        logger.info(
            "Replicate %d: %s after %d/%d generations, final B frequency %.4f",
            i, result.reason.value, result.generations_run,
            result.n_generations, result.final_b_frequency,
        )

    if config.output.plot:
        _plot(results, Path(config.output.plot))

    if any(r.reason == TerminationReason.DEGENERATE_MATING_WEIGHTS for r in results):
        return EXIT_DEGENERATE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
