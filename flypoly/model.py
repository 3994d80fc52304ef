"""Multi-generation simulation driver.

  - Founders: floor(eggs_per_generation × survival_global) adults with sex
    and genotype drawn from the baseline proportions
  - Generation loop 1..n_generations (inclusive): GenerationEngine runs
    egg survival → maturation → mating/laying → truncation → fixation check
  - Reporter: egg stage before Phase A (g ≥ 2), adult stage after Phase B,
    one final tagged report per run
  - Stop conditions: generation cap (COMPLETED), fixation when enabled
    (FIXATED), degenerate mating weights (DEGENERATE_MATING_WEIGHTS, always)

Termination is returned in SimulationResult.reason; nothing here exits the
process or raises for a modelled outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np

from flypoly.config import SimulationConfig, default_config
from flypoly.engine import GenerationEngine
from flypoly.genetics import allele_frequency_b
from flypoly.reporting import MemoryReporter, MultiReporter, NullReporter, Reporter
from flypoly.rng import make_rng, spawn_replicate_rngs
from flypoly.sampling import choose_weighted
from flypoly.tables import ParameterTables, RunParameters, resolve_run_parameters
from flypoly.types import (
    GENOTYPES,
    SEXES,
    GenotypeCounts,
    Individual,
    LifeStage,
    StageReport,
    TerminationReason,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# RESULT CONTAINER
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """Outcome of one run."""
    reason: TerminationReason
    generations_run: int = 0
    n_generations: int = 0
    founder_count: int = 0
    records: List[StageReport] = field(default_factory=list)
    final: Optional[StageReport] = None
    final_counts: GenotypeCounts = field(default_factory=GenotypeCounts)

    # Per-generation timeseries (length = n_generations; NaN where a stage
    # was not reported, e.g. the egg stage of generation 1)
    egg_proportions: Optional[np.ndarray] = None     # (n_generations, 3)
    adult_proportions: Optional[np.ndarray] = None   # (n_generations, 3)
    egg_sizes: Optional[np.ndarray] = None           # (n_generations,)
    adult_sizes: Optional[np.ndarray] = None         # (n_generations,)

    @property
    def completed(self) -> bool:
        return self.reason == TerminationReason.COMPLETED

    @property
    def terminated_early(self) -> bool:
        return self.reason != TerminationReason.COMPLETED

    @property
    def final_b_frequency(self) -> float:
        """B-allele frequency of the pool in the final report."""
        return allele_frequency_b(self.final_counts)

    def adult_b_frequency(self) -> np.ndarray:
        """B-allele frequency of mature adults per generation (NaN if absent)."""
        if self.adult_proportions is None:
            return np.empty(0)
        return self.adult_proportions[:, 1] * 0.5 + self.adult_proportions[:, 2]


def _assemble_result(
    reason: TerminationReason,
    generations_run: int,
    params: RunParameters,
    founder_count: int,
    memory: MemoryReporter,
    final_counts: GenotypeCounts,
) -> SimulationResult:
    n = params.n_generations
    egg_props = np.full((n, 3), np.nan)
    adult_props = np.full((n, 3), np.nan)
    egg_sizes = np.full(n, np.nan)
    adult_sizes = np.full(n, np.nan)
    for r in memory.records:
        i = r.generation - 1
        if r.stage == LifeStage.EGG:
            egg_props[i] = r.proportions
            egg_sizes[i] = r.population_size
        else:
            adult_props[i] = r.proportions
            adult_sizes[i] = r.population_size

    return SimulationResult(
        reason=reason,
        generations_run=generations_run,
        n_generations=n,
        founder_count=founder_count,
        records=list(memory.records),
        final=memory.final,
        final_counts=final_counts,
        egg_proportions=egg_props,
        adult_proportions=adult_props,
        egg_sizes=egg_sizes,
        adult_sizes=adult_sizes,
    )


# ═══════════════════════════════════════════════════════════════════════
# FOUNDERS
# ═══════════════════════════════════════════════════════════════════════

def create_founders(
    tables: ParameterTables,
    n: int,
    rng: np.random.Generator,
) -> List[Individual]:
    """Synthesize generation 1's adults from the baseline proportions.

    Per founder: one weighted draw for sex, then one for genotype.
    """
    sex_items = [(s, tables.sex_baseline[s]) for s in SEXES]
    genotype_items = [(g, tables.genotype_baseline[g]) for g in GENOTYPES]
    founders = []
    for _ in range(n):
        sex = choose_weighted(sex_items, rng)
        genotype = choose_weighted(genotype_items, rng)
        founders.append(Individual(sex, genotype))
    return founders


# ═══════════════════════════════════════════════════════════════════════
# SINGLE RUN
# ═══════════════════════════════════════════════════════════════════════

def simulate(
    tables: ParameterTables,
    params: RunParameters,
    rng: np.random.Generator,
    reporter: Optional[Reporter] = None,
    founders: Optional[Sequence[Individual]] = None,
) -> SimulationResult:
    """Run one simulation from a resolved parameter snapshot.

    Args:
        tables: Lookup tables (see flypoly.tables).
        params: Scalar run parameters.
        rng: Random stream owned by this run.
        reporter: Receives stage reports and the final tagged report.
            Defaults to a NullReporter; the result is assembled from an
            internal MemoryReporter either way.
        founders: Optional explicit generation-1 adult pool. When None,
            ``params.founder_count`` founders are drawn from the baseline
            proportions.

    Returns:
        SimulationResult with the termination reason and timeseries.
    """
    if reporter is None:
        reporter = NullReporter()
    memory = MemoryReporter()
    sink = MultiReporter(memory, reporter)

    if founders is None:
        founders = create_founders(tables, params.founder_count, rng)
    else:
        founders = list(founders)
    founder_count = len(founders)

    engine = GenerationEngine(tables, params, rng)
    logger.info(
        "Starting run: %d generations, %d founders, capacity %d eggs",
        params.n_generations, founder_count, params.eggs_per_generation,
    )

    pool: List[Individual] = founders
    outcome = None
    for generation in range(1, params.n_generations + 1):
        outcome = engine.run_generation(generation, pool, on_stage=sink.record)
        if outcome.terminal:
            final_counts = (outcome.egg_counts
                            if outcome.reason == TerminationReason.FIXATED
                            else outcome.adult_counts)
            sink.finish(outcome.final_report, outcome.reason)
            logger.info("Run stopped at generation %d: %s",
                        generation, outcome.reason.value)
            return _assemble_result(outcome.reason, generation, params,
                                    founder_count, memory, final_counts)
        pool = outcome.eggs

    sink.finish(outcome.adult_report, TerminationReason.COMPLETED)
    logger.info("Run completed %d generations", params.n_generations)
    return _assemble_result(TerminationReason.COMPLETED, params.n_generations,
                            params, founder_count, memory, outcome.adult_counts)


def run_simulation(
    config: Optional[SimulationConfig] = None,
    reporter: Optional[Reporter] = None,
    rng: Optional[np.random.Generator] = None,
    founders: Optional[Sequence[Individual]] = None,
) -> SimulationResult:
    """Run one simulation from a configuration.

    Args:
        config: SimulationConfig; uses defaults if None.
        reporter: Optional Reporter for stage-by-stage output.
        rng: Random stream; built from ``config.simulation.seed`` if None.
        founders: Optional explicit generation-1 adult pool.

    Returns:
        SimulationResult.

    Raises:
        ValueError: If the configuration is invalid (before generation 1).
    """
    if config is None:
        config = default_config()
    tables, params = resolve_run_parameters(config)
    if rng is None:
        rng = make_rng(config.simulation.seed)
    return simulate(tables, params, rng, reporter=reporter, founders=founders)


def run_replicates(
    config: Optional[SimulationConfig] = None,
    n_replicates: Optional[int] = None,
    master_seed: Optional[int] = None,
    reporter_factory: Optional[Callable[[int], Optional[Reporter]]] = None,
) -> List[SimulationResult]:
    """Run independent replicates one after another.

    Each replicate gets its own stream spawned from the master seed, so
    replicate outcomes are uncorrelated and individually reproducible.

    Args:
        config: SimulationConfig; uses defaults if None.
        n_replicates: Number of runs (defaults to config.simulation.n_replicates).
        master_seed: Master seed (defaults to config.simulation.seed).
        reporter_factory: Called with the replicate index to get its Reporter.

    Returns:
        One SimulationResult per replicate, in order.
    """
    if config is None:
        config = default_config()
    if n_replicates is None:
        n_replicates = config.simulation.n_replicates
    if master_seed is None:
        master_seed = config.simulation.seed
    tables, params = resolve_run_parameters(config)

    results = []
    for i, rng in enumerate(spawn_replicate_rngs(master_seed, n_replicates)):
        reporter = reporter_factory(i) if reporter_factory is not None else None
        logger.info("Replicate %d/%d", i + 1, n_replicates)
        results.append(simulate(tables, params, rng, reporter=reporter))
    return results
