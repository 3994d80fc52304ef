"""Per-generation transition for FlyPoly.

One generation g runs four strictly ordered phases:

  A. Egg survival        eggs → adults (skipped for g = 1; founders are
                         the adult pool)
  B. Maturation          adults → mature females / mature males, each
                         adult racing a randomized environmental window
  C. Mating + laying     one mate genotype per female drawn from
                         frequency-dependent mating weights; Mendelian
                         eggs; shuffle and truncate to capacity
  D. Fixation check      optional; on the truncated egg pool

Degenerate mating weights (sum zero or NaN) end the run. They are raised
as DegenerateMatingWeights inside the engine and returned as a
TerminationReason by run_generation, so no NaN reaches the sampler.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from flypoly.genetics import gamete_alleles, genotype_counts, is_fixated
from flypoly.sampling import choose_weighted
from flypoly.tables import ParameterTables, RunParameters
from flypoly.types import (
    GENOTYPES,
    Genotype,
    GenotypeCounts,
    Individual,
    LifeStage,
    Sex,
    StageReport,
    TerminationReason,
)

logger = logging.getLogger(__name__)

StageCallback = Callable[[StageReport], None]


class DegenerateMatingWeights(ArithmeticError):
    """Mating weights summed to zero or normalized to NaN."""

    def __init__(self, raw_weights: Dict[Genotype, float]):
        self.raw_weights = dict(raw_weights)
        super().__init__(
            "Degenerate mating weights: "
            + ", ".join(f"{g.name}={w}" for g, w in self.raw_weights.items())
        )


# ═══════════════════════════════════════════════════════════════════════
# DATA TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MatingWeights:
    """Normalized probability that a female's mate has each genotype."""
    proportions: Dict[Genotype, float]
    raw: Dict[Genotype, float]

    def items(self) -> List[Tuple[Genotype, float]]:
        """(genotype, weight) pairs in AA, AB, BB order, for the sampler."""
        return [(g, self.proportions[g]) for g in GENOTYPES]


@dataclass
class MaturePool:
    """Adults that matured within their environmental window."""
    females: List[Individual] = field(default_factory=list)
    males: List[Individual] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.females) + len(self.males)

    def counts(self) -> GenotypeCounts:
        return genotype_counts(self.females + self.males)


@dataclass
class GenerationOutcome:
    """Everything one generation produced.

    ``eggs`` is the truncated pool that seeds the next generation.
    ``final_report`` and ``reason`` are set only when the run must stop
    (degenerate mating weights, or fixation when fixation-stop is on).
    """
    generation: int
    adult_report: StageReport
    adult_counts: GenotypeCounts = field(default_factory=GenotypeCounts)
    egg_report: Optional[StageReport] = None
    eggs: List[Individual] = field(default_factory=list)
    eggs_produced: int = 0
    egg_counts: GenotypeCounts = field(default_factory=GenotypeCounts)
    reason: Optional[TerminationReason] = None
    final_report: Optional[StageReport] = None

    @property
    def terminal(self) -> bool:
        return self.reason is not None


def stage_report(generation: int, stage: LifeStage,
                 population: Sequence[Individual]) -> StageReport:
    """Tabulate a pool into a StageReport."""
    counts = genotype_counts(population)
    return StageReport(
        generation=generation,
        stage=stage,
        population_size=counts.total,
        proportions=counts.proportions(),
    )


# ═══════════════════════════════════════════════════════════════════════
# GENERATION ENGINE
# ═══════════════════════════════════════════════════════════════════════

class GenerationEngine:
    """Runs the A→D pipeline for one generation at a time.

    The random generator is an explicit argument: independent replicate
    runs must each be given their own stream.
    """

    def __init__(
        self,
        tables: ParameterTables,
        params: RunParameters,
        rng: np.random.Generator,
    ):
        self.tables = tables
        self.params = params
        self.rng = rng

    # ── Phase A ──────────────────────────────────────────────────────

    def egg_survival(self, eggs: Sequence[Individual]) -> List[Individual]:
        """Independent Bernoulli survival trial per egg, one uniform each."""
        if not eggs:
            return []
        table = self.tables.egg_survival
        p_survive = np.array([table[(egg.sex, egg.genotype)] for egg in eggs],
                             dtype=np.float64)
        p_survive *= self.params.survival_global
        alive = self.rng.random(len(eggs)) < p_survive
        return [egg for egg, keep in zip(eggs, alive) if keep]

    # ── Phase B ──────────────────────────────────────────────────────

    def environment_duration(self, size: Optional[int] = None):
        """Environmental window in [time - variation, time + variation).

        A float, or an array of ``size`` independent windows.
        """
        p = self.params
        windows = self.rng.uniform(
            p.environment_time - p.environment_time_variation,
            p.environment_time + p.environment_time_variation,
            size=size,
        )
        return float(windows) if size is None else windows

    def realized_maturation_time(self, mean_days):
        """Geometric mean of three independent uniform maturation draws.

        Each draw is uniform in [mean·(1-cv), mean·(1+cv)); the geometric
        mean of three is tighter and more bell-shaped than a single draw.
        ``mean_days`` may be a scalar (returns a float) or an array (returns
        one realized time per entry).
        """
        cv = self.params.maturation_cv
        mean = np.asarray(mean_days, dtype=np.float64)[..., np.newaxis]
        draws = self.rng.uniform(mean * (1.0 - cv), mean * (1.0 + cv),
                                 size=mean.shape[:-1] + (3,))
        times = np.prod(draws, axis=-1) ** (1.0 / 3.0)
        return float(times) if times.ndim == 0 else times

    def mature(self, adults: Sequence[Individual]) -> MaturePool:
        """Keep adults whose maturation time fits inside their environment."""
        pool = MaturePool()
        if not adults:
            return pool
        table = self.tables.maturation_days
        windows = self.environment_duration(size=len(adults))
        needed = self.realized_maturation_time(
            np.array([table[(adult.sex, adult.genotype)] for adult in adults]))
        for adult, ok in zip(adults, windows >= needed):
            if not ok:
                continue
            if adult.sex == Sex.FEMALE:
                pool.females.append(adult)
            else:
                pool.males.append(adult)
        return pool

    # ── Phase C ──────────────────────────────────────────────────────

    @staticmethod
    def male_genotype_proportions(males: Sequence[Individual]) -> Dict[Genotype, float]:
        """Genotype proportions among mature males; all 0.0 when none."""
        p_aa, p_ab, p_bb = genotype_counts(males).proportions()
        return {Genotype.AA: p_aa, Genotype.AB: p_ab, Genotype.BB: p_bb}

    def frequency_dependent_multipliers(self, p_aa: float) -> Dict[Genotype, float]:
        """Mating-success multipliers that favour AA as it becomes rare.

        AA → 1, AB → 1 - c·(1 - pAA)/2, BB → 1 - c·(1 - pAA).
        Negative multipliers (possible when c > 1) are clipped to 0.
        """
        c = self.params.male_freq_dep_coef
        return {
            Genotype.AA: 1.0,
            Genotype.AB: max(0.0, 1.0 - c * (1.0 - p_aa) / 2.0),
            Genotype.BB: max(0.0, 1.0 - c * (1.0 - p_aa)),
        }

    def mating_weights(self, males: Sequence[Individual]) -> MatingWeights:
        """Normalized mate-genotype probabilities for this generation.

        Raises:
            DegenerateMatingWeights: If the raw weights sum to zero or any
                normalized weight is NaN.
        """
        male_props = self.male_genotype_proportions(males)
        multipliers = self.frequency_dependent_multipliers(male_props[Genotype.AA])
        raw = {
            g: male_props[g] * self.tables.male_success[g] * multipliers[g]
            for g in GENOTYPES
        }
        total = sum(raw.values())
        if not (total > 0.0) or math.isinf(total):
            raise DegenerateMatingWeights(raw)
        normalized = {g: w / total for g, w in raw.items()}
        if any(math.isnan(w) for w in normalized.values()):
            raise DegenerateMatingWeights(raw)
        return MatingWeights(proportions=normalized, raw=raw)

    def lay_clutch(self, mother: Individual, mate_genotype: Genotype) -> List[Individual]:
        """All eggs of one female, fathered by a single mate genotype.

        Each egg gets one allele from the mother and one from a male of the
        mate genotype, drawn independently, then its own sex draw.
        """
        father = Individual(Sex.MALE, mate_genotype)
        n_eggs = int(self.tables.fecundity[(Sex.FEMALE, mother.genotype)])
        rng = self.rng
        # Genotype code == number of B alleles
        codes = gamete_alleles(mother, n_eggs, rng) + gamete_alleles(father, n_eggs, rng)
        is_female = rng.random(n_eggs) < self.params.proportion_females
        return [
            Individual(Sex.FEMALE if female else Sex.MALE, Genotype(int(code)))
            for code, female in zip(codes, is_female)
        ]

    def produce_eggs(
        self,
        females: Sequence[Individual],
        weights: MatingWeights,
    ) -> List[Individual]:
        """Eggs of every mature female, one mate draw per female."""
        mate_items = weights.items()
        eggs: List[Individual] = []
        for mother in females:
            mate_genotype = choose_weighted(mate_items, self.rng)
            eggs.extend(self.lay_clutch(mother, mate_genotype))
        return eggs

    def truncate_eggs(self, eggs: Sequence[Individual]) -> List[Individual]:
        """Shuffle the egg pool and keep at most eggs_per_generation.

        Shuffling first keeps truncation from favouring the clutches of
        the first females processed.
        """
        order = self.rng.permutation(len(eggs))
        keep = order[:self.params.eggs_per_generation]
        return [eggs[i] for i in keep]

    # ── Full generation ──────────────────────────────────────────────

    def run_generation(
        self,
        generation: int,
        pool: Sequence[Individual],
        on_stage: Optional[StageCallback] = None,
    ) -> GenerationOutcome:
        """Run phases A→D for one generation.

        Args:
            generation: 1-indexed generation number.
            pool: Founder adults when generation == 1, otherwise the egg
                pool produced by the previous generation.
            on_stage: Called with the egg-stage report (before Phase A)
                and the adult-stage report (after Phase B).

        Returns:
            GenerationOutcome. ``reason`` is set when the run must stop.
        """
        egg_report = None
        if generation == 1:
            adults = list(pool)
        else:
            egg_report = stage_report(generation, LifeStage.EGG, pool)
            if on_stage is not None:
                on_stage(egg_report)
            adults = self.egg_survival(pool)

        mature = self.mature(adults)
        adult_counts = mature.counts()
        adult_report = StageReport(
            generation=generation,
            stage=LifeStage.ADULT,
            population_size=adult_counts.total,
            proportions=adult_counts.proportions(),
        )
        if on_stage is not None:
            on_stage(adult_report)

        outcome = GenerationOutcome(
            generation=generation,
            adult_report=adult_report,
            adult_counts=adult_counts,
            egg_report=egg_report,
        )

        try:
            weights = self.mating_weights(mature.males)
        except DegenerateMatingWeights as exc:
            logger.warning("Generation %d: %s (%d mature males)",
                           generation, exc, len(mature.males))
            outcome.reason = TerminationReason.DEGENERATE_MATING_WEIGHTS
            outcome.final_report = adult_report
            return outcome

        produced = self.produce_eggs(mature.females, weights)
        eggs = self.truncate_eggs(produced)
        counts = genotype_counts(eggs)
        outcome.eggs = eggs
        outcome.eggs_produced = len(produced)
        outcome.egg_counts = counts
        logger.debug(
            "Generation %d: %d adults, %d mature (%d F / %d M), %d eggs laid, %d kept",
            generation, len(adults), mature.size, len(mature.females),
            len(mature.males), len(produced), len(eggs),
        )

        if self.params.stop_when_fixated and is_fixated(counts):
            outcome.reason = TerminationReason.FIXATED
            outcome.final_report = StageReport(
                generation=generation,
                stage=LifeStage.EGG,
                population_size=counts.total,
                proportions=counts.proportions(),
            )
        return outcome
