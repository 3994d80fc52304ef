"""Parameter lookup tables and the resolved run snapshot.

Tables are built once from a validated SimulationConfig and are read-only
for the duration of a run. Keys are (Sex, Genotype) pairs or bare
Genotype values; lookups rely on value equality only.

  egg_survival     (Sex, Genotype) → P(egg reaches adulthood), before the
                   global survival scalar
  fecundity        (FEMALE, Genotype) → eggs per reproduction event
  male_success     Genotype → relative male mating success
  maturation_days  (Sex, Genotype) → mean days to maturity
  sex_baseline     Sex → founder sex weight
  genotype_baseline Genotype → founder genotype weight
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from flypoly.config import SimulationConfig, validate_config
from flypoly.types import GENOTYPES, SEXES, Genotype, Sex

SexGenotype = Tuple[Sex, Genotype]


@dataclass(frozen=True)
class ParameterTables:
    """Per-class lookup tables for one run."""
    egg_survival: Mapping[SexGenotype, float]
    fecundity: Mapping[SexGenotype, float]
    male_success: Mapping[Genotype, float]
    maturation_days: Mapping[SexGenotype, float]
    sex_baseline: Mapping[Sex, float]
    genotype_baseline: Mapping[Genotype, float]

    def __post_init__(self):
        check_tables(self)


@dataclass(frozen=True)
class RunParameters:
    """Scalar parameters for one run."""
    n_generations: int
    eggs_per_generation: int
    survival_global: float
    proportion_females: float
    male_freq_dep_coef: float
    maturation_cv: float
    environment_time: float
    environment_time_variation: float
    stop_when_fixated: bool = False

    @property
    def founder_count(self) -> int:
        """Target adult count for generation 1, rounded down."""
        return int(math.floor(self.eggs_per_generation * self.survival_global))


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _require(table: Mapping, keys, name: str, low: float = 0.0,
             high: float = math.inf, strict_low: bool = False) -> None:
    for key in keys:
        if key not in table:
            raise ValueError(f"{name} has no entry for {key}")
        value = table[key]
        too_low = value <= low if strict_low else value < low
        if math.isnan(value) or too_low or value > high:
            bound = '(' if strict_low else '['
            raise ValueError(
                f"{name}[{key}] = {value} outside {bound}{low}, {high}]"
            )


def check_tables(tables: ParameterTables) -> None:
    """Fail fast on missing entries or out-of-range values.

    Every (sex, genotype) class that can occur in a population must have
    an entry, so a bad table surfaces before generation 1 rather than as a
    KeyError mid-run.

    Raises:
        ValueError: On a missing or invalid entry.
    """
    all_classes = [(s, g) for s in SEXES for g in GENOTYPES]
    female_classes = [(Sex.FEMALE, g) for g in GENOTYPES]

    _require(tables.egg_survival, all_classes, 'egg_survival', high=1.0)
    _require(tables.fecundity, female_classes, 'fecundity')
    _require(tables.male_success, GENOTYPES, 'male_success', high=1.0)
    _require(tables.maturation_days, all_classes, 'maturation_days', strict_low=True)
    _require(tables.sex_baseline, SEXES, 'sex_baseline')
    _require(tables.genotype_baseline, GENOTYPES, 'genotype_baseline')

    if sum(tables.sex_baseline.values()) <= 0:
        raise ValueError("sex_baseline weights must not all be zero")
    if sum(tables.genotype_baseline.values()) <= 0:
        raise ValueError("genotype_baseline weights must not all be zero")


# ═══════════════════════════════════════════════════════════════════════
# CONSTRUCTION
# ═══════════════════════════════════════════════════════════════════════

def build_parameter_tables(config: SimulationConfig) -> ParameterTables:
    """Build the lookup tables from a configuration.

    Female fecundity is ``eggs_per_female`` scaled by the genotype's
    relative multiplier. Female maturation time is shared by all female
    genotypes.
    """
    surv = config.survival
    rep = config.reproduction
    mat = config.maturation
    pop = config.population

    egg_survival = {
        (Sex.FEMALE, Genotype.AA): surv.females_aa,
        (Sex.FEMALE, Genotype.AB): surv.females_ab,
        (Sex.FEMALE, Genotype.BB): surv.females_bb,
        (Sex.MALE, Genotype.AA): surv.males_aa,
        (Sex.MALE, Genotype.AB): surv.males_ab,
        (Sex.MALE, Genotype.BB): surv.males_bb,
    }
    fecundity = {
        (Sex.FEMALE, Genotype.AA): rep.eggs_per_female * rep.female_eggs_aa,
        (Sex.FEMALE, Genotype.AB): rep.eggs_per_female * rep.female_eggs_ab,
        (Sex.FEMALE, Genotype.BB): rep.eggs_per_female * rep.female_eggs_bb,
    }
    male_success = {
        Genotype.AA: rep.male_success_aa,
        Genotype.AB: rep.male_success_ab,
        Genotype.BB: rep.male_success_bb,
    }
    maturation_days = {
        (Sex.FEMALE, Genotype.AA): mat.female_days,
        (Sex.FEMALE, Genotype.AB): mat.female_days,
        (Sex.FEMALE, Genotype.BB): mat.female_days,
        (Sex.MALE, Genotype.AA): mat.male_days_aa,
        (Sex.MALE, Genotype.AB): mat.male_days_ab,
        (Sex.MALE, Genotype.BB): mat.male_days_bb,
    }
    sex_baseline = {
        Sex.FEMALE: pop.proportion_females,
        Sex.MALE: 1.0 - pop.proportion_females,
    }
    genotype_baseline = {
        Genotype.AA: pop.proportion_aa,
        # Clamp float residue such as -1e-17
        Genotype.AB: max(0.0, pop.proportion_ab),
        Genotype.BB: pop.proportion_bb,
    }

    return ParameterTables(
        egg_survival=MappingProxyType(egg_survival),
        fecundity=MappingProxyType(fecundity),
        male_success=MappingProxyType(male_success),
        maturation_days=MappingProxyType(maturation_days),
        sex_baseline=MappingProxyType(sex_baseline),
        genotype_baseline=MappingProxyType(genotype_baseline),
    )


def build_run_parameters(config: SimulationConfig) -> RunParameters:
    """Extract the scalar parameters of a run."""
    return RunParameters(
        n_generations=int(config.simulation.n_generations),
        eggs_per_generation=int(config.simulation.eggs_per_generation),
        survival_global=float(config.population.survival_global),
        proportion_females=float(config.population.proportion_females),
        male_freq_dep_coef=float(config.reproduction.male_freq_dep_coef),
        maturation_cv=float(config.maturation.cv),
        environment_time=float(config.environment.time),
        environment_time_variation=float(config.environment.time_variation),
        stop_when_fixated=bool(config.simulation.stop_when_fixated),
    )


def resolve_run_parameters(
    config: SimulationConfig,
) -> Tuple[ParameterTables, RunParameters]:
    """Validate a config and freeze it into the snapshot the core consumes.

    Raises:
        ValueError: If the configuration or the derived tables are invalid.
    """
    validate_config(config)
    return build_parameter_tables(config), build_run_parameters(config)
