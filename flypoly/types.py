"""Core data types for FlyPoly.

This module is the SINGLE SOURCE OF TRUTH for:
  - Sex, Genotype, Allele, LifeStage, TerminationReason enumerations
  - Individual: the immutable (sex, genotype) record every pool is made of
  - GenotypeCounts: tabulated AA/AB/BB counts
  - StageReport: the per-stage tuple handed to reporters

All modules import these types from here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Tuple


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class Sex(IntEnum):
    """Sex of an individual (0=female, 1=male)."""
    FEMALE = 0
    MALE = 1


class Genotype(IntEnum):
    """Diploid genotype at the single locus.

    Value is the number of copies of the B allele, so AA=0, AB=1, BB=2.
    """
    AA = 0
    AB = 1
    BB = 2


class Allele(IntEnum):
    """Allele carried by a gamete."""
    A = 0
    B = 1


class LifeStage(str, Enum):
    """Stage at which a population is reported."""
    EGG = "egg"
    ADULT = "adult"


class TerminationReason(str, Enum):
    """Why a run stopped.

    COMPLETED                : configured generation count reached
    FIXATED                  : one allele lost from the egg pool
    DEGENERATE_MATING_WEIGHTS: mating weights summed to zero or were NaN
    """
    COMPLETED = "completed"
    FIXATED = "fixated"
    DEGENERATE_MATING_WEIGHTS = "degenerate_mating_weights"


# Ordered for iteration / tabulation (index == enum value)
SEXES: Tuple[Sex, ...] = (Sex.FEMALE, Sex.MALE)
GENOTYPES: Tuple[Genotype, ...] = (Genotype.AA, Genotype.AB, Genotype.BB)

Proportions = Tuple[float, float, float]


# ═══════════════════════════════════════════════════════════════════════
# VALUE TYPES
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Individual:
    """One fly. Two individuals with equal fields are interchangeable."""
    sex: Sex
    genotype: Genotype


@dataclass(frozen=True)
class GenotypeCounts:
    """Number of AA, AB and BB individuals in a pool."""
    aa: int = 0
    ab: int = 0
    bb: int = 0

    @property
    def total(self) -> int:
        return self.aa + self.ab + self.bb

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.aa, self.ab, self.bb)

    def proportions(self) -> Proportions:
        """Counts divided by the pool size; (0, 0, 0) for an empty pool."""
        n = self.total
        if n == 0:
            return (0.0, 0.0, 0.0)
        return (self.aa / n, self.ab / n, self.bb / n)


@dataclass(frozen=True)
class StageReport:
    """Snapshot of one life stage, as handed to a Reporter."""
    generation: int
    stage: LifeStage
    population_size: int
    proportions: Proportions
