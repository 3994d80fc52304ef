"""Single-locus, two-allele genetics for FlyPoly.

Core responsibilities:
  - Gamete formation: one allele drawn from a parent (coin flip for AB),
    singly or as a batch
  - Zygote formation: genotype from two alleles (order-independent)
  - Genotype tabulation over a pool (counts, proportions)
  - Fixation test on a tabulated pool
  - B-allele frequency for summaries
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from flypoly.types import (
    Allele,
    Genotype,
    GenotypeCounts,
    Individual,
    Proportions,
)


# ═══════════════════════════════════════════════════════════════════════
# MENDELIAN TRANSMISSION
# ═══════════════════════════════════════════════════════════════════════

def allele_from_parent(
    individual: Individual,
    rng: Optional[np.random.Generator] = None,
) -> Allele:
    """Draw the allele a parent passes to one gamete.

    Homozygotes always pass their single allele and consume no random draw.
    Heterozygotes pass A or B with probability 0.5, drawn fresh on every
    call so two eggs of the same AB parent can carry different alleles.
    """
    genotype = individual.genotype
    if genotype == Genotype.AA:
        return Allele.A
    if genotype == Genotype.BB:
        return Allele.B
    if rng is None:
        rng = np.random.default_rng()
    return Allele.A if rng.random() < 0.5 else Allele.B


def gamete_alleles(
    individual: Individual,
    n: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Alleles a parent passes to ``n`` independent gametes.

    Vectorized form of allele_from_parent. Returns an (n,) int8 array of
    Allele codes (0 = A, 1 = B). Homozygotes consume no random draws.
    """
    genotype = individual.genotype
    if genotype == Genotype.AA:
        return np.zeros(n, dtype=np.int8)
    if genotype == Genotype.BB:
        return np.ones(n, dtype=np.int8)
    return rng.integers(0, 2, size=n, dtype=np.int8)


def genotype_from_alleles(a1: Allele, a2: Allele) -> Genotype:
    """Combine two gametes into a genotype.

    Raises:
        ValueError: If either argument is not an Allele.
    """
    for allele in (a1, a2):
        if not isinstance(allele, Allele):
            raise ValueError(f"Unrecognized allele {allele!r}; expected Allele.A or Allele.B")
    # Genotype value == number of B alleles
    return Genotype(int(a1) + int(a2))


# ═══════════════════════════════════════════════════════════════════════
# TABULATION
# ═══════════════════════════════════════════════════════════════════════

def genotype_counts(population: Iterable[Individual]) -> GenotypeCounts:
    """Count AA, AB and BB individuals."""
    codes = np.fromiter((int(ind.genotype) for ind in population), dtype=np.int64)
    counts = np.bincount(codes, minlength=3)
    return GenotypeCounts(aa=int(counts[0]), ab=int(counts[1]), bb=int(counts[2]))


def genotype_proportions(population: Iterable[Individual]) -> Proportions:
    """(pAA, pAB, pBB) of a pool; (0, 0, 0) when the pool is empty."""
    return genotype_counts(population).proportions()


def is_fixated(counts: GenotypeCounts) -> bool:
    """True when one allele has been lost from the pool.

    B is fixed when there are no AA and no AB individuals; A is fixed when
    there are no BB and no AB individuals. An empty pool satisfies both.
    """
    b_fixed = counts.aa == 0 and counts.ab == 0
    a_fixed = counts.bb == 0 and counts.ab == 0
    return b_fixed or a_fixed


def allele_frequency_b(counts: GenotypeCounts) -> float:
    """Frequency of the B allele, (AB + 2·BB) / 2N. 0.0 for an empty pool."""
    n = counts.total
    if n == 0:
        return 0.0
    return (counts.ab + 2 * counts.bb) / (2.0 * n)
