"""FlyPoly: generational simulation of a two-allele polymorphism.

An individual-based model of a sexually reproducing population carrying
genotypes AA/AB/BB, coupling:
  - Sex- and genotype-specific egg survival with a global survival scalar
  - Maturation racing a randomized environmental window
  - Frequency-dependent male mating success
  - Finite egg carrying capacity per generation
  - Optional stop on fixation of either allele
"""

__version__ = "0.1.0"
