"""Configuration system for FlyPoly.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → command-line overrides

Sections map 1:1 to YAML top-level keys. Defaults reproduce the reference
parameter set (7% AA, 44% BB founders; 1000 eggs per generation; 30%
global survival).
"""

from __future__ import annotations

import dataclasses
import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run length and control."""
    n_generations: int = 5
    eggs_per_generation: int = 1000   # Egg carrying capacity per generation
    seed: Optional[int] = None        # None = unseeded (fresh entropy)
    stop_when_fixated: bool = False
    n_replicates: int = 1             # Sequential, independent streams


@dataclass
class PopulationSection:
    """Founder composition and population-wide survival."""
    proportion_females: float = 0.5   # Founder sex split and sex ratio at laying
    proportion_aa: float = 0.07
    proportion_bb: float = 0.44       # AB = 1 - AA - BB
    survival_global: float = 0.3      # Multiplies every egg survival rate

    @property
    def proportion_ab(self) -> float:
        return 1.0 - self.proportion_aa - self.proportion_bb


@dataclass
class SurvivalSection:
    """Egg → adult survival probability by sex and genotype."""
    females_aa: float = 0.71
    females_ab: float = 0.9
    females_bb: float = 1.0
    males_aa: float = 0.81
    males_ab: float = 1.0
    males_bb: float = 1.0


@dataclass
class ReproductionSection:
    """Fecundity and male mating success."""
    eggs_per_female: float = 50.0
    female_eggs_aa: float = 1.0       # Relative fecundity multipliers
    female_eggs_ab: float = 0.97
    female_eggs_bb: float = 0.87
    male_success_aa: float = 1.0
    male_success_ab: float = 0.55
    male_success_bb: float = 0.1
    male_freq_dep_coef: float = 0.0   # 0 disables frequency dependence


@dataclass
class MaturationSection:
    """Mean days to maturity and its spread."""
    female_days: float = 8.8          # Same for all female genotypes
    male_days_aa: float = 12.8
    male_days_ab: float = 10.3
    male_days_bb: float = 8.7
    cv: float = 0.5                   # Half-width of each uniform draw / mean


@dataclass
class EnvironmentSection:
    """Randomized environmental window (days)."""
    time: float = 10.0
    time_variation: float = 1.0


@dataclass
class OutputSection:
    """Output control."""
    file: str = "output_file.txt"
    progress: bool = True
    plot: Optional[str] = None


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    population: PopulationSection = field(default_factory=PopulationSection)
    survival: SurvivalSection = field(default_factory=SurvivalSection)
    reproduction: ReproductionSection = field(default_factory=ReproductionSection)
    maturation: MaturationSection = field(default_factory=MaturationSection)
    environment: EnvironmentSection = field(default_factory=EnvironmentSection)
    output: OutputSection = field(default_factory=OutputSection)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'population': PopulationSection,
    'survival': SurvivalSection,
    'reproduction': ReproductionSection,
    'maturation': MaturationSection,
    'environment': EnvironmentSection,
    'output': OutputSection,
}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def config_from_dict(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig.

    Raises:
        ValueError: On an unknown top-level section or a non-mapping section.
    """
    unknown = set(data) - set(_SECTION_MAP)
    if unknown:
        raise ValueError(
            f"Unknown configuration section(s) {sorted(unknown)}; "
            f"valid: {sorted(_SECTION_MAP)}"
        )
    sections = {}
    for key, cls in _SECTION_MAP.items():
        value = data.get(key)
        if value is None:
            sections[key] = cls()
        elif isinstance(value, dict):
            sections[key] = _dict_to_section(cls, value)
        else:
            raise ValueError(f"Section '{key}' must be a mapping, got {type(value).__name__}")
    return SimulationConfig(**sections)


def config_to_dict(config: SimulationConfig) -> Dict[str, Dict[str, Any]]:
    """Plain-dict view of a config (for dumping back to YAML)."""
    return dataclasses.asdict(config)


def parse_overrides(items: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Turn ``section.key=value`` strings into a nested override dict.

    Values are parsed with YAML scalar rules, so ``true``, ``12`` and
    ``0.5`` become bool, int and float.

    Raises:
        ValueError: If an item is not of the form section.key=value.
    """
    overrides: Dict[str, Dict[str, Any]] = {}
    for item in items:
        path, sep, raw = item.partition('=')
        section, dot, key = path.strip().partition('.')
        if not sep or not dot or not section or not key:
            raise ValueError(f"Override must look like section.key=value, got '{item}'")
        overrides.setdefault(section, {})[key] = yaml.safe_load(raw) if raw.strip() else None
    return overrides


def _check_probability(name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0) or math.isnan(value):
        raise ValueError(f"{name} must be in [0, 1], got {value}")


def _check_non_negative(name: str, value: float) -> None:
    if not (value >= 0.0) or math.isinf(value):
        raise ValueError(f"{name} must be finite and >= 0, got {value}")


def _check_positive(name: str, value: float) -> None:
    if not (value > 0.0) or math.isinf(value):
        raise ValueError(f"{name} must be finite and > 0, got {value}")


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Run length, capacity and seed are sane
      - Every probability-like parameter lies in [0, 1]
      - The derived AB founder proportion lies in [0, 1]
      - Fecundity, success and maturation parameters are non-negative
        (maturation days strictly positive)
      - Environment variation is non-negative
    """
    sim = config.simulation
    if sim.n_generations < 1:
        raise ValueError(f"simulation.n_generations must be >= 1, got {sim.n_generations}")
    if sim.eggs_per_generation < 0:
        raise ValueError(
            f"simulation.eggs_per_generation must be >= 0, got {sim.eggs_per_generation}"
        )
    if sim.seed is not None and sim.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if sim.n_replicates < 1:
        raise ValueError(f"simulation.n_replicates must be >= 1, got {sim.n_replicates}")

    pop = config.population
    _check_probability('population.proportion_females', pop.proportion_females)
    _check_probability('population.proportion_aa', pop.proportion_aa)
    _check_probability('population.proportion_bb', pop.proportion_bb)
    _check_probability('population.survival_global', pop.survival_global)
    # Small tolerance for values such as 1 - 0.07 - 0.93
    if not (-1e-12 <= pop.proportion_ab <= 1.0 + 1e-12):
        raise ValueError(
            f"population.proportion_aa + proportion_bb must not exceed 1 "
            f"(AB = {pop.proportion_ab})"
        )

    for f in dataclasses.fields(SurvivalSection):
        _check_probability(f"survival.{f.name}", getattr(config.survival, f.name))

    rep = config.reproduction
    _check_non_negative('reproduction.eggs_per_female', rep.eggs_per_female)
    for name in ('female_eggs_aa', 'female_eggs_ab', 'female_eggs_bb'):
        _check_non_negative(f"reproduction.{name}", getattr(rep, name))
    for name in ('male_success_aa', 'male_success_ab', 'male_success_bb'):
        _check_probability(f"reproduction.{name}", getattr(rep, name))
    if math.isnan(rep.male_freq_dep_coef) or math.isinf(rep.male_freq_dep_coef):
        raise ValueError("reproduction.male_freq_dep_coef must be finite")

    mat = config.maturation
    for name in ('female_days', 'male_days_aa', 'male_days_ab', 'male_days_bb'):
        _check_positive(f"maturation.{name}", getattr(mat, name))
    if not (0.0 <= mat.cv < 1.0):
        raise ValueError(f"maturation.cv must be in [0, 1), got {mat.cv}")

    env = config.environment
    _check_non_negative('environment.time', env.time)
    _check_non_negative('environment.time_variation', env.time_variation)


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML. A missing file is
            skipped with a warning.
        overrides: Optional nested dict (see `parse_overrides`).

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)
        else:
            warnings.warn(
                f"Scenario file '{scenario_path}' does not exist; ignoring it.",
                UserWarning,
                stacklevel=2,
            )

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = config_from_dict(config_dict)
    validate_config(config)
    return config


def default_config(overrides: Optional[Dict] = None) -> SimulationConfig:
    """Return a validated SimulationConfig with default values.

    Args:
        overrides: Optional nested dict applied on top of the defaults.
    """
    if overrides:
        data = deep_merge(config_to_dict(SimulationConfig()), overrides)
        config = config_from_dict(data)
    else:
        config = SimulationConfig()
    validate_config(config)
    return config
