"""Tests for flypoly.tables — lookup tables and resolved run snapshot."""

import pytest

from flypoly.config import default_config
from flypoly.tables import (
    ParameterTables,
    RunParameters,
    build_parameter_tables,
    build_run_parameters,
    resolve_run_parameters,
)
from flypoly.types import GENOTYPES, SEXES, Genotype, Sex


def _table_kwargs():
    """Complete, valid table contents as plain dicts."""
    return dict(
        egg_survival={(s, g): 1.0 for s in SEXES for g in GENOTYPES},
        fecundity={(Sex.FEMALE, g): 10.0 for g in GENOTYPES},
        male_success={g: 1.0 for g in GENOTYPES},
        maturation_days={(s, g): 5.0 for s in SEXES for g in GENOTYPES},
        sex_baseline={Sex.FEMALE: 0.5, Sex.MALE: 0.5},
        genotype_baseline={Genotype.AA: 1.0, Genotype.AB: 1.0, Genotype.BB: 1.0},
    )


class TestBuildParameterTables:
    def test_survival_by_sex_and_genotype(self):
        tables = build_parameter_tables(default_config())
        assert tables.egg_survival[(Sex.FEMALE, Genotype.AA)] == 0.71
        assert tables.egg_survival[(Sex.FEMALE, Genotype.AB)] == 0.9
        assert tables.egg_survival[(Sex.MALE, Genotype.AA)] == 0.81
        assert tables.egg_survival[(Sex.MALE, Genotype.BB)] == 1.0

    def test_fecundity_scaled_by_eggs_per_female(self):
        tables = build_parameter_tables(default_config())
        assert tables.fecundity[(Sex.FEMALE, Genotype.AA)] == pytest.approx(50.0)
        assert tables.fecundity[(Sex.FEMALE, Genotype.AB)] == pytest.approx(48.5)
        assert tables.fecundity[(Sex.FEMALE, Genotype.BB)] == pytest.approx(43.5)
        assert (Sex.MALE, Genotype.AA) not in tables.fecundity

    def test_female_maturation_shared(self):
        tables = build_parameter_tables(default_config())
        for g in GENOTYPES:
            assert tables.maturation_days[(Sex.FEMALE, g)] == 8.8
        assert tables.maturation_days[(Sex.MALE, Genotype.AB)] == 10.3

    def test_baselines(self):
        tables = build_parameter_tables(default_config())
        assert tables.sex_baseline[Sex.FEMALE] == 0.5
        assert tables.sex_baseline[Sex.MALE] == 0.5
        assert tables.genotype_baseline[Genotype.AB] == pytest.approx(0.49)

    def test_keys_use_value_equality(self):
        tables = build_parameter_tables(default_config())
        key = (Sex(1), Genotype(2))
        assert tables.egg_survival[key] == 1.0

    def test_tables_read_only(self):
        tables = build_parameter_tables(default_config())
        with pytest.raises(TypeError):
            tables.male_success[Genotype.AA] = 0.0


class TestTableValidation:
    def test_complete_tables_accepted(self):
        ParameterTables(**_table_kwargs())

    def test_missing_entry_fails_fast(self):
        kwargs = _table_kwargs()
        del kwargs['egg_survival'][(Sex.MALE, Genotype.AB)]
        with pytest.raises(ValueError, match="egg_survival has no entry"):
            ParameterTables(**kwargs)

    def test_missing_fecundity_entry(self):
        kwargs = _table_kwargs()
        del kwargs['fecundity'][(Sex.FEMALE, Genotype.BB)]
        with pytest.raises(ValueError, match="fecundity"):
            ParameterTables(**kwargs)

    def test_negative_weight_rejected(self):
        kwargs = _table_kwargs()
        kwargs['genotype_baseline'][Genotype.AA] = -0.1
        with pytest.raises(ValueError, match="genotype_baseline"):
            ParameterTables(**kwargs)

    def test_survival_above_one_rejected(self):
        kwargs = _table_kwargs()
        kwargs['egg_survival'][(Sex.FEMALE, Genotype.AA)] = 1.5
        with pytest.raises(ValueError):
            ParameterTables(**kwargs)

    def test_zero_maturation_days_rejected(self):
        kwargs = _table_kwargs()
        kwargs['maturation_days'][(Sex.MALE, Genotype.AA)] = 0.0
        with pytest.raises(ValueError, match="maturation_days"):
            ParameterTables(**kwargs)

    def test_all_zero_baseline_rejected(self):
        kwargs = _table_kwargs()
        kwargs['sex_baseline'] = {Sex.FEMALE: 0.0, Sex.MALE: 0.0}
        with pytest.raises(ValueError, match="must not all be zero"):
            ParameterTables(**kwargs)


class TestRunParameters:
    def test_from_default_config(self):
        params = build_run_parameters(default_config())
        assert params.n_generations == 5
        assert params.eggs_per_generation == 1000
        assert params.survival_global == 0.3
        assert params.proportion_females == 0.5
        assert params.maturation_cv == 0.5
        assert params.environment_time == 10.0
        assert params.environment_time_variation == 1.0
        assert params.stop_when_fixated is False

    def test_founder_count_rounds_down(self):
        params = build_run_parameters(default_config())
        assert params.founder_count == 300
        odd = build_run_parameters(default_config(
            {'simulation': {'eggs_per_generation': 999}}))
        assert odd.founder_count == 299

    def test_resolve_returns_both(self):
        tables, params = resolve_run_parameters(default_config())
        assert isinstance(tables, ParameterTables)
        assert isinstance(params, RunParameters)

    def test_resolve_validates(self):
        config = default_config()
        config.population.proportion_females = 3.0
        with pytest.raises(ValueError):
            resolve_run_parameters(config)
