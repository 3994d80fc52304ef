"""Tests for flypoly.model — founders, the generation loop and replicates."""

import csv

import numpy as np
import pytest

from flypoly.config import default_config
from flypoly.model import (
    SimulationResult,
    create_founders,
    run_replicates,
    run_simulation,
    simulate,
)
from flypoly.reporting import CsvReporter, MemoryReporter
from flypoly.tables import resolve_run_parameters
from flypoly.types import (
    Genotype,
    Individual,
    LifeStage,
    Sex,
    TerminationReason,
)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


ALL_MATURE = {'female_days': 5.0, 'male_days_aa': 5.0,
              'male_days_ab': 5.0, 'male_days_bb': 5.0, 'cv': 0.0}


def purifying_config(**simulation):
    """Only AA eggs survive and only AA males mate."""
    sim = {'n_generations': 20, 'eggs_per_generation': 500,
           'seed': 7, 'stop_when_fixated': True}
    sim.update(simulation)
    return default_config({
        'simulation': sim,
        'population': {'proportion_aa': 0.4, 'proportion_bb': 0.3,
                       'survival_global': 1.0},
        'survival': {'females_aa': 1.0, 'females_ab': 0.0, 'females_bb': 0.0,
                     'males_aa': 1.0, 'males_ab': 0.0, 'males_bb': 0.0},
        'reproduction': {'male_success_aa': 1.0, 'male_success_ab': 0.0,
                         'male_success_bb': 0.0},
        'maturation': ALL_MATURE,
        'environment': {'time': 10.0, 'time_variation': 1.0},
    })


# ═══════════════════════════════════════════════════════════════════════
# FOUNDERS
# ═══════════════════════════════════════════════════════════════════════

class TestFounders:
    def test_count(self, rng):
        tables, params = resolve_run_parameters(default_config())
        founders = create_founders(tables, params.founder_count, rng)
        assert len(founders) == 300

    def test_baseline_proportions(self, rng):
        tables, _ = resolve_run_parameters(default_config())
        founders = create_founders(tables, 20_000, rng)
        n = len(founders)
        frac_female = sum(f.sex == Sex.FEMALE for f in founders) / n
        frac_aa = sum(f.genotype == Genotype.AA for f in founders) / n
        frac_bb = sum(f.genotype == Genotype.BB for f in founders) / n
        assert abs(frac_female - 0.5) < 0.02
        assert abs(frac_aa - 0.07) < 0.01
        assert abs(frac_bb - 0.44) < 0.02

    def test_single_sex(self, rng):
        tables, _ = resolve_run_parameters(
            default_config({'population': {'proportion_females': 1.0}}))
        founders = create_founders(tables, 100, rng)
        assert all(f.sex == Sex.FEMALE for f in founders)

    def test_zero_founders(self, rng):
        tables, _ = resolve_run_parameters(default_config())
        assert create_founders(tables, 0, rng) == []


# ═══════════════════════════════════════════════════════════════════════
# SINGLE RUN
# ═══════════════════════════════════════════════════════════════════════

class TestSingleGeneration:
    def test_defaults_one_generation(self):
        config = default_config({'simulation': {'n_generations': 1, 'seed': 11}})
        result = run_simulation(config)
        assert isinstance(result, SimulationResult)
        assert result.founder_count == 300
        assert result.reason == TerminationReason.COMPLETED
        assert result.generations_run == 1
        assert [r.stage for r in result.records] == [LifeStage.ADULT]
        assert result.final == result.records[0]
        assert 0 < result.final.population_size <= 300
        assert sum(result.final.proportions) == pytest.approx(1.0)

    def test_reproducible_adult_pool(self):
        config = default_config({'simulation': {'n_generations': 1, 'seed': 11}})
        a = run_simulation(config)
        b = run_simulation(config)
        assert a.final == b.final


class TestDegenerateRun:
    def test_all_female_population_ends_run(self):
        config = default_config({
            'simulation': {'n_generations': 10, 'seed': 3},
            'population': {'proportion_females': 1.0},
        })
        result = run_simulation(config)
        assert result.reason == TerminationReason.DEGENERATE_MATING_WEIGHTS
        assert result.generations_run == 1
        assert result.terminated_early
        assert result.final.stage == LifeStage.ADULT
        assert result.final.generation == 1
        assert result.final_counts.total == result.final.population_size

    def test_explicit_female_founders(self, rng):
        tables, params = resolve_run_parameters(default_config())
        founders = [Individual(Sex.FEMALE, Genotype.AB)] * 50
        result = simulate(tables, params, rng, founders=founders)
        assert result.reason == TerminationReason.DEGENERATE_MATING_WEIGHTS
        assert result.founder_count == 50

    def test_no_eggs_for_next_generation_degenerates(self, rng):
        """A generation with zero surviving eggs has no males to mate."""
        config = default_config({
            'simulation': {'n_generations': 5},
            'population': {'survival_global': 0.0},
            'maturation': ALL_MATURE,
        })
        tables, params = resolve_run_parameters(config)
        founders = ([Individual(Sex.FEMALE, Genotype.AA)] * 5
                    + [Individual(Sex.MALE, Genotype.AA)] * 5)
        result = simulate(tables, params, rng, founders=founders)
        assert result.reason == TerminationReason.DEGENERATE_MATING_WEIGHTS
        assert result.generations_run == 2
        assert result.final.population_size == 0
        assert np.isnan(result.adult_sizes[2:]).all()


class TestFixation:
    def test_purifying_selection_fixes_aa(self):
        result = run_simulation(purifying_config())
        assert result.reason == TerminationReason.FIXATED
        assert result.generations_run < 20
        assert result.final.stage == LifeStage.EGG
        assert result.final.proportions == (1.0, 0.0, 0.0)
        assert result.final_counts.ab == 0
        assert result.final_counts.bb == 0
        assert result.final_counts.aa > 0
        assert result.final_b_frequency == 0.0

    def test_fixation_ignored_when_disabled(self):
        result = run_simulation(purifying_config(stop_when_fixated=False,
                                                 n_generations=4))
        assert result.reason == TerminationReason.COMPLETED
        assert result.generations_run == 4
        assert result.final.stage == LifeStage.ADULT
        assert result.final.proportions == (1.0, 0.0, 0.0)

    def test_fixated_founders_stop_in_first_generation(self, rng):
        config = default_config({
            'simulation': {'stop_when_fixated': True},
            'maturation': ALL_MATURE,
        })
        tables, params = resolve_run_parameters(config)
        founders = ([Individual(Sex.FEMALE, Genotype.BB)] * 10
                    + [Individual(Sex.MALE, Genotype.BB)] * 10)
        result = simulate(tables, params, rng, founders=founders)
        assert result.reason == TerminationReason.FIXATED
        assert result.generations_run == 1
        assert result.final.proportions == (0.0, 0.0, 1.0)
        assert result.final_b_frequency == 1.0

    def test_empty_egg_pool_stops_as_fixated(self, rng):
        config = default_config({
            'simulation': {'n_generations': 10, 'stop_when_fixated': True},
            'reproduction': {'eggs_per_female': 0},
            'maturation': ALL_MATURE,
        })
        tables, params = resolve_run_parameters(config)
        founders = ([Individual(Sex.FEMALE, Genotype.AB)] * 10
                    + [Individual(Sex.MALE, Genotype.AB)] * 10)
        result = simulate(tables, params, rng, founders=founders)
        assert result.reason == TerminationReason.FIXATED
        assert result.generations_run == 1
        assert result.final.stage == LifeStage.EGG
        assert result.final.population_size == 0
        assert result.final_counts.total == 0


class TestMultiGeneration:
    @pytest.fixture
    def result(self):
        config = default_config({'simulation': {'n_generations': 6, 'seed': 2024}})
        return run_simulation(config)

    def test_completes(self, result):
        assert result.reason == TerminationReason.COMPLETED
        assert result.completed
        assert result.generations_run == 6

    def test_record_order(self, result):
        stages = [(r.generation, r.stage) for r in result.records]
        expected = [(1, LifeStage.ADULT)]
        for g in range(2, 7):
            expected += [(g, LifeStage.EGG), (g, LifeStage.ADULT)]
        assert stages == expected

    def test_final_is_last_adult_report(self, result):
        assert result.final == result.records[-1]
        assert result.final.generation == 6

    def test_egg_pool_bounded_by_capacity(self, result):
        assert np.isnan(result.egg_sizes[0])
        assert (result.egg_sizes[1:] <= 1000).all()

    def test_timeseries_shapes(self, result):
        assert result.egg_proportions.shape == (6, 3)
        assert result.adult_proportions.shape == (6, 3)
        assert np.isnan(result.egg_proportions[0]).all()
        np.testing.assert_allclose(result.adult_proportions.sum(axis=1), 1.0)
        assert result.adult_b_frequency().shape == (6,)

    def test_idempotent(self, result):
        config = default_config({'simulation': {'n_generations': 6, 'seed': 2024}})
        again = run_simulation(config)
        assert again.records == result.records
        assert again.final == result.final

    def test_different_seeds_differ(self, result):
        config = default_config({'simulation': {'n_generations': 6, 'seed': 2025}})
        assert run_simulation(config).records != result.records


class TestReporterIntegration:
    def test_without_reporter_result_still_has_records(self, rng):
        tables, params = resolve_run_parameters(
            default_config({'simulation': {'n_generations': 3}}))
        result = simulate(tables, params, rng)
        assert [r.stage for r in result.records] == [
            LifeStage.ADULT, LifeStage.EGG, LifeStage.ADULT, LifeStage.EGG, LifeStage.ADULT]
        assert result.final == result.records[-1]

    def test_external_reporter_sees_everything(self):
        config = default_config({'simulation': {'n_generations': 3, 'seed': 5}})
        memory = MemoryReporter()
        result = run_simulation(config, reporter=memory)
        assert memory.records == result.records
        assert memory.final == result.final
        assert memory.reason == TerminationReason.COMPLETED
        assert len(memory.stage(LifeStage.EGG)) == 2
        assert len(memory.stage(LifeStage.ADULT)) == 3

    def test_finish_called_on_early_stop(self):
        memory = MemoryReporter()
        run_simulation(purifying_config(), reporter=memory)
        assert memory.reason == TerminationReason.FIXATED
        assert memory.final.stage == LifeStage.EGG

    def test_csv_ends_with_fixated_egg_pool(self, tmp_path):
        path = tmp_path / "fixation.csv"
        result = run_simulation(purifying_config(), reporter=CsvReporter(path))
        with open(path, newline='') as fh:
            rows = list(csv.reader(fh))
        g = result.generations_run
        assert [r[0] for r in rows[1:]] == [str(i) for i in range(1, g + 2)]
        assert rows[-1] == [str(g + 1), '1.000000', '0.000000', '0.000000', '', '', '']


# ═══════════════════════════════════════════════════════════════════════
# REPLICATES
# ═══════════════════════════════════════════════════════════════════════

class TestReplicates:
    CONFIG = {'simulation': {'n_generations': 3, 'eggs_per_generation': 400}}

    def test_count_from_config(self):
        config = default_config({'simulation': {'n_generations': 2, 'seed': 1,
                                                'n_replicates': 3}})
        assert len(run_replicates(config)) == 3

    def test_reproducible(self):
        config = default_config(self.CONFIG)
        a = run_replicates(config, n_replicates=3, master_seed=99)
        b = run_replicates(config, n_replicates=3, master_seed=99)
        for r1, r2 in zip(a, b):
            assert r1.records == r2.records

    def test_replicates_are_independent(self):
        config = default_config(self.CONFIG)
        a, b = run_replicates(config, n_replicates=2, master_seed=99)
        assert a.records != b.records

    def test_reporter_factory_called_per_replicate(self):
        config = default_config(self.CONFIG)
        reporters = {}

        def factory(i):
            reporters[i] = MemoryReporter()
            return reporters[i]

        results = run_replicates(config, n_replicates=2, master_seed=4,
                                 reporter_factory=factory)
        assert sorted(reporters) == [0, 1]
        for i, result in enumerate(results):
            assert reporters[i].final == result.final
