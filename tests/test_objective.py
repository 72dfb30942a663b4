import concurrent.futures

import numpy as np
import pytest

from contact_calib.errors import (
    ConfigurationError,
    ModelEvaluationError,
    NumericalError,
    PoolInitializationError,
)
from contact_calib.objective import FAILED_OBJECTIVE, ContactObjective, EvaluationCounter, is_failed
from contact_calib.params import ParameterMapping
from contact_calib.pool import ModelPool
from contact_calib.reference import ReferenceSignal
from tests.conftest import BrokenModel, UnitDepthModel, constant_trajectory


class TestContactObjective:
    """Unit-depth stand-in: simulated force = 100 * x[1] at every state."""

    def test_exact_match_is_zero(self, unit_objective):
        assert unit_objective([0.3, 1.0]) == 0.0

    def test_normalized_by_weight_and_state_count(self, unit_objective):
        # 10 states * (50 - 100)^2 / (100 N * 10 states)
        assert unit_objective([0.3, 0.5]) == pytest.approx(25.0)
        assert unit_objective.normalization == pytest.approx(100.0 * 10)

    def test_reference_values_sampled_at_state_times(self, unit_objective):
        np.testing.assert_allclose(unit_objective.reference_values, np.full(10, 100.0))
        with pytest.raises(ValueError):
            unit_objective.reference_values[0] = 0.0

    def test_simulate(self, unit_objective):
        np.testing.assert_allclose(unit_objective.simulate([0.3, 0.25]), np.full(10, 25.0))

    def test_deterministic_serial(self, unit_objective):
        x = [0.42, 0.73]
        assert unit_objective(x) == unit_objective(x) == unit_objective(x)

    def test_deterministic_across_threads(self, foot_problem):
        objective, x_true = foot_problem
        x = np.clip(x_true + 0.05, 0.0, 1.0)
        serial = objective(x)
        with concurrent.futures.ThreadPoolExecutor(max_workers=8) as ex:
            values = list(ex.map(objective, [x] * 32))
        assert all(v == serial for v in values)
        assert len(objective.pool) >= 2

    def test_counts_every_call(self, unit_objective):
        for _ in range(3):
            unit_objective([0.3, 0.5])
        assert unit_objective.n_evaluations == 3

    def test_model_failure_returns_sentinel(self, constant_reference, unit_mapping):
        pool = ModelPool(UnitDepthModel(fail_below=60.0))
        objective = ContactObjective(pool, unit_mapping, constant_trajectory(), constant_reference)
        assert objective([0.3, 0.5]) == FAILED_OBJECTIVE
        assert objective([0.3, 0.8]) == pytest.approx(4.0)
        assert objective.n_evaluations == 2

    def test_evaluate_raises_instead_of_sentinel(self, constant_reference, unit_mapping):
        pool = ModelPool(UnitDepthModel(fail_below=60.0))
        objective = ContactObjective(pool, unit_mapping, constant_trajectory(), constant_reference)
        with pytest.raises(ModelEvaluationError, match='rejected'):
            objective.evaluate([0.3, 0.5])

    def test_non_finite_value(self, constant_reference):
        mapping = ParameterMapping(n_contacts=1, stiffness_scaling=1e308)
        pool = ModelPool(UnitDepthModel())
        objective = ContactObjective(pool, mapping, constant_trajectory(), constant_reference)
        with pytest.raises(NumericalError):
            objective.evaluate([0.3, 1.0])
        assert objective([0.3, 1.0]) == FAILED_OBJECTIVE

    def test_force_overflow_returns_sentinel(self, blown_up_objective):
        assert blown_up_objective(np.full(6, 0.5)) == FAILED_OBJECTIVE
        assert blown_up_objective.n_evaluations == 1
        with pytest.raises(ModelEvaluationError):
            blown_up_objective.evaluate(np.full(6, 0.5))

    def test_pool_error_propagates(self, constant_reference, unit_mapping):
        objective = ContactObjective(
            ModelPool(BrokenModel()), unit_mapping, constant_trajectory(), constant_reference
        )
        with pytest.raises(PoolInitializationError):
            objective([0.3, 0.5])
        assert objective.n_evaluations == 1

    def test_out_of_box_vector_propagates(self, unit_objective):
        with pytest.raises(ConfigurationError):
            unit_objective([0.3, 1.5])

    def test_foot_model_recovers_generating_parameters(self, foot_problem):
        objective, x_true = foot_problem
        assert objective(x_true) == pytest.approx(0.0, abs=1e-12)
        assert objective(np.full(6, 0.5)) > 0.0


class TestObjectiveConstruction:
    def test_contact_count_mismatch(self, constant_reference):
        with pytest.raises(ConfigurationError, match='contacts'):
            ContactObjective(
                ModelPool(UnitDepthModel(n_contacts=2)),
                ParameterMapping(n_contacts=3),
                constant_trajectory(),
                constant_reference,
            )

    def test_reference_must_cover_states(self, unit_mapping):
        reference = ReferenceSignal([0.0, 0.5], [100.0, 100.0], method='cubic')
        with pytest.raises(ConfigurationError, match='Reference spans'):
            ContactObjective(ModelPool(UnitDepthModel()), unit_mapping, constant_trajectory(), reference)

    def test_zero_weight(self, constant_reference, unit_mapping):
        with pytest.raises(ConfigurationError, match='normalization'):
            ContactObjective(
                ModelPool(UnitDepthModel(mass_kg=0.0)), unit_mapping, constant_trajectory(), constant_reference
            )


class TestEvaluationCounter:
    def test_per_worker_tallies(self):
        counter = EvaluationCounter()
        counter.increment('a')
        counter.increment('a')
        counter.increment('b')
        assert counter.total == 3
        assert counter.per_worker() == {'a': 2, 'b': 1}

    def test_exact_after_join(self):
        counter = EvaluationCounter()
        with concurrent.futures.ThreadPoolExecutor(max_workers=4) as ex:
            for f in [ex.submit(counter.increment) for _ in range(400)]:
                f.result()
        assert counter.total == 400


def test_is_failed():
    assert is_failed(FAILED_OBJECTIVE)
    assert is_failed(float('nan'))
    assert not is_failed(0.0)
    assert not is_failed(1e300)
