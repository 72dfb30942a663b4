from __future__ import annotations

import sys
import threading
from collections.abc import Hashable

import numpy as np

from contact_calib.errors import ConfigurationError, ModelEvaluationError, NumericalError
from contact_calib.log import get_logger
from contact_calib.params import ParameterMapping
from contact_calib.pool import ModelPool
from contact_calib.reference import ReferenceSignal
from contact_calib.trajectory import StateTrajectory


logger = get_logger(__name__)

# Objective assigned to candidates whose evaluation failed: the largest finite
# float, so rank-based search moves away from them without inf/nan arithmetic.
FAILED_OBJECTIVE = sys.float_info.max


def is_failed(value: float) -> bool:
    return not np.isfinite(value) or value >= FAILED_OBJECTIVE


class EvaluationCounter:
    """
    Count completed objective calls across workers without a lock.

    Each worker only ever writes its own tally, so increments never race;
    totals read mid-batch may lag by in-flight calls, but are exact once
    a batch has been joined.
    """

    def __init__(self) -> None:
        self._tallies: dict[Hashable, int] = {}

    def increment(self, worker_id: Hashable | None = None) -> None:
        if worker_id is None:
            worker_id = threading.get_ident()
        self._tallies[worker_id] = self._tallies.get(worker_id, 0) + 1

    @property
    def total(self) -> int:
        return sum(list(self._tallies.values()))

    def per_worker(self) -> dict[Hashable, int]:
        return dict(self._tallies)


class ContactObjective:
    """
    Normalized squared error between simulated and measured vertical contact force.

    For a parameter vector x:
      1. take this worker's model from the pool
      2. apply mapping(x) and re-run init_system()
      3. realize every trajectory state and sum fy over all contacts
      4. compare with the reference interpolated at the state time
      5. J = sum((sim - ref)^2) / (body weight * number of states)

    The normalization constant is computed once, from the prototype, at
    construction. Results for a given x are bit-identical whichever worker
    evaluates them.
    """

    def __init__(
        self,
        pool: ModelPool,
        mapping: ParameterMapping,
        trajectory: StateTrajectory,
        reference: ReferenceSignal,
    ) -> None:
        prototype = pool.prototype
        if mapping.n_contacts != prototype.n_contacts:
            raise ConfigurationError(
                f'Mapping is for {mapping.n_contacts} contacts but the model has '
                f'{prototype.n_contacts}.'
            )
        if len(trajectory) == 0:
            raise ConfigurationError('State trajectory is empty.')
        if not reference.covers(trajectory.times):
            raise ConfigurationError(
                f'Reference spans [{reference.start_s:.6g}, {reference.end_s:.6g}] s but states '
                f'span [{trajectory.times[0]:.6g}, {trajectory.times[-1]:.6g}] s.'
            )

        weight = float(prototype.total_weight())
        normalization = weight * len(trajectory)
        if not np.isfinite(normalization) or normalization <= 0.0:
            raise ConfigurationError(f'Invalid normalization constant {normalization} (weight={weight}).')

        reference_values = np.asarray(reference(trajectory.times), dtype=float).reshape(-1)
        if not np.all(np.isfinite(reference_values)):
            raise ConfigurationError('Reference signal is not finite at the state times.')
        reference_values.setflags(write=False)

        self.pool = pool
        self.mapping = mapping
        self.trajectory = trajectory
        self.reference = reference
        self.normalization = normalization
        self.counter = EvaluationCounter()
        self._reference_values = reference_values

    @property
    def dimension(self) -> int:
        return self.mapping.dimension

    @property
    def reference_values(self) -> np.ndarray:
        """Reference evaluated at each state time."""
        return self._reference_values

    @property
    def n_evaluations(self) -> int:
        return self.counter.total

    def simulate(self, x) -> np.ndarray:
        """Summed vertical contact force at each state for parameters x."""
        params = self.mapping.map(x)
        model = self.pool.acquire()

        model.apply_parameters(params)
        model.init_system()

        simulated = np.empty(len(self.trajectory), dtype=float)
        for i, state in enumerate(self.trajectory):
            model.realize(state)
            simulated[i] = float(np.sum(model.contact_forces()[:, 1]))
        return simulated

    def evaluate(self, x) -> float:
        """Objective value for x; raises ModelEvaluationError on failure."""
        simulated = self.simulate(x)
        error = simulated - self._reference_values
        value = float(np.sum(error * error)) / self.normalization
        if not np.isfinite(value):
            raise NumericalError(f'Objective is not finite ({value}) for x={np.asarray(x)}')
        return value

    def __call__(self, x) -> float:
        """
        Per-candidate entry point for workers.

        Model failures become FAILED_OBJECTIVE; configuration and pool
        errors propagate.
        """
        try:
            return self.evaluate(x)
        except ModelEvaluationError as e:
            logger.debug(f'candidate failed: {e}')
            return FAILED_OBJECTIVE
        finally:
            self.counter.increment()
