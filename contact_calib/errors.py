"""Exception hierarchy for contact calibration."""

from __future__ import annotations

import numpy as np


class ContactCalibError(Exception):
    """Base class for all contact calibration errors."""


class ConfigurationError(ContactCalibError, ValueError):
    """Inconsistent dimensions, empty trajectories, malformed bounds or options."""


class ModelEvaluationError(ContactCalibError):
    """The forward model could not be evaluated for one parameter vector."""


class NumericalError(ModelEvaluationError):
    """An evaluation finished but produced a non-finite objective value."""


class PoolInitializationError(ContactCalibError):
    """A worker's model clone could not be created or initialized."""


class CalibrationFailed(ContactCalibError):
    """Terminal failure of a calibration run.

    Carries the iteration index at which the run stopped and the best
    result known at that point (None if nothing had been evaluated yet).
    """

    def __init__(
        self,
        message: str,
        *,
        iteration: int,
        best_objective: float | None = None,
        best_x: np.ndarray | None = None,
    ) -> None:
        super().__init__(message)
        self.iteration = iteration
        self.best_objective = best_objective
        self.best_x = best_x
