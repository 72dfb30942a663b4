from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from contact_calib.errors import ConfigurationError


# Station height bounds (m, y component in the foot frame) and the
# stiffness that corresponds to a normalized value of 1.0.
DEFAULT_HEIGHT_LOWER_M = -0.06
DEFAULT_HEIGHT_UPPER_M = 0.05
DEFAULT_STIFFNESS_SCALING = 1e8


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, dtype=float)
    a.setflags(write=False)
    return a


@dataclass(frozen=True)
class ContactParameters:
    """Physical contact parameters, one entry per contact station."""

    heights_m: np.ndarray
    stiffnesses: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, 'heights_m', _readonly(self.heights_m))
        object.__setattr__(self, 'stiffnesses', _readonly(self.stiffnesses))
        if self.heights_m.shape != self.stiffnesses.shape or self.heights_m.ndim != 1:
            raise ConfigurationError(
                f'heights ({self.heights_m.shape}) and stiffnesses ({self.stiffnesses.shape}) '
                'must be 1-D arrays of the same length.'
            )

    @property
    def n_contacts(self) -> int:
        return int(self.heights_m.size)

    def as_dict(self) -> dict:
        return {
            'heights_m': [float(v) for v in self.heights_m],
            'stiffnesses': [float(v) for v in self.stiffnesses],
        }


@dataclass(frozen=True)
class ParameterMapping:
    """
    Map normalized optimizer variables in [0, 1] to physical parameters.

    Layout of x (length 2 * n_contacts):
      x[:n]  -> station heights, linear between height_lower_m and height_upper_m
      x[n:]  -> stiffnesses, stiffness_scaling * x

    Stateless: safe to call from any number of threads.
    """

    n_contacts: int
    height_lower_m: float = DEFAULT_HEIGHT_LOWER_M
    height_upper_m: float = DEFAULT_HEIGHT_UPPER_M
    stiffness_scaling: float = DEFAULT_STIFFNESS_SCALING

    def __post_init__(self) -> None:
        if int(self.n_contacts) != self.n_contacts or self.n_contacts < 1:
            raise ConfigurationError(f'n_contacts must be an integer >= 1, got {self.n_contacts!r}.')
        lo, hi = float(self.height_lower_m), float(self.height_upper_m)
        if not (np.isfinite(lo) and np.isfinite(hi)) or hi <= lo:
            raise ConfigurationError(f'Invalid height bounds: [{lo}, {hi}]')
        scale = float(self.stiffness_scaling)
        if not np.isfinite(scale) or scale <= 0.0:
            raise ConfigurationError(f'stiffness_scaling must be finite and > 0, got {scale}.')

    @property
    def dimension(self) -> int:
        return 2 * int(self.n_contacts)

    def check(self, x: Sequence[float] | np.ndarray) -> np.ndarray:
        """Return x as a float array after checking length and the [0, 1] box."""
        x = np.asarray(x, dtype=float)
        if x.shape != (self.dimension,):
            raise ConfigurationError(
                f'Parameter vector must have length {self.dimension}, got shape {x.shape}.'
            )
        if not np.all(np.isfinite(x)):
            raise ConfigurationError(f'Parameter vector contains non-finite values: {x}')
        if np.any(x < 0.0) or np.any(x > 1.0):
            raise ConfigurationError(f'Parameter vector outside [0, 1]: {x}')
        return x

    def map(self, x: Sequence[float] | np.ndarray) -> ContactParameters:
        x = self.check(x)
        n = int(self.n_contacts)
        lo = float(self.height_lower_m)
        hi = float(self.height_upper_m)
        heights = lo + x[:n] * (hi - lo)
        stiffnesses = float(self.stiffness_scaling) * x[n:]
        return ContactParameters(heights_m=heights, stiffnesses=stiffnesses)

    __call__ = map

    def start_vector(self, start: float | Sequence[float]) -> np.ndarray:
        """Broadcast a scalar start value (or check a full vector) inside the box."""
        if np.ndim(start) == 0:
            x0 = np.full(self.dimension, float(start), dtype=float)
        else:
            x0 = np.asarray(start, dtype=float)
        return self.check(x0).copy()
