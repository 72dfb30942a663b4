"""Measured reference signal (e.g. vertical GRF) with a smooth interpolant."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from scipy.interpolate import CubicSpline, make_smoothing_spline

from contact_calib.errors import ConfigurationError
from contact_calib.io import parse_csv_series


VALID_METHODS = {'gcv', 'cubic'}

# make_smoothing_spline needs at least this many samples.
MIN_GCV_SAMPLES = 5


class ReferenceSignal:
    """
    Time-stamped scalar samples plus a smooth interpolant.

    Methods:
      - 'gcv':   cubic smoothing spline, smoothing chosen by generalized
                 cross-validation (for noisy measured force plates). This is
                 degree 3; scipy has no GCV fit of higher degree, so the
                 quintic GCV spline common in OpenSim pipelines is not
                 reproduced exactly
      - 'cubic': interpolating cubic spline, exact at the samples

    Immutable once constructed; safe to query from any thread.
    """

    def __init__(self, time_s, values, method: str = 'gcv') -> None:
        method = method.strip().lower()
        if method not in VALID_METHODS:
            raise ConfigurationError(
                f"Unknown interpolation method '{method}'. Use: {sorted(VALID_METHODS)}"
            )

        t = np.asarray(time_s, dtype=float).ravel()
        y = np.asarray(values, dtype=float).ravel()
        if t.size != y.size:
            raise ConfigurationError(f'time ({t.size}) and values ({y.size}) lengths differ.')
        if t.size < 2:
            raise ConfigurationError('Reference signal needs at least 2 samples.')
        if not (np.all(np.isfinite(t)) and np.all(np.isfinite(y))):
            raise ConfigurationError('Reference signal contains non-finite samples.')

        order = np.argsort(t, kind='stable')
        t = t[order]
        y = y[order]
        if np.any(np.diff(t) <= 0.0):
            raise ConfigurationError('Reference signal has duplicate time stamps.')

        if method == 'gcv':
            if t.size < MIN_GCV_SAMPLES:
                raise ConfigurationError(
                    f"Method 'gcv' needs at least {MIN_GCV_SAMPLES} samples, got {t.size}."
                )
            self._spline = make_smoothing_spline(t, y)
        else:
            self._spline = CubicSpline(t, y)

        t.setflags(write=False)
        y.setflags(write=False)
        self._time_s = t
        self._values = y
        self._method = method

    @property
    def time_s(self) -> np.ndarray:
        return self._time_s

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def method(self) -> str:
        return self._method

    @property
    def degree(self) -> int:
        """Polynomial degree of the interpolant pieces."""
        if isinstance(self._spline, CubicSpline):
            return int(self._spline.c.shape[0]) - 1
        return int(self._spline.k)

    @property
    def start_s(self) -> float:
        return float(self._time_s[0])

    @property
    def end_s(self) -> float:
        return float(self._time_s[-1])

    def covers(self, times, *, tol: float = 1e-9) -> bool:
        """True if every time lies inside the sampled span (no extrapolation)."""
        times = np.asarray(times, dtype=float)
        if times.size == 0:
            return True
        return bool(np.min(times) >= self.start_s - tol and np.max(times) <= self.end_s + tol)

    def __call__(self, t):
        out = self._spline(np.asarray(t, dtype=float))
        if np.ndim(out) == 0:
            return float(out)
        return np.asarray(out, dtype=float)

    def __len__(self) -> int:
        return int(self._time_s.size)

    def __repr__(self) -> str:
        return (
            f'ReferenceSignal(n={len(self)}, span=[{self.start_s:.4g}, {self.end_s:.4g}] s, '
            f"method='{self._method}')"
        )


def load_reference_signal(
    path: Path,
    *,
    time_column: str = 'time',
    value_column: str = 'ground_force_vy',
    method: str = 'gcv',
) -> ReferenceSignal:
    """Read a force trace (e.g. ground_force_vy from a .mot file) into a ReferenceSignal."""
    series = parse_csv_series(path, [time_column], [value_column])
    return ReferenceSignal(series.time_s, series.values, method=method)
