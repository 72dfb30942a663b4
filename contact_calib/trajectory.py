from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

import numpy as np

from contact_calib.errors import ConfigurationError
from contact_calib.filters import lowpass_filter
from contact_calib.io import read_table
from contact_calib.model import FootState


COORDINATE_NAMES = ('rz', 'tx', 'ty')


class StateTrajectory:
    """Ordered, immutable sequence of foot states shared by all evaluations."""

    def __init__(self, states: Sequence[FootState]) -> None:
        states = tuple(states)
        if not states:
            raise ConfigurationError('State trajectory is empty.')
        times = np.array([s.time_s for s in states], dtype=float)
        if not np.all(np.isfinite(times)):
            raise ConfigurationError('State trajectory has non-finite times.')
        if np.any(np.diff(times) < 0.0):
            raise ConfigurationError('State trajectory times must be non-decreasing.')
        times.setflags(write=False)
        self._states = states
        self._times = times

    @classmethod
    def from_arrays(
        cls,
        time_s: np.ndarray,
        q: np.ndarray,
        u: np.ndarray | None = None,
    ) -> StateTrajectory:
        """
        Build from coordinate arrays of shape (T, 3).

        Speeds are estimated by finite differences when u is not given.
        """
        t = np.asarray(time_s, dtype=float).ravel()
        q = np.asarray(q, dtype=float)
        if q.shape != (t.size, 3):
            raise ConfigurationError(f'q must have shape ({t.size}, 3), got {q.shape}.')
        if u is None:
            if t.size < 2:
                raise ConfigurationError('Need at least 2 states to estimate speeds.')
            if np.any(np.diff(t) <= 0.0):
                raise ConfigurationError('Times must be strictly increasing to estimate speeds.')
            u = np.gradient(q, t, axis=0)
        u = np.asarray(u, dtype=float)
        if u.shape != q.shape:
            raise ConfigurationError(f'u must have shape {q.shape}, got {u.shape}.')

        states = [
            FootState(
                time_s=float(t[i]),
                q=(float(q[i, 0]), float(q[i, 1]), float(q[i, 2])),
                u=(float(u[i, 0]), float(u[i, 1]), float(u[i, 2])),
            )
            for i in range(t.size)
        ]
        return cls(states)

    @property
    def times(self) -> np.ndarray:
        return self._times

    def front(self) -> FootState:
        return self._states[0]

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[FootState]:
        return iter(self._states)

    def __getitem__(self, i: int) -> FootState:
        return self._states[i]

    def __repr__(self) -> str:
        return (
            f'StateTrajectory(n={len(self)}, '
            f'span=[{self._times[0]:.4g}, {self._times[-1]:.4g}] s)'
        )


def load_states_trajectory(
    path: Path,
    *,
    in_degrees: bool,
    lowpass_hz: float | None = None,
) -> StateTrajectory:
    """
    Read foot kinematics with columns time, rz, tx, ty (optionally
    rz_speed, tx_speed, ty_speed).

    Rotations given in degrees are converted to radians. When lowpass_hz is
    set the coordinates are filtered and speeds are re-estimated from the
    filtered coordinates.
    """
    table = read_table(path)
    t = table.column(['time'])
    q = np.column_stack([table.column([name]) for name in COORDINATE_NAMES])

    u = None
    speed_names = [f'{name}_speed' for name in COORDINATE_NAMES]
    if all(table.has_column([s]) for s in speed_names):
        u = np.column_stack([table.column([s]) for s in speed_names])

    if in_degrees:
        q[:, 0] = np.deg2rad(q[:, 0])
        if u is not None:
            u[:, 0] = np.deg2rad(u[:, 0])

    if lowpass_hz is not None and lowpass_hz > 0.0:
        if t.size < 2:
            raise ConfigurationError('Need at least 2 states to filter the trajectory.')
        sample_rate_hz = 1.0 / float(np.median(np.diff(t)))
        q = lowpass_filter(q, sample_rate_hz, lowpass_hz)
        u = None

    return StateTrajectory.from_arrays(t, q, u)
