import numpy as np
import pytest

from contact_calib.errors import ConfigurationError
from contact_calib.model import FootState
from contact_calib.trajectory import StateTrajectory, load_states_trajectory


class TestStateTrajectory:
    def test_empty(self):
        with pytest.raises(ConfigurationError, match='empty'):
            StateTrajectory([])

    def test_decreasing_times(self):
        states = [FootState(time_s=t, q=(0.0, 0.0, 0.0)) for t in (0.0, 0.2, 0.1)]
        with pytest.raises(ConfigurationError, match='non-decreasing'):
            StateTrajectory(states)

    def test_sequence_protocol(self):
        states = [FootState(time_s=0.1 * i, q=(0.0, float(i), 0.0)) for i in range(4)]
        traj = StateTrajectory(states)
        assert len(traj) == 4
        assert traj.front() is states[0]
        assert traj[2] is states[2]
        assert list(traj) == states
        np.testing.assert_allclose(traj.times, [0.0, 0.1, 0.2, 0.3])
        with pytest.raises(ValueError):
            traj.times[0] = 1.0

    def test_from_arrays_estimates_speeds(self):
        t = np.linspace(0.0, 1.0, 11)
        q = np.column_stack((2.0 * t, 0.5 * t, np.full_like(t, 0.03)))
        traj = StateTrajectory.from_arrays(t, q)
        for state in traj:
            np.testing.assert_allclose(state.u, (2.0, 0.5, 0.0), atol=1e-12)

    def test_from_arrays_keeps_given_speeds(self):
        t = np.array([0.0, 0.1])
        q = np.zeros((2, 3))
        u = np.ones((2, 3))
        traj = StateTrajectory.from_arrays(t, q, u)
        assert traj[1].u == (1.0, 1.0, 1.0)

    def test_from_arrays_duplicate_time_rejected(self):
        t = np.array([0.0, 0.1, 0.1, 0.2, 0.3])
        with pytest.raises(ConfigurationError, match='strictly increasing'):
            StateTrajectory.from_arrays(t, np.zeros((5, 3)))

    def test_from_arrays_duplicate_time_allowed_with_speeds(self):
        t = np.array([0.0, 0.1, 0.1])
        traj = StateTrajectory.from_arrays(t, np.zeros((3, 3)), np.zeros((3, 3)))
        assert len(traj) == 3

    def test_from_arrays_shape_mismatch(self):
        with pytest.raises(ConfigurationError):
            StateTrajectory.from_arrays(np.array([0.0, 0.1]), np.zeros((2, 2)))


def _write_states(path, rows, *, with_speeds=False):
    header = ['time', 'rz', 'tx', 'ty']
    if with_speeds:
        header += ['rz_speed', 'tx_speed', 'ty_speed']
    lines = [','.join(header)] + [','.join(f'{v:.6f}' for v in row) for row in rows]
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')


class TestLoadStatesTrajectory:
    def test_degrees_converted(self, tmp_path):
        path = tmp_path / 'states.csv'
        _write_states(path, [(0.0, 90.0, 0.0, 0.01), (0.1, 180.0, 0.0, 0.01), (0.2, 90.0, 0.0, 0.01)])
        traj = load_states_trajectory(path, in_degrees=True)
        assert traj[0].q[0] == pytest.approx(np.pi / 2.0)
        assert traj[1].q[0] == pytest.approx(np.pi)

    def test_radians_kept(self, tmp_path):
        path = tmp_path / 'states.csv'
        _write_states(path, [(0.0, 0.5, 0.0, 0.01), (0.1, 0.5, 0.0, 0.01)])
        traj = load_states_trajectory(path, in_degrees=False)
        assert traj[0].q[0] == pytest.approx(0.5)

    def test_speed_columns_used(self, tmp_path):
        path = tmp_path / 'states.csv'
        _write_states(
            path,
            [(0.0, 0.0, 0.0, 0.01, 10.0, 0.3, -0.2), (0.1, 0.0, 0.0, 0.01, 10.0, 0.3, -0.2)],
            with_speeds=True,
        )
        traj = load_states_trajectory(path, in_degrees=True)
        assert traj[0].u == pytest.approx((np.deg2rad(10.0), 0.3, -0.2))
        # Exact column match: 'tx' must not pick up 'tx_speed'.
        assert traj[0].q == pytest.approx((0.0, 0.0, 0.01))

    def test_lowpass_smooths_coordinates(self, tmp_path):
        path = tmp_path / 'states.csv'
        t = np.arange(0.0, 1.0, 0.01)
        rng = np.random.default_rng(1)
        ty = 0.02 + 0.005 * np.sin(2.0 * np.pi * t) + rng.normal(0.0, 0.001, t.size)
        _write_states(path, [(ti, 0.0, 0.0, yi) for ti, yi in zip(t, ty)])
        raw = load_states_trajectory(path, in_degrees=False)
        filtered = load_states_trajectory(path, in_degrees=False, lowpass_hz=6.0)
        raw_speed = np.std([s.u[2] for s in raw])
        filtered_speed = np.std([s.u[2] for s in filtered])
        assert filtered_speed < raw_speed
        assert len(filtered) == len(raw)
