import threading

import numpy as np
import pytest

from contact_calib.errors import ModelEvaluationError
from contact_calib.model import ContactElement, FootContactModel, FootState
from contact_calib.objective import ContactObjective
from contact_calib.params import ContactParameters, ParameterMapping
from contact_calib.pool import ModelPool
from contact_calib.reference import ReferenceSignal
from contact_calib.trajectory import StateTrajectory


class UnitDepthModel:
    """
    Stand-in forward model: every contact reports fy = stiffness (unit depth),
    so the summed vertical force is sum(stiffnesses) at every state.

    Stiffnesses below fail_below make realize() fail, mimicking a model that
    rejects a parameter combination.
    """

    clones = 0
    _clone_lock = threading.Lock()

    def __init__(self, n_contacts=1, mass_kg=10.0, gravity=10.0, fail_below=None):
        self._n = n_contacts
        self.mass_kg = mass_kg
        self.gravity = gravity
        self.fail_below = fail_below
        self.heights = np.zeros(n_contacts)
        self.stiffnesses = np.zeros(n_contacts)
        self.init_calls = 0
        self._ready = False
        self._state = None

    @property
    def n_contacts(self):
        return self._n

    def clone(self):
        with UnitDepthModel._clone_lock:
            UnitDepthModel.clones += 1
        other = UnitDepthModel(self._n, self.mass_kg, self.gravity, self.fail_below)
        other.heights = self.heights.copy()
        other.stiffnesses = self.stiffnesses.copy()
        return other

    def apply_parameters(self, params: ContactParameters):
        self.heights = np.array(params.heights_m)
        self.stiffnesses = np.array(params.stiffnesses)
        self._ready = False

    def init_system(self):
        self.init_calls += 1
        self._ready = True

    def realize(self, state):
        if not self._ready:
            raise ModelEvaluationError('stale model')
        if self.fail_below is not None and np.any(self.stiffnesses < self.fail_below):
            raise ModelEvaluationError('parameter combination rejected')
        self._state = state

    def contact_forces(self):
        out = np.zeros((self._n, 2))
        out[:, 1] = self.stiffnesses
        return out

    def total_weight(self):
        return self.mass_kg * self.gravity


class BrokenModel(UnitDepthModel):
    def clone(self):
        raise RuntimeError('cannot copy this model')


def constant_trajectory(n=10, t0=0.0, t1=1.0):
    times = np.linspace(t0, t1, n)
    return StateTrajectory([FootState(time_s=float(t), q=(0.0, 0.0, 0.0)) for t in times])


@pytest.fixture
def constant_reference():
    """Constant 100 N at 10 evenly spaced times in [0, 1]."""
    return ReferenceSignal(np.linspace(0.0, 1.0, 10), np.full(10, 100.0), method='cubic')


@pytest.fixture
def unit_mapping():
    # stiffness = 100 * x[1]
    return ParameterMapping(n_contacts=1, stiffness_scaling=100.0)


@pytest.fixture
def unit_objective(constant_reference, unit_mapping):
    pool = ModelPool(UnitDepthModel(n_contacts=1, mass_kg=10.0, gravity=10.0))
    return ContactObjective(pool, unit_mapping, constant_trajectory(), constant_reference)


def make_foot_model(n_contacts=3, mass_kg=70.0):
    contacts = [
        ContactElement(
            name=f'marker{i}_contact',
            station_x_m=-0.03 + i * 0.31 / max(n_contacts - 1, 1),
            station_y_m=-0.027,
        )
        for i in range(n_contacts)
    ]
    model = FootContactModel(contacts=contacts, total_mass_kg=mass_kg)
    model.init_system()
    return model


def stance_trajectory(n=40):
    """Foot pressed into the ground with a slow rocking motion; speeds from finite differences."""
    t = np.linspace(0.0, 0.4, n)
    rz = 0.05 * np.sin(2.0 * np.pi * t / 0.4)
    tx = 0.2 * t
    ty = 0.020 + 0.004 * np.cos(2.0 * np.pi * t / 0.4)
    return StateTrajectory.from_arrays(t, np.column_stack((rz, tx, ty)))


@pytest.fixture
def blown_up_objective():
    """Foot objective whose trajectory holds one state sunk absurdly deep into the ground."""
    states = [FootState(time_s=0.1 * i, q=(0.0, 0.0, 0.02)) for i in range(10)]
    states[4] = FootState(time_s=0.4, q=(0.0, 0.0, -1e120))
    trajectory = StateTrajectory(states)
    reference = ReferenceSignal(trajectory.times, np.full(10, 700.0), method='cubic')
    mapping = ParameterMapping(n_contacts=3, stiffness_scaling=1e8)
    return ContactObjective(ModelPool(make_foot_model(n_contacts=3)), mapping, trajectory, reference)


@pytest.fixture
def foot_problem():
    """Foot model whose reference force is generated by the model itself at a known x."""
    model = make_foot_model(n_contacts=3)
    mapping = ParameterMapping(n_contacts=3, stiffness_scaling=1e8)
    trajectory = stance_trajectory()

    x_true = np.array([0.35, 0.4, 0.45, 0.5, 0.3, 0.6])
    truth = model.clone()
    truth.apply_parameters(mapping.map(x_true))
    truth.init_system()
    force = []
    for state in trajectory:
        truth.realize(state)
        force.append(float(np.sum(truth.contact_forces()[:, 1])))

    reference = ReferenceSignal(trajectory.times, force, method='cubic')
    objective = ContactObjective(ModelPool(model), mapping, trajectory, reference)
    return objective, x_true
