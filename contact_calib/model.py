from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field, replace
from typing import Protocol

import numpy as np

from contact_calib.errors import ConfigurationError, ModelEvaluationError
from contact_calib.params import ContactParameters


G0 = 9.80665

# Penetration-independent restoring term (N/m) that keeps the normal force
# continuous through the ground plane.
VOID_STIFFNESS_N_PER_M = 1.0


@dataclass(frozen=True)
class FootState:
    """Planar foot state: q = (rz, tx, ty) in rad/m, u = their time derivatives."""

    time_s: float
    q: tuple[float, float, float]
    u: tuple[float, float, float] = (0.0, 0.0, 0.0)


class ForwardModel(Protocol):
    """What the calibration core needs from a simulated model."""

    @property
    def n_contacts(self) -> int: ...

    def clone(self) -> ForwardModel: ...

    def apply_parameters(self, params: ContactParameters) -> None: ...

    def init_system(self) -> None: ...

    def realize(self, state: FootState) -> None: ...

    def contact_forces(self) -> np.ndarray: ...

    def total_weight(self) -> float: ...


@dataclass(frozen=True)
class ContactElement:
    """
    Point contact between a foot station and the ground plane y = 0.

    Normal force (Ackermann & van den Bogert 2010), with d the penetration depth:
      fy = max(0, k * d^3 * (1 + b * d_dot))   for d > 0
      fy += VOID_STIFFNESS_N_PER_M * d
    Friction:
      fx = -mu * fy * tanh(vx / v_s)
    """

    name: str
    station_x_m: float
    station_y_m: float
    stiffness: float = 5e7  # N/m^3
    dissipation: float = 1.0  # s/m
    friction_coefficient: float = 0.95
    tangent_velocity_scaling: float = 0.3  # m/s

    def force(self, position: np.ndarray, velocity: np.ndarray) -> tuple[float, float]:
        depth = -float(position[1])
        depth_rate = -float(velocity[1])
        fy = 0.0
        if depth > 0.0:
            fy = max(0.0, self.stiffness * depth**3 * (1.0 + self.dissipation * depth_rate))
        fy += VOID_STIFFNESS_N_PER_M * depth
        fx = -fy * self.friction_coefficient * math.tanh(
            float(velocity[0]) / self.tangent_velocity_scaling
        )
        return fx, fy


@dataclass
class FootContactModel:
    """
    Rigid planar foot with point contacts, driven kinematically by FootState.

    Mutable working object: apply_parameters() marks the model stale and
    init_system() must run before the next realize().
    """

    contacts: list[ContactElement]
    total_mass_kg: float
    gravity_mps2: float = G0

    _stations: np.ndarray | None = field(default=None, init=False, repr=False)
    _positions: np.ndarray | None = field(default=None, init=False, repr=False)
    _velocities: np.ndarray | None = field(default=None, init=False, repr=False)

    @property
    def n_contacts(self) -> int:
        return len(self.contacts)

    @property
    def ready(self) -> bool:
        return self._stations is not None

    def clone(self) -> FootContactModel:
        return copy.deepcopy(self)

    def apply_parameters(self, params: ContactParameters) -> None:
        if params.n_contacts != self.n_contacts:
            raise ConfigurationError(
                f'Got parameters for {params.n_contacts} contacts, model has {self.n_contacts}.'
            )
        self.contacts = [
            replace(c, station_y_m=float(h), stiffness=float(k))
            for c, h, k in zip(self.contacts, params.heights_m, params.stiffnesses)
        ]
        self._stations = None
        self._positions = None
        self._velocities = None

    def init_system(self) -> None:
        """Validate the contact set and rebuild the cached station locations."""
        if not self.contacts:
            raise ModelEvaluationError('Model has no contact elements.')
        for c in self.contacts:
            values = (
                c.station_x_m,
                c.station_y_m,
                c.stiffness,
                c.dissipation,
                c.friction_coefficient,
                c.tangent_velocity_scaling,
            )
            if not all(math.isfinite(v) for v in values):
                raise ModelEvaluationError(f'Contact {c.name} has non-finite properties.')
            if c.stiffness < 0.0 or c.dissipation < 0.0 or c.friction_coefficient < 0.0:
                raise ModelEvaluationError(f'Contact {c.name} has negative properties.')
            if c.tangent_velocity_scaling <= 0.0:
                raise ModelEvaluationError(f'Contact {c.name} needs tangent_velocity_scaling > 0.')

        self._stations = np.array(
            [[c.station_x_m, c.station_y_m] for c in self.contacts], dtype=float
        )
        self._positions = None
        self._velocities = None

    def realize(self, state: FootState) -> None:
        """Compute ground-frame station positions and velocities for a state."""
        if self._stations is None:
            raise ModelEvaluationError('init_system() must be called after changing parameters.')

        rz, tx, ty = (float(v) for v in state.q)
        wz, vx, vy = (float(v) for v in state.u)
        if not all(math.isfinite(v) for v in (rz, tx, ty, wz, vx, vy)):
            raise ModelEvaluationError(f'Non-finite state at t={state.time_s}.')

        c, s = math.cos(rz), math.sin(rz)
        rot = np.array([[c, -s], [s, c]], dtype=float)
        r = self._stations @ rot.T  # station offsets in the ground frame

        self._positions = r + np.array([tx, ty], dtype=float)
        # v = v_origin + w x r (planar)
        self._velocities = np.column_stack((vx - wz * r[:, 1], vy + wz * r[:, 0]))

    def contact_forces(self) -> np.ndarray:
        """(n_contacts, 2) array of (fx, fy) applied by the ground at each station."""
        if self._positions is None or self._velocities is None:
            raise ModelEvaluationError('realize() must be called before querying forces.')
        out = np.empty((self.n_contacts, 2), dtype=float)
        for i, contact in enumerate(self.contacts):
            try:
                out[i] = contact.force(self._positions[i], self._velocities[i])
            except ArithmeticError as e:
                raise ModelEvaluationError(f'Contact {contact.name} force overflowed: {e}') from e
        if not np.all(np.isfinite(out)):
            raise ModelEvaluationError('Contact forces are not finite.')
        return out

    def total_weight(self) -> float:
        return float(self.total_mass_kg) * abs(float(self.gravity_mps2))


def build_foot_model(cfg: dict) -> FootContactModel:
    """
    Build the prototype from the 'model' config section.

    Contacts are spread evenly from heel to toes along the foot x axis.
    """
    model_cfg = cfg['model']
    contact_cfg = model_cfg['contact']

    n = int(model_cfg['num_contacts'])
    if n < 1:
        raise ConfigurationError(f'model.num_contacts must be >= 1, got {n}.')
    x_heel = float(model_cfg['heel_x_m'])
    x_toes = float(model_cfg['toes_x_m'])
    y_station = float(model_cfg['station_y_m'])

    contacts = []
    for i in range(n):
        frac = float(i) / float(n - 1) if n > 1 else 0.0
        contacts.append(
            ContactElement(
                name=f'marker{i}_contact',
                station_x_m=x_heel + frac * (x_toes - x_heel),
                station_y_m=y_station,
                stiffness=float(contact_cfg['stiffness']),
                dissipation=float(contact_cfg['dissipation']),
                friction_coefficient=float(contact_cfg['friction_coefficient']),
                tangent_velocity_scaling=float(contact_cfg['tangent_velocity_scaling']),
            )
        )

    model = FootContactModel(
        contacts=contacts,
        total_mass_kg=float(model_cfg['total_mass_kg']),
        gravity_mps2=float(model_cfg['gravity_mps2']),
    )
    try:
        model.init_system()
    except ModelEvaluationError as e:
        raise ConfigurationError(f'Invalid model configuration: {e}') from e
    return model
