"""Single source of truth for config + repo paths.

Policy:
- No fallback/default config values in code.
- If required config keys are missing, terminate with a clear error.
- Environment overrides (contact_calib.env) are applied by commands only.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from contact_calib.optimizer import OptimizerConfig
from contact_calib.params import ParameterMapping


REPO_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = REPO_ROOT / 'config.json'


def resolve_path(p: str) -> Path:
    path = Path(p)
    return path if path.is_absolute() else (REPO_ROOT / path)


def load_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding='utf-8'))


def _lookup(cfg: dict, keys: list[str]) -> tuple[Any, str]:
    """Walk nested sections; returns (value, dotted key)."""
    node: Any = cfg
    for depth, k in enumerate(keys, start=1):
        if not isinstance(node, dict) or k not in node:
            raise KeyError(f'Missing required config key: {".".join(keys[:depth])}')
        node = node[k]
    return node, '.'.join(keys)


def _number(cfg: dict, keys: list[str], kind: type) -> Any:
    v, name = _lookup(cfg, keys)
    label = 'an int-like' if kind is int else 'a float-like'
    bad = isinstance(v, bool) or (kind is int and isinstance(v, float) and not v.is_integer())
    if not bad:
        try:
            return kind(v)
        except (TypeError, ValueError):
            pass
    raise ValueError(f'Config key {name} must be {label} value, got {v!r}.')


def req_str(cfg: dict, keys: list[str]) -> str:
    v, name = _lookup(cfg, keys)
    if isinstance(v, str) and v.strip():
        return v
    raise ValueError(f'Config key {name} must be a non-empty string, got {v!r}.')


def req_float(cfg: dict, keys: list[str]) -> float:
    return _number(cfg, keys, float)


def req_int(cfg: dict, keys: list[str]) -> int:
    return _number(cfg, keys, int)


def req_bool(cfg: dict, keys: list[str]) -> bool:
    v, name = _lookup(cfg, keys)
    if isinstance(v, bool):
        return v
    raise ValueError(f'Config key {name} must be true or false, got {v!r}.')


def opt_float(cfg: dict, keys: list[str]) -> float | None:
    """Key must exist; null means 'not set'."""
    v, _ = _lookup(cfg, keys)
    return None if v is None else _number(cfg, keys, float)


def read_config(path: Path | None = None) -> dict:
    cfg = load_json(path or DEFAULT_CONFIG_PATH)
    validate_config(cfg)
    return cfg


def validate_config(cfg: dict) -> None:
    # Existence/type checks (no defaults).
    req_int(cfg, ['model', 'num_contacts'])
    req_float(cfg, ['model', 'heel_x_m'])
    req_float(cfg, ['model', 'toes_x_m'])
    req_float(cfg, ['model', 'station_y_m'])
    req_float(cfg, ['model', 'total_mass_kg'])
    req_float(cfg, ['model', 'gravity_mps2'])
    req_float(cfg, ['model', 'contact', 'stiffness'])
    req_float(cfg, ['model', 'contact', 'dissipation'])
    req_float(cfg, ['model', 'contact', 'friction_coefficient'])
    req_float(cfg, ['model', 'contact', 'tangent_velocity_scaling'])

    req_float(cfg, ['parameters', 'height_lower_m'])
    req_float(cfg, ['parameters', 'height_upper_m'])
    req_float(cfg, ['parameters', 'stiffness_scaling'])

    req_str(cfg, ['data', 'states_file'])
    req_bool(cfg, ['data', 'states_in_degrees'])
    opt_float(cfg, ['data', 'states_lowpass_hz'])
    req_str(cfg, ['data', 'grf_file'])
    req_str(cfg, ['data', 'grf_time_column'])
    req_str(cfg, ['data', 'grf_force_column'])
    req_str(cfg, ['data', 'reference_interpolation'])

    req_int(cfg, ['optimizer', 'population_size'])
    req_float(cfg, ['optimizer', 'initial_step_size'])
    req_float(cfg, ['optimizer', 'convergence_tolerance'])
    req_int(cfg, ['optimizer', 'stall_iterations'])
    req_int(cfg, ['optimizer', 'max_iterations'])
    req_str(cfg, ['optimizer', 'parallel'])
    req_int(cfg, ['optimizer', 'workers'])
    req_int(cfg, ['optimizer', 'seed'])
    req_float(cfg, ['optimizer', 'start'])
    opt_float(cfg, ['optimizer', 'evaluation_timeout_s'])

    req_str(cfg, ['output', 'dir'])
    req_str(cfg, ['output', 'comparison_file'])
    req_str(cfg, ['output', 'calibration_file'])


def parameter_mapping_from_config(cfg: dict) -> ParameterMapping:
    return ParameterMapping(
        n_contacts=req_int(cfg, ['model', 'num_contacts']),
        height_lower_m=req_float(cfg, ['parameters', 'height_lower_m']),
        height_upper_m=req_float(cfg, ['parameters', 'height_upper_m']),
        stiffness_scaling=req_float(cfg, ['parameters', 'stiffness_scaling']),
    )


def optimizer_config_from_config(cfg: dict) -> OptimizerConfig:
    return OptimizerConfig(
        population_size=req_int(cfg, ['optimizer', 'population_size']),
        initial_step_size=req_float(cfg, ['optimizer', 'initial_step_size']),
        convergence_tolerance=req_float(cfg, ['optimizer', 'convergence_tolerance']),
        stall_iterations=req_int(cfg, ['optimizer', 'stall_iterations']),
        max_iterations=req_int(cfg, ['optimizer', 'max_iterations']),
        parallel=req_str(cfg, ['optimizer', 'parallel']).strip().lower(),
        workers=req_int(cfg, ['optimizer', 'workers']),
        seed=req_int(cfg, ['optimizer', 'seed']),
        start=req_float(cfg, ['optimizer', 'start']),
        evaluation_timeout_s=opt_float(cfg, ['optimizer', 'evaluation_timeout_s']),
    )
