"""Contact calibration and comparison commands."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import numpy as np

from contact_calib.calibration_store import require_calibration_result, write_calibration_result
from contact_calib.env import optimizer_overrides
from contact_calib.model import build_foot_model
from contact_calib.objective import ContactObjective
from contact_calib.optimizer import CalibrationDriver, CalibrationResult
from contact_calib.output import comparison_sink_for
from contact_calib.pool import ModelPool
from contact_calib.reference import load_reference_signal
from contact_calib.settings import (
    opt_float,
    optimizer_config_from_config,
    parameter_mapping_from_config,
    read_config,
    req_bool,
    req_str,
    resolve_path,
)
from contact_calib.trajectory import load_states_trajectory


def _output_paths(cfg: dict) -> tuple[Path, Path]:
    out_dir = resolve_path(req_str(cfg, ['output', 'dir']))
    return (
        out_dir / req_str(cfg, ['output', 'calibration_file']),
        out_dir / req_str(cfg, ['output', 'comparison_file']),
    )


def build_objective(cfg: dict, echo=print) -> ContactObjective:
    """Prototype model, state trajectory and reference force wired into one objective."""
    prototype = build_foot_model(cfg)
    mapping = parameter_mapping_from_config(cfg)

    states_path = resolve_path(req_str(cfg, ['data', 'states_file']))
    trajectory = load_states_trajectory(
        states_path,
        in_degrees=req_bool(cfg, ['data', 'states_in_degrees']),
        lowpass_hz=opt_float(cfg, ['data', 'states_lowpass_hz']),
    )
    echo(f'Loaded states: {trajectory} from {states_path}')

    grf_path = resolve_path(req_str(cfg, ['data', 'grf_file']))
    reference = load_reference_signal(
        grf_path,
        time_column=req_str(cfg, ['data', 'grf_time_column']),
        value_column=req_str(cfg, ['data', 'grf_force_column']),
        method=req_str(cfg, ['data', 'reference_interpolation']),
    )
    echo(f'Loaded reference: {reference} from {grf_path}')

    return ContactObjective(ModelPool(prototype), mapping, trajectory, reference)


def _format_params(result_params) -> list[str]:
    lines = []
    for i, (h, k) in enumerate(zip(result_params.heights_m, result_params.stiffnesses)):
        lines.append(f'    contact {i}: height={h * 1000.0:+.2f} mm, stiffness={k:.4g}')
    return lines


def run_calibrate_contact(
    echo=print,
    config_path: Path | None = None,
    overrides: dict | None = None,
) -> CalibrationResult:
    """
    Calibrate contact heights and stiffnesses to the measured vertical GRF,
    save the result and write the simulated/measured comparison.

    Args:
        echo: Function to use for output (default: print)
        config_path: Config file (default: config.json in the repo root)
        overrides: OptimizerConfig fields that win over config and environment
    """
    cfg = read_config(config_path)
    calibration_path, comparison_path = _output_paths(cfg)

    opt_cfg = optimizer_config_from_config(cfg)
    changes = {**optimizer_overrides(), **(overrides or {})}
    if changes:
        echo(f'Optimizer overrides: {changes}')
        opt_cfg = dataclasses.replace(opt_cfg, **changes)

    objective = build_objective(cfg, echo)
    echo(
        f'Calibrating {objective.mapping.n_contacts} contacts '
        f'({objective.dimension} variables), normalization={objective.normalization:.6g}'
    )

    driver = CalibrationDriver(objective, opt_cfg)
    result = driver.run()

    echo(f'objective: {result.objective:.6g}')
    echo(f'variables: {np.array2string(result.x, precision=5)}')
    echo(f'status: {result.status.value} after {result.iterations} iterations')
    echo(f'evaluations: {result.n_evaluations}')
    echo(f'runtime: {result.elapsed_s:.2f} s')
    for line in _format_params(result.params):
        echo(line)

    write_calibration_result(result, calibration_path)
    echo(f'Calibration saved: {calibration_path}')

    driver.export_comparison(result.x, comparison_sink_for(comparison_path))
    echo(f'Comparison written: {comparison_path}')
    return result


def run_compare_contact(echo=print, config_path: Path | None = None) -> np.ndarray:
    """Write the simulated/measured comparison for the stored calibration."""
    cfg = read_config(config_path)
    calibration_path, comparison_path = _output_paths(cfg)

    doc, x = require_calibration_result(calibration_path)
    echo(f'Loaded calibration from {calibration_path}')

    objective = build_objective(cfg, echo)
    simulated = CalibrationDriver(objective, optimizer_config_from_config(cfg)).export_comparison(
        x, comparison_sink_for(comparison_path)
    )

    rms = float(np.sqrt(np.mean((simulated - objective.reference_values) ** 2)))
    echo(f'objective: {objective.evaluate(x):.6g} (stored {doc["result"]["objective"]:.6g})')
    echo(f'RMS vertical force error: {rms:.2f} N')
    echo(f'Comparison written: {comparison_path}')
    return simulated
