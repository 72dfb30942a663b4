from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from contact_calib.optimizer import CalibrationResult


def calibration_doc(result: CalibrationResult) -> dict:
    return {
        'x': [float(v) for v in result.x],
        'params': result.params.as_dict(),
        'result': {
            'objective': float(result.objective),
            'status': result.status.value,
            'converged': result.converged,
            'iterations': int(result.iterations),
            'n_evaluations': int(result.n_evaluations),
            'elapsed_s': float(result.elapsed_s),
        },
    }


def write_calibration_result(result: CalibrationResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(calibration_doc(result), indent=2) + '\n', encoding='utf-8')
    return path


def load_calibration_result(path: Path) -> dict | None:
    if not path.exists():
        return None
    doc = json.loads(path.read_text(encoding='utf-8'))
    if not isinstance(doc, dict) or not isinstance(doc.get('x'), list):
        return None
    return doc


def require_calibration_result(path: Path) -> tuple[dict, np.ndarray]:
    """
    Load a stored calibration and fail loudly if it doesn't exist.

    This enforces: run calibration first, then compare.
    """
    doc = load_calibration_result(path)
    if doc is None:
        raise FileNotFoundError(
            f'Missing contact calibration: {path}\nRun the calibration command first.'
        )
    return doc, np.asarray(doc['x'], dtype=float)
