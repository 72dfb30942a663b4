import json

import numpy as np
import pytest

from contact_calib.calibration_store import (
    calibration_doc,
    load_calibration_result,
    require_calibration_result,
    write_calibration_result,
)
from contact_calib.optimizer import CalibrationResult, CalibrationStatus
from contact_calib.params import ParameterMapping


def _result():
    x = np.array([0.25, 0.75, 0.5, 0.1])
    return CalibrationResult(
        x=x,
        params=ParameterMapping(n_contacts=2).map(x),
        objective=1.25,
        status=CalibrationStatus.CONVERGED,
        iterations=42,
        elapsed_s=3.5,
        n_evaluations=504,
    )


class TestCalibrationStore:
    def test_doc_contents(self):
        doc = calibration_doc(_result())
        assert doc['x'] == [0.25, 0.75, 0.5, 0.1]
        assert doc['params']['stiffnesses'] == pytest.approx([5e7, 1e7])
        assert doc['result'] == {
            'objective': 1.25,
            'status': 'converged',
            'converged': True,
            'iterations': 42,
            'n_evaluations': 504,
            'elapsed_s': 3.5,
        }

    def test_write_then_require(self, tmp_path):
        path = tmp_path / 'nested' / 'contact_calibration.json'
        write_calibration_result(_result(), path)
        doc, x = require_calibration_result(path)
        np.testing.assert_array_equal(x, [0.25, 0.75, 0.5, 0.1])
        assert doc['result']['iterations'] == 42

    def test_missing_file(self, tmp_path):
        path = tmp_path / 'contact_calibration.json'
        assert load_calibration_result(path) is None
        with pytest.raises(FileNotFoundError, match='Run the calibration command first'):
            require_calibration_result(path)

    def test_malformed_file(self, tmp_path):
        path = tmp_path / 'contact_calibration.json'
        path.write_text(json.dumps({'x': 'nope'}), encoding='utf-8')
        assert load_calibration_result(path) is None
