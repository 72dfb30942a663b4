"""Paired simulated/reference force export."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Protocol

import numpy as np


COLUMN_LABELS = ('simulation', 'experiment')


class ComparisonSink(Protocol):
    def write(self, time_s: np.ndarray, simulated: np.ndarray, reference: np.ndarray) -> None: ...


def _check_columns(time_s, simulated, reference) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    t = np.asarray(time_s, dtype=float).ravel()
    sim = np.asarray(simulated, dtype=float).ravel()
    ref = np.asarray(reference, dtype=float).ravel()
    if not (t.size == sim.size == ref.size):
        raise ValueError(
            f'Column lengths differ: time={t.size}, simulation={sim.size}, experiment={ref.size}'
        )
    return t, sim, ref


def write_comparison_csv(path: Path, time_s, simulated, reference) -> None:
    t, sim, ref = _check_columns(time_s, simulated, reference)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w', newline='', encoding='utf-8') as f:
        w = csv.writer(f)
        w.writerow(['time_s', *COLUMN_LABELS])
        for i in range(t.size):
            w.writerow([f'{t[i]:.6f}', f'{sim[i]:.6f}', f'{ref[i]:.6f}'])


def write_comparison_sto(path: Path, time_s, simulated, reference, *, name: str = 'contact_comparison') -> None:
    """Write an OpenSim storage (.sto) table: free header, 'endheader', tab-separated rows."""
    t, sim, ref = _check_columns(time_s, simulated, reference)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [
        name,
        'version=1',
        f'nRows={t.size}',
        f'nColumns={1 + len(COLUMN_LABELS)}',
        'inDegrees=no',
        'endheader',
        '\t'.join(['time', *COLUMN_LABELS]),
    ]
    for i in range(t.size):
        lines.append(f'{t[i]:.8f}\t{sim[i]:.8f}\t{ref[i]:.8f}')
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')


class CsvComparisonSink:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def write(self, time_s, simulated, reference) -> None:
        write_comparison_csv(self.path, time_s, simulated, reference)


class StoComparisonSink:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def write(self, time_s, simulated, reference) -> None:
        write_comparison_sto(self.path, time_s, simulated, reference, name=self.path.stem)


def comparison_sink_for(path: Path) -> ComparisonSink:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == '.csv':
        return CsvComparisonSink(path)
    if suffix in ('.sto', '.mot'):
        return StoComparisonSink(path)
    raise ValueError(f"Unsupported comparison file type '{suffix}'. Use .csv or .sto")
