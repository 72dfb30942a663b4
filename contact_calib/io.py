from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import numpy as np


@dataclass
class TimeSeries:
    time_s: list[float]
    values: list[float]


@dataclass
class Table:
    """Numeric table read from a .csv/.mot/.sto file (lower-cased headers)."""

    headers: list[str]
    data: np.ndarray  # shape (rows, columns)

    def column(self, candidates: Iterable[str]) -> np.ndarray:
        idx = _find_col(self.headers, candidates)
        if idx == -1:
            raise ValueError(f'None of the columns {list(candidates)} found in {self.headers}')
        return self.data[:, idx]

    def has_column(self, candidates: Iterable[str]) -> bool:
        return _find_col(self.headers, candidates) != -1


def _detect_delimiter(header_line: str) -> str | None:
    """Return the delimiter of a header line; None means runs of whitespace."""
    if '\t' in header_line:
        return '\t'
    semicolons = header_line.count(';')
    commas = header_line.count(',')
    if semicolons == 0 and commas == 0:
        return None
    return ';' if semicolons >= commas and semicolons > 0 else ','


def _split(line: str, delimiter: str | None) -> list[str]:
    if delimiter is None:
        return line.split()
    return [p.strip() for p in line.split(delimiter)]


def _parse_number(s: str, delimiter: str | None) -> float:
    s = s.strip()
    if delimiter == ';':
        # Semicolon files use decimal commas.
        s = s.replace(',', '.')
    return float(s)


def _find_header_idx(lines: list[str]) -> int:
    """
    Storage files (.mot/.sto) carry a free-form header terminated by 'endheader';
    the column labels follow it. Plain CSV files start with the labels.
    """
    for i, line in enumerate(lines):
        if line.strip().lower() == 'endheader':
            return i + 1
    return 0


def _find_col(headers: list[str], candidates: Iterable[str]) -> int:
    candidates = [c.lower() for c in candidates]
    # Exact matches win over substring matches ('tx' must not match 'tx_speed').
    for c in candidates:
        if c in headers:
            return headers.index(c)
    for i, h in enumerate(headers):
        for c in candidates:
            if c in h:
                return i
    return -1


def read_table(path: Path) -> Table:
    text = path.read_text(encoding='utf-8', errors='ignore')
    lines = [l.strip() for l in text.splitlines() if l.strip() and not l.strip().startswith('#')]
    if not lines:
        raise ValueError(f'Empty table file: {path.name}')

    header_idx = _find_header_idx(lines)
    if header_idx >= len(lines):
        raise ValueError(f'No column labels after endheader in {path.name}')

    header_line = lines[header_idx]
    delimiter = _detect_delimiter(header_line)
    headers = [h.strip().lower() for h in _split(header_line, delimiter)]

    rows: list[list[float]] = []
    for line in lines[header_idx + 1 :]:
        parts = _split(line, delimiter)
        if len(parts) < len(headers):
            continue
        try:
            rows.append([_parse_number(p, delimiter) for p in parts[: len(headers)]])
        except ValueError:
            continue

    if not rows:
        raise ValueError(f'No valid rows found in {path.name}')

    return Table(headers=headers, data=np.asarray(rows, dtype=float))


def parse_csv_series(
    path: Path,
    time_candidates: Iterable[str],
    value_candidates: Iterable[str],
) -> TimeSeries:
    table = read_table(path)

    col_time = _find_col(table.headers, time_candidates)
    col_val = _find_col(table.headers, value_candidates)
    if col_time == -1 or col_val == -1:
        raise ValueError(f'Missing columns in {path.name}: time={col_time}, value={col_val}')

    return TimeSeries(
        time_s=table.data[:, col_time].tolist(),
        values=table.data[:, col_val].tolist(),
    )
