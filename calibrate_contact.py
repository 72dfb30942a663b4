#!/usr/bin/env -S uv run

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from contact_calib.commands import run_calibrate_contact, run_compare_contact
from contact_calib.errors import CalibrationFailed, ConfigurationError
from contact_calib.log import set_console_level, setup_file_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        description='Calibrate foot-ground contact heights and stiffnesses to a measured vertical GRF.'
    )
    parser.add_argument('--config', type=Path, default=None, help='Config JSON (default: config.json in the repo root).')
    parser.add_argument('--compare', action='store_true', help='Only write the comparison for the stored calibration, then exit.')
    parser.add_argument('--workers', type=int, default=None, help='Worker threads for candidate evaluation.')
    parser.add_argument('--serial', action='store_true', help='Evaluate candidates on the calling thread.')
    parser.add_argument('--max-iterations', type=int, default=None, help='Override optimizer.max_iterations.')
    parser.add_argument('--log-dir', type=Path, default=None, help='Also write a debug log file into this directory.')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug messages on the console.')
    args = parser.parse_args()

    if args.log_dir is not None:
        log_file = setup_file_logging(args.log_dir)
        print(f'Logging to {log_file}')
    if args.verbose:
        set_console_level(logging.DEBUG)

    try:
        if args.compare:
            run_compare_contact(config_path=args.config)
            return

        overrides: dict = {}
        if args.workers is not None:
            overrides['workers'] = args.workers
        if args.serial:
            overrides['parallel'] = 'serial'
        if args.max_iterations is not None:
            overrides['max_iterations'] = args.max_iterations

        run_calibrate_contact(config_path=args.config, overrides=overrides)
    except CalibrationFailed as e:
        raise SystemExit(
            f'Calibration failed at iteration {e.iteration} (best objective: {e.best_objective}): {e}'
        ) from e
    except FileNotFoundError as e:
        raise SystemExit(str(e)) from e
    except (ConfigurationError, KeyError, ValueError) as e:
        # settings.py reports missing keys as KeyError and bad values as ValueError.
        msg = e.args[0] if isinstance(e, KeyError) and e.args else e
        raise SystemExit(f'Configuration error: {msg}') from e


if __name__ == '__main__':
    main()
