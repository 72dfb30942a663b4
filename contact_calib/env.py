from __future__ import annotations

import os


ENV_WORKERS = 'CONTACT_CALIB_WORKERS'
ENV_PARALLEL = 'CONTACT_CALIB_PARALLEL'
ENV_SEED = 'CONTACT_CALIB_SEED'


def env_str(name: str) -> str | None:
    v = os.getenv(name, None)
    if v is None:
        return None
    v = v.strip()
    return v if v else None


def env_int(name: str) -> int | None:
    v = env_str(name)
    if v is None:
        return None
    try:
        return int(v)
    except ValueError as e:
        raise ValueError(f'Invalid integer env var {name}={v!r}.') from e


def optimizer_overrides() -> dict:
    """OptimizerConfig field overrides taken from the environment."""
    out: dict = {}
    workers = env_int(ENV_WORKERS)
    if workers is not None:
        out['workers'] = workers
    parallel = env_str(ENV_PARALLEL)
    if parallel is not None:
        out['parallel'] = parallel.lower()
    seed = env_int(ENV_SEED)
    if seed is not None:
        out['seed'] = seed
    return out
