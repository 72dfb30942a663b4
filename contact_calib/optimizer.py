from __future__ import annotations

import concurrent.futures
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import cma
import numpy as np

from contact_calib.errors import CalibrationFailed, ConfigurationError, PoolInitializationError
from contact_calib.log import get_logger
from contact_calib.model import ForwardModel
from contact_calib.objective import FAILED_OBJECTIVE, ContactObjective, is_failed
from contact_calib.output import ComparisonSink
from contact_calib.params import ContactParameters, ParameterMapping


logger = get_logger(__name__)

VALID_PARALLEL_MODES = {'threads', 'serial'}


class CalibrationStatus(str, Enum):
    CONVERGED = 'converged'
    MAX_ITERATIONS = 'max_iterations'


@dataclass(frozen=True)
class OptimizerConfig:
    population_size: int = 12
    initial_step_size: float = 0.5
    convergence_tolerance: float = 1e-3
    stall_iterations: int = 10
    max_iterations: int = 3000
    parallel: str = 'threads'
    workers: int = 4
    seed: int = 42  # cma: 0 means time-based
    start: float | Sequence[float] = 0.5
    evaluation_timeout_s: float | None = None

    def validate(self, dimension: int) -> None:
        if self.population_size < 1:
            raise ConfigurationError(f'population_size must be >= 1, got {self.population_size}.')
        if not np.isfinite(self.initial_step_size) or self.initial_step_size <= 0.0:
            raise ConfigurationError(
                f'initial_step_size must be finite and > 0, got {self.initial_step_size}.'
            )
        if not np.isfinite(self.convergence_tolerance) or self.convergence_tolerance < 0.0:
            raise ConfigurationError(
                f'convergence_tolerance must be finite and >= 0, got {self.convergence_tolerance}.'
            )
        if self.stall_iterations < 1:
            raise ConfigurationError(f'stall_iterations must be >= 1, got {self.stall_iterations}.')
        if self.max_iterations < 1:
            raise ConfigurationError(f'max_iterations must be >= 1, got {self.max_iterations}.')
        if self.parallel not in VALID_PARALLEL_MODES:
            raise ConfigurationError(
                f"Unknown parallel mode '{self.parallel}'. Use: {sorted(VALID_PARALLEL_MODES)}"
            )
        if self.workers < 1:
            raise ConfigurationError(f'workers must be >= 1, got {self.workers}.')
        if self.evaluation_timeout_s is not None and self.evaluation_timeout_s <= 0.0:
            raise ConfigurationError(
                f'evaluation_timeout_s must be > 0 when set, got {self.evaluation_timeout_s}.'
            )
        if dimension < 2 and self.population_size > 1:
            raise ConfigurationError('CMA-ES search needs at least 2 variables.')
        if np.ndim(self.start) != 0 and len(self.start) != dimension:
            raise ConfigurationError(
                f'start has {len(self.start)} entries, expected {dimension}.'
            )


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    best_objective: float
    best_x: np.ndarray
    population_best: float
    n_failed: int
    n_evaluations: int


@dataclass
class CalibrationResult:
    x: np.ndarray
    params: ContactParameters
    objective: float
    status: CalibrationStatus
    iterations: int
    elapsed_s: float
    n_evaluations: int
    history: list[IterationRecord] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is CalibrationStatus.CONVERGED


class _CMASearch:
    """CMA-ES over the unit box; the start point is the first candidate."""

    def __init__(self, x0: np.ndarray, config: OptimizerConfig) -> None:
        n = x0.size
        opts = {
            'bounds': [[0.0] * n, [1.0] * n],
            'popsize': int(config.population_size),
            'seed': int(config.seed),
            'verbose': -9,
            'verb_disp': 0,
            'verb_log': 0,
        }
        self._es = cma.CMAEvolutionStrategy(x0.tolist(), float(config.initial_step_size), opts)
        self._es.inject([x0], force=True)

    def ask(self) -> list[np.ndarray]:
        return self._es.ask()

    def tell(self, solutions: list[np.ndarray], values: list[float]) -> None:
        self._es.tell(solutions, values)


class _StartPointSearch:
    """Population of one: re-evaluates the start point (baseline check)."""

    def __init__(self, x0: np.ndarray) -> None:
        self._x0 = x0

    def ask(self) -> list[np.ndarray]:
        return [self._x0.copy()]

    def tell(self, solutions: list[np.ndarray], values: list[float]) -> None:
        pass


class CalibrationDriver:
    """
    Population-based search over normalized contact parameters.

    Each iteration samples a population, evaluates it (concurrently in
    'threads' mode), waits for the whole batch, then updates the search
    distribution. The best candidate ever seen is kept, so the reported
    best objective never increases across iterations.

    Termination:
      - converged: best improvement < convergence_tolerance for
        stall_iterations consecutive iterations
      - max_iterations reached: best-so-far returned, status MAX_ITERATIONS
      - every candidate of an iteration failed, or a worker model could not
        be created: CalibrationFailed
    """

    def __init__(
        self,
        objective: ContactObjective,
        config: OptimizerConfig,
        *,
        on_iteration: Callable[[IterationRecord], None] | None = None,
    ) -> None:
        self.objective = objective
        self.config = config
        self.on_iteration = on_iteration
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._timed_out = 0

    @property
    def mapping(self) -> ParameterMapping:
        return self.objective.mapping

    def _evaluate_batch(self, candidates: list[np.ndarray]) -> list[float]:
        if self._executor is None:
            return [self.objective(x) for x in candidates]

        timeout = self.config.evaluation_timeout_s
        futures = [self._executor.submit(self.objective, x) for x in candidates]
        values: list[float] = []
        for i, fut in enumerate(futures):
            try:
                values.append(fut.result(timeout=timeout))
            except concurrent.futures.TimeoutError:
                fut.cancel()
                self._timed_out += 1
                logger.warning(f'candidate {i} exceeded {timeout} s; treated as failed')
                values.append(FAILED_OBJECTIVE)
        return values

    def run(self) -> CalibrationResult:
        cfg = self.config
        cfg.validate(self.objective.dimension)
        x0 = self.mapping.start_vector(cfg.start)

        if cfg.population_size == 1:
            search = _StartPointSearch(x0)
        else:
            search = _CMASearch(x0, cfg)

        if cfg.parallel == 'serial' and cfg.evaluation_timeout_s is not None:
            logger.warning('evaluation_timeout_s is ignored in serial mode')

        logger.info(
            f'calibration start: dim={self.objective.dimension}, popsize={cfg.population_size}, '
            f'sigma0={cfg.initial_step_size}, tol={cfg.convergence_tolerance}, '
            f'max_iter={cfg.max_iterations}, parallel={cfg.parallel}'
            + (f' ({cfg.workers} workers)' if cfg.parallel == 'threads' else '')
        )

        best_x: np.ndarray | None = None
        best_f = float('inf')
        prev_best: float | None = None
        stall_count = 0
        history: list[IterationRecord] = []
        status = CalibrationStatus.MAX_ITERATIONS
        iteration = 0

        evals_at_start = self.objective.counter.total
        t0 = time.monotonic()
        self._timed_out = 0
        if cfg.parallel == 'threads':
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=cfg.workers, thread_name_prefix='contact-eval'
            )

        try:
            for iteration in range(1, cfg.max_iterations + 1):
                solutions = search.ask()
                candidates = [np.clip(np.asarray(s, dtype=float), 0.0, 1.0) for s in solutions]

                try:
                    values = self._evaluate_batch(candidates)
                except PoolInitializationError as e:
                    raise CalibrationFailed(
                        f'Worker model initialization failed in iteration {iteration}: {e}',
                        iteration=iteration,
                        best_objective=best_f if best_x is not None else None,
                        best_x=best_x,
                    ) from e

                n_failed = sum(1 for v in values if is_failed(v))
                if n_failed == len(values):
                    raise CalibrationFailed(
                        f'All {len(values)} candidates failed in iteration {iteration}.',
                        iteration=iteration,
                        best_objective=best_f if best_x is not None else None,
                        best_x=best_x,
                    )

                search.tell(solutions, values)

                idx = int(np.argmin(values))
                population_best = float(values[idx])
                if population_best < best_f:
                    best_f = population_best
                    best_x = candidates[idx].copy()

                record = IterationRecord(
                    iteration=iteration,
                    best_objective=best_f,
                    best_x=best_x.copy(),
                    population_best=population_best,
                    n_failed=n_failed,
                    n_evaluations=self.objective.counter.total - evals_at_start,
                )
                history.append(record)
                logger.info(
                    f'iter {iteration}/{cfg.max_iterations}: best={best_f:.6g} '
                    f'pop_best={population_best:.6g} failed={n_failed}/{len(values)} '
                    f'evals={record.n_evaluations}'
                )
                logger.debug(f'  best x: {np.array2string(best_x, precision=4)}')
                if self.on_iteration is not None:
                    self.on_iteration(record)

                if prev_best is not None:
                    if prev_best - best_f < cfg.convergence_tolerance:
                        stall_count += 1
                    else:
                        stall_count = 0
                prev_best = best_f

                if stall_count >= cfg.stall_iterations:
                    status = CalibrationStatus.CONVERGED
                    break
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=self._timed_out == 0, cancel_futures=True)
                self._executor = None

        elapsed = time.monotonic() - t0
        result = CalibrationResult(
            x=best_x,
            params=self.mapping.map(best_x),
            objective=best_f,
            status=status,
            iterations=iteration,
            elapsed_s=elapsed,
            n_evaluations=self.objective.counter.total - evals_at_start,
            history=history,
        )

        if status is CalibrationStatus.CONVERGED:
            logger.info(f'converged after {iteration} iterations: objective={best_f:.6g}')
        else:
            logger.warning(
                f'iteration cap ({cfg.max_iterations}) reached without convergence; '
                f'best objective={best_f:.6g}'
            )
        logger.info(
            f'evaluations={result.n_evaluations}, runtime={elapsed:.2f} s, '
            f'workers used={len(self.objective.pool)}'
        )
        return result

    def export_comparison(self, x, sink: ComparisonSink) -> np.ndarray:
        """
        Recompute the simulated force for x and write (simulated, reference)
        pairs indexed by state time to sink. Returns the simulated series.
        """
        x = self.mapping.check(x)
        simulated = self.objective.simulate(x)
        sink.write(self.objective.trajectory.times, simulated, self.objective.reference_values)
        return simulated

    def calibrated_model(self, x) -> ForwardModel:
        """Fresh clone of the prototype with the parameters for x applied."""
        model = self.objective.pool.clone_prototype()
        model.apply_parameters(self.mapping.map(x))
        model.init_system()
        return model
