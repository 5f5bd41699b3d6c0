# backend/navrisk/montecarlo.py
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np

from .config import MC_CHUNK_SIZE, MC_PERCENTILES, MC_WORKERS
from .errors import SimulationCancelledError, SimulationPreconditionError
from .schemas import SimulationYearPoint

logger = logging.getLogger(__name__)

Sampler = Callable[[np.random.Generator, Tuple[int, int]], np.ndarray]


def _nonzero_uniform(rng: np.random.Generator, size) -> np.ndarray:
    u = rng.random(size)
    zeros = u == 0.0
    while zeros.any():
        u[zeros] = rng.random(int(zeros.sum()))
        zeros = u == 0.0
    return u


def box_muller(rng: np.random.Generator, size) -> np.ndarray:
    """Standard normal draws, z = sqrt(-2 ln u) * cos(2 pi v), u and v in (0, 1)."""
    u = _nonzero_uniform(rng, size)
    v = _nonzero_uniform(rng, size)
    return np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)


def numpy_normal(rng: np.random.Generator, size) -> np.ndarray:
    return rng.standard_normal(size)


def _drift_and_vol(metrics) -> Tuple[float, float]:
    if isinstance(metrics, Mapping):
        mu, sigma = metrics.get("annual_return"), metrics.get("annual_vol")
    else:
        mu, sigma = getattr(metrics, "annual_return", None), getattr(metrics, "annual_vol", None)
    if mu is None or sigma is None:
        raise SimulationPreconditionError("cannot run: compute portfolio metrics first.")
    return float(mu), float(sigma)


def simulate_paths(
    mu: float,
    sigma: float,
    initial_capital: float,
    horizon_years: int,
    num_scenarios: int,
    rng: Optional[np.random.Generator] = None,
    sampler: Sampler = box_muller,
    cancel_event: Optional[threading.Event] = None,
    chunk_size: int = MC_CHUNK_SIZE,
) -> np.ndarray:
    """
    Year-end values of `num_scenarios` GBM paths, shape (num_scenarios, horizon_years).
    One step per year: V *= exp((mu - sigma^2 / 2) + sigma * z), floored at 0.
    """
    rng = rng if rng is not None else np.random.default_rng()
    drift = mu - 0.5 * sigma * sigma
    out = np.empty((num_scenarios, horizon_years), dtype=float)
    step = max(1, int(chunk_size))

    for lo in range(0, num_scenarios, step):
        if cancel_event is not None and cancel_event.is_set():
            raise SimulationCancelledError("Monte Carlo run cancelled.")
        hi = min(lo + step, num_scenarios)
        z = sampler(rng, (hi - lo, horizon_years))
        log_growth = np.cumsum(drift + sigma * z, axis=1)
        out[lo:hi] = np.maximum(initial_capital * np.exp(log_growth), 0.0)
    return out


def percentile_bands(values: np.ndarray, percentiles=MC_PERCENTILES) -> np.ndarray:
    # linear interpolation between order statistics: index = p/100 * (n - 1)
    return np.percentile(values, list(percentiles), axis=0)


def _year_points(bands: np.ndarray) -> List[SimulationYearPoint]:
    points = []
    for year in range(bands.shape[1]):
        p5, p25, p50, p75, p95 = (float(x) for x in bands[:, year])
        points.append(SimulationYearPoint(
            year=year + 1,
            p5=p5, p25=p25, p50=p50, p75=p75, p95=p95,
            base=p5,
            band_5_25=max(p25 - p5, 0.0),
            band_25_75=max(p75 - p25, 0.0),
            band_75_95=max(p95 - p75, 0.0),
        ))
    return points


def run_monte_carlo(
    metrics,
    initial_capital: float,
    horizon_years: int,
    num_scenarios: int,
    seed: Optional[int] = None,
    sampler: Sampler = box_muller,
    cancel_event: Optional[threading.Event] = None,
) -> List[SimulationYearPoint]:
    mu, sigma = _drift_and_vol(metrics)
    if int(horizon_years) < 1 or int(num_scenarios) < 1:
        raise ValueError("horizon_years and num_scenarios must be >= 1.")
    if not (initial_capital >= 0):
        raise ValueError("initial_capital must be >= 0.")

    paths = simulate_paths(
        mu, sigma, float(initial_capital), int(horizon_years), int(num_scenarios),
        rng=np.random.default_rng(seed), sampler=sampler, cancel_event=cancel_event,
    )
    if cancel_event is not None and cancel_event.is_set():
        raise SimulationCancelledError("Monte Carlo run cancelled.")
    return _year_points(percentile_bands(paths))


class _Run:
    def __init__(self, view_id: str):
        self.view_id = view_id
        self.cancel_event = threading.Event()
        self.future: Optional[Future] = None


class MonteCarloRunner:
    """
    Runs simulations on a worker pool, one outstanding run per view.

    Submitting for a view that already has a run in flight cancels the old
    one; its late result is never published. `latest(view_id)` returns the
    last run that completed while it was current. Cancelled, superseded or
    failed runs leave it untouched.
    """

    def __init__(self, max_workers: int = MC_WORKERS):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="montecarlo")
        self._active: Dict[str, _Run] = {}
        self._last_result: Dict[str, List[SimulationYearPoint]] = {}

    def submit(
        self,
        view_id: str,
        metrics,
        initial_capital: float,
        horizon_years: int,
        num_scenarios: int,
        seed: Optional[int] = None,
        sampler: Sampler = box_muller,
    ) -> Future:
        _drift_and_vol(metrics)  # refuse before queueing anything

        previous = self._active.get(view_id)
        if previous is not None and not previous.future.done():
            logger.warning("Monte Carlo for view %s superseded", view_id)
        if previous is not None:
            previous.cancel_event.set()

        run = _Run(view_id)
        self._active[view_id] = run
        run.future = self._executor.submit(
            self._execute, run, metrics, initial_capital, horizon_years, num_scenarios, seed, sampler
        )
        return run.future

    def _execute(self, run: _Run, metrics, initial_capital, horizon_years, num_scenarios, seed, sampler):
        data = run_monte_carlo(
            metrics, initial_capital, horizon_years, num_scenarios,
            seed=seed, sampler=sampler, cancel_event=run.cancel_event,
        )
        if self._active.get(run.view_id) is not run:
            raise SimulationCancelledError(f"Monte Carlo run for view {run.view_id} was superseded.")
        self._last_result[run.view_id] = data
        return data

    def cancel(self, view_id: str) -> bool:
        """Stop the view's current run. The last completed result is kept."""
        run = self._active.pop(view_id, None)
        if run is None:
            return False
        run.cancel_event.set()
        return True

    def latest(self, view_id: str) -> Optional[List[SimulationYearPoint]]:
        return self._last_result.get(view_id)

    def shutdown(self, wait: bool = False) -> None:
        for run in list(self._active.values()):
            run.cancel_event.set()
        self._active.clear()
        self._executor.shutdown(wait=wait)
