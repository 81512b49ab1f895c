"""
Bootstrap Resampling for Threshold Calibration.

Implements the generic nonparametric bootstrap used by every
calibration routine: resample rows with replacement, evaluate a
statistic on each resample, and return a quantile of the replicate
distribution.

- Explicit random generators (reproducible, one stream per worker)
- Optional process-parallel replicate loop
- Cooperative cancellation between replicates
- Configurable handling of replicates whose root finding is exhausted
"""

import numpy as np
from typing import Any, Callable, Optional, Tuple
from dataclasses import dataclass
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
import warnings

from ..core.config import (
    FAILURE_POLICIES,
    PARALLEL_TASK_SIZE,
    SeedLike,
    check_count,
    check_probability,
)
from ..core.exceptions import (
    CalibrationCancelled,
    CalibrationError,
    InvalidParameter,
    RootFindingExhausted,
)
from ..data.preprocessing import as_sample


@dataclass
class BootstrapResult:
    """Container for bootstrap calibration results."""
    threshold: float
    prob: float
    replicates: np.ndarray
    n_dropped: int = 0

    @property
    def n_boots(self) -> int:
        return len(self.replicates)

    @property
    def valid_replicates(self) -> np.ndarray:
        return self.replicates[~np.isnan(self.replicates)]

    @property
    def standard_error(self) -> float:
        finite = self.replicates[np.isfinite(self.replicates)]
        if len(finite) < 2:
            return np.nan
        return float(np.std(finite, ddof=1))

    def summary(self) -> dict:
        """Return summary statistics."""
        valid = self.valid_replicates
        return {
            'threshold': self.threshold,
            'prob': self.prob,
            'n_boots': self.n_boots,
            'n_dropped': self.n_dropped,
            'n_infinite': int(np.sum(np.isinf(valid))),
            'median': float(np.median(valid)),
            'standard_error': self.standard_error,
        }


def _cancelled(cancel: Optional[Any]) -> bool:
    return cancel is not None and cancel.is_set()


def _run_replicates(
    data: np.ndarray,
    statistic: Callable,
    args: tuple,
    n_replicates: int,
    rng: np.random.Generator,
    pass_rng: bool,
    on_failure: str,
    cancel: Optional[Any] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate ``statistic`` on ``n_replicates`` resamples of ``data``.

    Returns the replicate values and a mask of the replicates dropped
    under ``on_failure='drop'``.
    """
    n = data.shape[0]
    kwargs = {'rng': rng} if pass_rng else {}

    out = np.zeros(n_replicates)
    dropped = np.zeros(n_replicates, dtype=bool)
    for b in range(n_replicates):
        if _cancelled(cancel):
            raise CalibrationCancelled(f"Cancelled after {b} of {n_replicates} replicates")

        idx = rng.integers(0, n, size=n)
        try:
            out[b] = statistic(data[idx], *args, **kwargs)
        except RootFindingExhausted:
            if on_failure == 'raise':
                raise
            out[b] = np.nan
            dropped[b] = True

    return out, dropped


def _run_replicates_parallel(
    data: np.ndarray,
    statistic: Callable,
    args: tuple,
    n_boots: int,
    rng: np.random.Generator,
    n_jobs: int,
    pass_rng: bool,
    on_failure: str,
    cancel: Optional[Any],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Run the replicate loop as small tasks on a process pool.

    Each task of at most PARALLEL_TASK_SIZE replicates draws from its
    own child generator, so results depend on the seed and ``n_boots``
    but not on ``n_jobs``. At most two tasks per worker are in flight;
    ``cancel`` is checked before every submission and after every
    completion, and a cancelled run waits only for the running tasks.
    """
    n_tasks = -(-n_boots // PARALLEL_TASK_SIZE)
    task_sizes = [len(c) for c in np.array_split(np.arange(n_boots), n_tasks)]
    child_rngs = rng.spawn(n_tasks)
    n_workers = min(n_jobs, n_tasks)

    results = [None] * n_tasks
    pending = {}
    next_task = 0
    executor = ProcessPoolExecutor(max_workers=n_workers)
    try:
        while next_task < n_tasks or pending:
            while next_task < n_tasks and len(pending) < 2 * n_workers:
                if _cancelled(cancel):
                    raise CalibrationCancelled(
                        f"Cancelled with {n_tasks - next_task} of {n_tasks} tasks not started"
                    )
                future = executor.submit(
                    _run_replicates, data, statistic, args,
                    task_sizes[next_task], child_rngs[next_task], pass_rng, on_failure,
                )
                pending[future] = next_task
                next_task += 1

            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                results[pending.pop(future)] = future.result()

            if _cancelled(cancel):
                raise CalibrationCancelled(
                    f"Cancelled with {sum(r is not None for r in results)} of {n_tasks} tasks done"
                )
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    values, dropped = zip(*results)
    return np.concatenate(values), np.concatenate(dropped)


def _empirical_quantile(values: np.ndarray, prob: float) -> float:
    """Linear-interpolation quantile that tolerates +inf sentinels."""
    with np.errstate(invalid='ignore'):
        q = np.quantile(values, prob)
    # inf - inf inside the interpolation yields NaN; both neighbours were inf
    if np.isnan(q):
        return np.inf
    return float(q)


def bootstrap_distribution(
    data: np.ndarray,
    statistic: Callable,
    prob: float,
    n_boots: int,
    *args,
    seed: SeedLike = None,
    n_jobs: int = 1,
    pass_rng: bool = False,
    on_failure: str = 'raise',
    cancel: Optional[Any] = None,
) -> BootstrapResult:
    """
    Bootstrap a statistic and return its replicate distribution.

    Parameters
    ----------
    data : np.ndarray
        Sample, shape (N,) or (N, d); rows are resampled
    statistic : Callable
        ``statistic(resample, *args) -> float``. Must be picklable
        (module-level function or functools.partial) when n_jobs > 1.
    prob : float
        Quantile level in (0, 1)
    n_boots : int
        Number of bootstrap replicates
    *args
        Extra positional arguments passed to ``statistic``
    seed : int or np.random.Generator, optional
        Source of randomness; a Generator is used (and advanced) directly
    n_jobs : int
        Worker processes for the replicate loop (1 = serial). Warnings
        raised inside a statistic stay in the worker processes.
    pass_rng : bool
        Also pass the replicate loop's generator as ``rng=`` keyword, for
        statistics that draw random numbers themselves
    on_failure : str
        'raise' propagates RootFindingExhausted from a replicate;
        'drop' records that replicate as NaN and excludes it
    cancel : object with ``is_set()``, optional
        Cancellation flag checked between replicates (serial) or
        between parallel tasks

    Returns
    -------
    BootstrapResult
        Threshold (the ``prob``-quantile) and all replicate values

    Raises
    ------
    CalibrationError
        If the statistic returns NaN, or every replicate is dropped
    """
    prob = check_probability(prob, 'prob')
    n_boots = check_count(n_boots, 'n_boots')
    n_jobs = check_count(n_jobs, 'n_jobs')
    if on_failure not in FAILURE_POLICIES:
        raise InvalidParameter(
            f"Unknown failure policy: {on_failure}. Choose from {list(FAILURE_POLICIES)}"
        )
    data = as_sample(data)
    rng = np.random.default_rng(seed)

    if n_jobs == 1:
        replicates, dropped = _run_replicates(
            data, statistic, args, n_boots, rng, pass_rng, on_failure, cancel
        )
    else:
        replicates, dropped = _run_replicates_parallel(
            data, statistic, args, n_boots, rng, n_jobs, pass_rng, on_failure, cancel
        )

    n_nan = int(np.sum(np.isnan(replicates[~dropped])))
    if n_nan > 0:
        raise CalibrationError(
            f"Statistic returned NaN for {n_nan} of {n_boots} bootstrap replicates"
        )

    n_dropped = int(np.sum(dropped))
    if n_dropped == n_boots:
        raise CalibrationError(f"All {n_boots} bootstrap replicates were dropped")
    if n_dropped > 0:
        warnings.warn(
            f"{n_dropped} of {n_boots} bootstrap replicates dropped "
            f"after root finding was exhausted"
        )

    return BootstrapResult(
        threshold=_empirical_quantile(replicates[~dropped], prob),
        prob=prob,
        replicates=replicates,
        n_dropped=n_dropped,
    )


def bootstrap_quantile(
    data: np.ndarray,
    statistic: Callable,
    prob: float,
    n_boots: int,
    *args,
    **kwargs,
) -> float:
    """
    Bootstrap quantile of a statistic.

    Draws ``n_boots`` resamples of the N rows of ``data`` uniformly with
    replacement, evaluates ``statistic`` on each and returns the
    empirical ``prob``-quantile of the results. Accepts the same keyword
    arguments as :func:`bootstrap_distribution`.

    Returns
    -------
    float
        Calibrated threshold
    """
    return bootstrap_distribution(data, statistic, prob, n_boots, *args, **kwargs).threshold
