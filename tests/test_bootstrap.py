"""
Unit tests for the bootstrap resampler.

Tests cover:
1. Quantile semantics and input validation
2. Reproducibility and parallel execution
3. Failure policies and cancellation
"""

import threading
import time

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ddus_calibration.core.exceptions import (
    CalibrationCancelled,
    CalibrationError,
    InvalidParameter,
    RootFindingExhausted,
)
from ddus_calibration.calibration.bootstrap import (
    BootstrapResult,
    bootstrap_distribution,
    bootstrap_quantile,
)
from ddus_calibration.calibration.moments import boot_mu


# =============================================================================
# Module-level statistics (picklable for the process pool)
# =============================================================================

def _abs_mean_shift(sample, center):
    return abs(np.mean(sample) - center)


def _mean_or_exhausted(sample, cutoff):
    mean = np.mean(sample)
    if mean > cutoff:
        raise RootFindingExhausted("synthetic failure", diagnostics={1.0: -1.0})
    return mean


def _always_exhausted(sample):
    raise RootFindingExhausted("synthetic failure")


def _mean_or_nan(sample, cutoff):
    return np.nan if sample[0] > cutoff else np.mean(sample)


def _slow_mean(sample):
    time.sleep(0.02)
    return np.mean(sample)


def _rows_are_original(sample):
    return float(np.all(sample[:, 1] == 10.0 * sample[:, 0]))


class _TripAfter:
    """Cancellation flag that becomes set after a number of checks."""

    def __init__(self, n_checks):
        self.remaining = n_checks

    def is_set(self):
        self.remaining -= 1
        return self.remaining < 0


@pytest.fixture
def normal_sample():
    rng = np.random.default_rng(42)
    return rng.normal(loc=1.0, scale=2.0, size=50)


# =============================================================================
# Part 1: Quantile Semantics
# =============================================================================

class TestBootstrapQuantile:
    """Tests for bootstrap_quantile / bootstrap_distribution."""

    @pytest.mark.parametrize("prob", [0.05, 0.5, 0.95])
    def test_constant_statistic(self, normal_sample, prob):
        """A constant statistic has that constant as every quantile."""
        q = bootstrap_quantile(normal_sample, lambda s: 3.25, prob, 200, seed=0)
        assert q == 3.25

    def test_small_sample_mean_shift(self):
        """
        Data 1..5, |mean* - 3|, 90% quantile.

        The resampled mean lives on a 0.2 grid and P(|mean* - 3| <= 1.0)
        is about 0.92, so the quantile is 1.0 (or slightly above).
        """
        data = np.arange(1.0, 6.0)
        values = np.array([
            bootstrap_quantile(data, _abs_mean_shift, 0.9, 1000, 3.0, seed=s)
            for s in range(5)
        ])

        assert np.all(values > 0)
        assert np.all(values < 4)
        assert np.all(values >= 1.0 - 1e-9)
        assert np.all(values <= 1.2 + 1e-9)
        assert np.std(values) / np.mean(values) < 0.1

    def test_resamples_whole_rows(self):
        """Rows of a 2-D sample are drawn intact."""
        x = np.arange(20.0)
        data = np.column_stack([x, 10.0 * x])
        q = bootstrap_quantile(data, _rows_are_original, 0.1, 100, seed=3)
        assert q == 1.0

    def test_resample_size_matches_data(self, normal_sample):
        q = bootstrap_quantile(normal_sample, lambda s: float(len(s)), 0.5, 20, seed=1)
        assert q == len(normal_sample)

    def test_data_not_modified(self, normal_sample):
        before = normal_sample.copy()
        bootstrap_quantile(normal_sample, _abs_mean_shift, 0.9, 100, 1.0, seed=0)
        np.testing.assert_array_equal(normal_sample, before)

    def test_infinite_replicates(self, normal_sample):
        """Infinite sentinels yield an infinite threshold, not NaN."""
        q = bootstrap_quantile(normal_sample, lambda s: np.inf, 0.9, 50, seed=0)
        assert q == np.inf

    def test_more_replicates_same_center(self, normal_sample):
        """Averaged over seeds, the threshold does not drift with n_boots."""
        small = np.mean([boot_mu(normal_sample, 0.1, 200, seed=s) for s in range(10)])
        large = np.mean([boot_mu(normal_sample, 0.1, 2000, seed=100 + s) for s in range(10)])
        assert_allclose(small, large, rtol=0.1)

    def test_statistic_errors_propagate(self, normal_sample):
        def broken(sample):
            raise ZeroDivisionError("boom")

        with pytest.raises(ZeroDivisionError):
            bootstrap_quantile(normal_sample, broken, 0.5, 10, seed=0)

    @pytest.mark.parametrize("kwargs", [
        {'prob': 0.0},
        {'prob': 1.0},
        {'n_boots': 0},
        {'n_jobs': 0},
        {'on_failure': 'ignore'},
    ])
    def test_invalid_arguments(self, normal_sample, kwargs):
        params = {'prob': 0.9, 'n_boots': 10}
        params.update(kwargs)
        prob = params.pop('prob')
        n_boots = params.pop('n_boots')

        with pytest.raises(InvalidParameter):
            bootstrap_quantile(normal_sample, np.mean, prob, n_boots, **params)

    def test_invalid_data(self):
        with pytest.raises(InvalidParameter):
            bootstrap_quantile([1.0, np.nan, 2.0], np.mean, 0.5, 10)
        with pytest.raises(InvalidParameter):
            bootstrap_quantile(np.zeros((2, 2, 2)), np.mean, 0.5, 10)
        with pytest.raises(ValueError):
            bootstrap_quantile([], np.mean, 0.5, 10)

    def test_distribution_summary(self, normal_sample):
        result = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.9, 300, 1.0, seed=5)

        assert isinstance(result, BootstrapResult)
        assert result.n_boots == 300
        assert result.n_dropped == 0
        assert_allclose(result.threshold, np.quantile(result.replicates, 0.9))

        summary = result.summary()
        assert summary['n_boots'] == 300
        assert summary['n_infinite'] == 0
        assert summary['standard_error'] > 0


# =============================================================================
# Part 2: Reproducibility and Parallelism
# =============================================================================

class TestReproducibility:
    """Seeding and parallel execution."""

    def test_same_seed_same_result(self, normal_sample):
        a = bootstrap_quantile(normal_sample, _abs_mean_shift, 0.9, 300, 1.0, seed=11)
        b = bootstrap_quantile(normal_sample, _abs_mean_shift, 0.9, 300, 1.0, seed=11)
        assert a == b

    def test_generator_seed_advances(self, normal_sample):
        """A shared Generator gives different draws on successive calls."""
        rng = np.random.default_rng(11)
        first = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.9, 50, 1.0, seed=rng)
        second = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.9, 50, 1.0, seed=rng)
        assert not np.array_equal(first.replicates, second.replicates)

    def test_generator_matches_int_seed(self, normal_sample):
        a = bootstrap_quantile(normal_sample, _abs_mean_shift, 0.9, 100, 1.0, seed=8)
        b = bootstrap_quantile(
            normal_sample, _abs_mean_shift, 0.9, 100, 1.0, seed=np.random.default_rng(8)
        )
        assert a == b

    def test_parallel_reproducible(self, normal_sample):
        a = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.9, 400, 1.0, seed=2, n_jobs=2)
        b = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.9, 400, 1.0, seed=2, n_jobs=2)

        assert a.n_boots == 400
        np.testing.assert_array_equal(a.replicates, b.replicates)

    def test_parallel_agrees_with_serial(self, normal_sample):
        serial = bootstrap_quantile(normal_sample, _abs_mean_shift, 0.9, 2000, 1.0, seed=4)
        parallel = bootstrap_quantile(
            normal_sample, _abs_mean_shift, 0.9, 2000, 1.0, seed=4, n_jobs=2
        )
        assert_allclose(parallel, serial, rtol=0.2)

    def test_parallel_independent_of_worker_count(self, normal_sample):
        """Replicates are tied to tasks, not workers."""
        two = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.9, 100, 1.0, seed=9, n_jobs=2)
        three = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.9, 100, 1.0, seed=9, n_jobs=3)
        np.testing.assert_array_equal(two.replicates, three.replicates)

    def test_more_jobs_than_replicates(self, normal_sample):
        result = bootstrap_distribution(normal_sample, _abs_mean_shift, 0.5, 3, 1.0, seed=0, n_jobs=4)
        assert result.n_boots == 3


# =============================================================================
# Part 3: Failure Policies and Cancellation
# =============================================================================

class TestFailurePolicy:
    """Replicates whose root finding is exhausted."""

    @pytest.fixture
    def ramp(self):
        return np.arange(10.0)

    def test_raise_policy(self, ramp):
        with pytest.raises(RootFindingExhausted):
            bootstrap_quantile(ramp, _mean_or_exhausted, 0.5, 200, 4.5, seed=0)

    def test_drop_policy(self, ramp):
        with pytest.warns(UserWarning, match="dropped"):
            result = bootstrap_distribution(
                ramp, _mean_or_exhausted, 0.5, 200, 4.5, seed=0, on_failure='drop'
            )

        assert 0 < result.n_dropped < 200
        assert len(result.valid_replicates) == 200 - result.n_dropped
        assert result.threshold <= 4.5

    @pytest.mark.parametrize("policy", ["raise", "drop"])
    def test_nan_statistic_is_an_error(self, ramp, policy):
        """NaN from the statistic is never mistaken for a dropped replicate."""
        with pytest.raises(CalibrationError, match="NaN"):
            bootstrap_distribution(ramp, _mean_or_nan, 0.5, 200, 5.0, seed=0, on_failure=policy)

    def test_drop_mask_ignores_other_replicates(self, ramp):
        with pytest.warns(UserWarning, match="dropped"):
            result = bootstrap_distribution(
                ramp, _mean_or_exhausted, 0.5, 200, 4.5, seed=0, on_failure='drop'
            )
        assert result.n_dropped == int(np.sum(np.isnan(result.replicates)))
        assert np.all(np.isfinite(result.valid_replicates))

    def test_all_dropped(self, ramp):
        with pytest.raises(CalibrationError, match="All 20"):
            bootstrap_quantile(ramp, _always_exhausted, 0.5, 20, seed=0, on_failure='drop')


class TestCancellation:
    """Cooperative cancellation between replicates."""

    def test_preset_event(self, normal_sample):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(CalibrationCancelled, match="after 0"):
            bootstrap_quantile(normal_sample, np.mean, 0.5, 100, seed=0, cancel=cancel)

    def test_cancel_midway(self, normal_sample):
        with pytest.raises(CalibrationCancelled, match="after 5 of 100"):
            bootstrap_quantile(normal_sample, np.mean, 0.5, 100, seed=0, cancel=_TripAfter(5))

    def test_unset_event_runs(self, normal_sample):
        q = bootstrap_quantile(
            normal_sample, np.mean, 0.5, 100, seed=0, cancel=threading.Event()
        )
        assert np.isfinite(q)

    def test_cancelled_is_calibration_error(self):
        assert issubclass(CalibrationCancelled, CalibrationError)

    def test_parallel_preset_event(self, normal_sample):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(CalibrationCancelled, match="not started"):
            bootstrap_quantile(normal_sample, _slow_mean, 0.5, 400, seed=0, n_jobs=2, cancel=cancel)

    def test_parallel_cancel_stops_early(self, normal_sample):
        """
        Cancelling after the first submissions waits only for the running
        tasks. The full run (400 x 20 ms on 2 workers) takes about 4 s.
        """
        start = time.perf_counter()
        with pytest.raises(CalibrationCancelled):
            bootstrap_quantile(
                normal_sample, _slow_mean, 0.5, 400, seed=0, n_jobs=2, cancel=_TripAfter(2)
            )
        assert time.perf_counter() - start < 3.0
