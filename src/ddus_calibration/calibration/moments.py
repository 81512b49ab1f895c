"""
Moment-Based Threshold Calibration.

Calibrates the parameters of moment-based uncertainty sets:
- Forward/backward deviations via exponential tilting (FB sets)
- Student-t confidence intervals for the mean
- Bootstrap radii for the mean and covariance
- Joint mean/covariance (DY) scales, with a degenerate-covariance
  sentinel and a two-stage root solve

Every ``*_boot`` / ``boot_*`` routine forwards extra keyword arguments
(seed, n_jobs, on_failure, cancel) to the bootstrap resampler.
"""

import numpy as np
from scipy import stats
from typing import Optional, Tuple, Union
import warnings

from ..core.config import (
    DEGENERATE_EIG_RTOL,
    DY_PRIMARY_BRACKET,
    INFINITE_THRESHOLD,
    SeedLike,
    check_count,
    check_probability,
)
from ..core.exceptions import DegenerateCovarianceWarning, InvalidParameter
from ..data.preprocessing import as_sample
from ..optimization.root_finding import find_bracket, solve_root, solve_with_fallback
from .bootstrap import bootstrap_distribution, bootstrap_quantile


# =============================================================================
# Part 1: Exponential Tilting (forward/backward deviations)
# =============================================================================

def f_sig(x: float, mu_adj: float, data_b: np.ndarray) -> float:
    """
    Deviation implied by the exponential tilt at x.

    σ(x) = sqrt(-2·μ_adj/x + 2/x² · log mean exp(x·(ξ - b)))

    Parameters
    ----------
    x : float
        Tilt (positive: forward, negative: backward)
    mu_adj : float
        Sample mean minus b
    data_b : np.ndarray
        Sample minus b, where b is the maximum (forward) or minimum
        (backward) so that x·data_b <= 0 and exp cannot overflow
    """
    logmeanexp = np.log(np.mean(np.exp(x * data_b)))
    sig2 = -2 * mu_adj / x + 2 / x**2 * logmeanexp
    # Rounding can push the Jensen gap slightly below zero
    return float(np.sqrt(max(sig2, 0.0)))


def df_sig(x: float, mu_adj: float, data_b: np.ndarray) -> float:
    """
    Closed-form derivative of the tilted deviation, used for root finding.

    Equals half of d σ²(x)/dx:

        (x·(w(x) + μ_adj) - 2·log mean exp(x·data_b)) / x³

    where w(x) is the mean of data_b under the exponential tilt.
    """
    expdata = np.exp(x * data_b)
    logmeanexp = np.log(np.mean(expdata))
    wght_mean = np.dot(expdata, data_b) / np.sum(expdata)
    return (x * (wght_mean + mu_adj) - 2 * logmeanexp) / x**3


def sig_fwd_back(data: np.ndarray, guess: float, trace: bool = False) -> float:
    """
    Forward or backward deviation of a 1-D sample.

    The sign of ``guess`` selects the orientation: positive for the
    forward deviation, negative for the backward one. The stationary
    point of σ(x) is located by bracketing and solving df_sig = 0.

    Parameters
    ----------
    data : np.ndarray
        1-D sample
    guess : float
        Initial tilt; sign encodes the orientation
    trace : bool
        Log the bracketing search

    Returns
    -------
    float
        Deviation σ(x*) at the root x*
    """
    data = as_sample(data, ndim=1)
    b = np.max(data) if guess > 0 else np.min(data)
    mu_adj = np.mean(data) - b
    data_b = data - b

    def objective(x):
        return df_sig(x, mu_adj, data_b)

    bracket = find_bracket(objective, guess, trace=trace)
    xstar = solve_root(objective, bracket)
    return f_sig(xstar, mu_adj, data_b)


def calc_sigs_boot(
    data: np.ndarray,
    alpha: float,
    n_boots: int,
    case: Optional[str] = None,
    seed: SeedLike = None,
    **kwargs,
) -> Union[float, Tuple[float, float]]:
    """
    Bootstrap upper bounds on the forward and backward deviations.

    Parameters
    ----------
    data : np.ndarray
        1-D sample
    alpha : float
        Miscoverage level
    n_boots : int
        Bootstrap replicates
    case : str, optional
        'fwd' or 'back' for a single deviation at level 1 - alpha.
        If None, both are returned, each at level 1 - alpha/2 so that
        they hold jointly.
    seed : int or np.random.Generator, optional
        Random source

    Returns
    -------
    float or (sig_fwd, sig_back)
    """
    alpha = check_probability(alpha)
    rng = np.random.default_rng(seed)

    if case is None:
        sigf = calc_sigs_boot(data, alpha / 2, n_boots, 'fwd', seed=rng, **kwargs)
        sigb = calc_sigs_boot(data, alpha / 2, n_boots, 'back', seed=rng, **kwargs)
        return sigf, sigb

    if case == 'fwd':
        guess = 1.0
    elif case == 'back':
        guess = -1.0
    else:
        raise InvalidParameter(f"Case must be either 'fwd' or 'back', got {case}")

    data = as_sample(data, ndim=1, min_rows=2)
    return bootstrap_quantile(data, sig_fwd_back, 1 - alpha, n_boots, guess, seed=rng, **kwargs)


# =============================================================================
# Part 2: Closed-Form Thresholds
# =============================================================================

def calc_means_t(
    data: np.ndarray,
    alpha: float,
    joint: bool = True,
) -> Tuple[Union[float, np.ndarray], Union[float, np.ndarray]]:
    """
    Confidence bounds on the mean via the Student-t approximation.

    [μ̂ + t_{N-1}(a)·s/√N,  μ̂ + t_{N-1}(1-a)·s/√N]

    with a = alpha/2 if ``joint`` (both bounds hold simultaneously at
    level 1 - alpha) and a = alpha otherwise (each bound holds
    individually at level 1 - alpha).

    Parameters
    ----------
    data : np.ndarray
        Sample, shape (N,) or (N, d); 2-D input gives per-column bounds
    alpha : float
        Miscoverage level
    joint : bool
        Whether the two bounds hold jointly

    Returns
    -------
    (lower, upper)
        Floats for 1-D data, arrays of length d otherwise
    """
    alpha = check_probability(alpha)
    data = as_sample(data, min_rows=2)
    n = data.shape[0]

    sig_rt_n = np.std(data, axis=0, ddof=1) / np.sqrt(n)
    dist = stats.t(df=n - 1)
    a = alpha / 2 if joint else alpha

    mu = np.mean(data, axis=0)
    lower = mu + dist.ppf(a) * sig_rt_n
    upper = mu + dist.ppf(1 - a) * sig_rt_n

    if data.ndim == 1:
        return float(lower), float(upper)
    return lower, upper


def ks_gamma(alpha: float, n: int) -> float:
    """
    Kolmogorov-Smirnov threshold via Stephens' approximation.

    Γ = sqrt(½·log(2/α)) / (√N + 0.12 + 0.11/√N)

    Reference: Stephens, JRSS B (1970).
    """
    alpha = check_probability(alpha)
    n = check_count(n, 'n')
    sqrt_n = np.sqrt(n)
    num = np.sqrt(0.5 * np.log(2 / alpha))
    denom = sqrt_n + 0.12 + 0.11 / sqrt_n
    return float(num / denom)


def kappa(eps: float) -> float:
    """Chebyshev-type multiplier sqrt(1/ε - 1)."""
    eps = check_probability(eps, 'eps')
    return float(np.sqrt(1.0 / eps - 1.0))


# =============================================================================
# Part 3: Bootstrapped Mean and Covariance Radii
# =============================================================================

def _cov(sample: np.ndarray) -> np.ndarray:
    return np.atleast_2d(np.cov(sample, rowvar=False))


def _mean_deviation_norm(sample: np.ndarray, mu_hat: np.ndarray) -> float:
    return float(np.linalg.norm(np.mean(sample, axis=0) - mu_hat))


def _covariance_deviation_norm(sample: np.ndarray, cov_hat: np.ndarray) -> float:
    return float(np.linalg.norm(_cov(sample) - cov_hat))


def _mahalanobis_mean(sample: np.ndarray, mu_hat: np.ndarray, cov_inv: np.ndarray) -> float:
    diff = np.mean(sample, axis=0) - mu_hat
    return float(diff @ cov_inv @ diff)


def boot_mu(data: np.ndarray, alpha: float, n_boots: int, **kwargs) -> float:
    """
    Bootstrap radius for the mean: (1-α)-quantile of ||μ̂* - μ̂||₂.
    """
    alpha = check_probability(alpha)
    data = as_sample(data)
    mu_hat = np.mean(data, axis=0)
    return bootstrap_quantile(data, _mean_deviation_norm, 1 - alpha, n_boots, mu_hat, **kwargs)


def boot_sigma(data: np.ndarray, alpha: float, n_boots: int, **kwargs) -> float:
    """
    Bootstrap radius for the covariance: (1-α)-quantile of ||Σ̂* - Σ̂||_F.
    """
    alpha = check_probability(alpha)
    data = as_sample(data, ndim=2, min_rows=2)
    cov_hat = _cov(data)
    return bootstrap_quantile(data, _covariance_deviation_norm, 1 - alpha, n_boots, cov_hat, **kwargs)


def boot_dy_mu(data: np.ndarray, alpha: float, n_boots: int, **kwargs) -> float:
    """
    DY mean scale: (1-α)-quantile of (μ̂* - μ̂)ᵀ Σ̂⁻¹ (μ̂* - μ̂).
    """
    alpha = check_probability(alpha)
    data = as_sample(data, ndim=2, min_rows=2)
    mu_hat = np.mean(data, axis=0)
    try:
        cov_inv = np.linalg.inv(_cov(data))
    except np.linalg.LinAlgError as e:
        raise InvalidParameter("Sample covariance is singular") from e
    return bootstrap_quantile(data, _mahalanobis_mean, 1 - alpha, n_boots, mu_hat, cov_inv, **kwargs)


def dy_min_eig(
    g: float,
    boot_cov: np.ndarray,
    cov0: np.ndarray,
    mean_outer: np.ndarray,
) -> float:
    """
    Minimum eigenvalue of g·Σ̂* - Σ̂ - (μ̂ - μ̂*)(μ̂ - μ̂*)ᵀ.

    Increasing in g when Σ̂* is positive definite; its zero is the
    smallest g for which the scaled bootstrap covariance dominates the
    second moment about the bootstrap mean.
    """
    return float(np.linalg.eigvalsh(g * boot_cov - cov0 - mean_outer)[0])


def is_degenerate(cov: np.ndarray) -> bool:
    """True if ``cov`` is not (numerically) positive definite."""
    eigs = np.linalg.eigvalsh(cov)
    return eigs[0] <= DEGENERATE_EIG_RTOL * abs(eigs[-1])


def _dy_sigma_statistic(sample: np.ndarray, mu0: np.ndarray, cov0: np.ndarray) -> float:
    mu_hat = np.mean(sample, axis=0)
    cov_hat = _cov(sample)

    if is_degenerate(cov_hat):
        return INFINITE_THRESHOLD

    diff = mu0 - mu_hat
    mean_outer = np.outer(diff, diff)

    def objective(g):
        return dy_min_eig(g, cov_hat, cov0, mean_outer)

    return solve_with_fallback(objective, DY_PRIMARY_BRACKET).root


def boot_dy_sigma(data: np.ndarray, alpha: float, n_boots: int, **kwargs) -> float:
    """
    DY covariance scale: (1-α)-quantile of the root g* of dy_min_eig.

    Replicates with a degenerate bootstrap covariance contribute +inf;
    their count is reported once, from the calling process, as a
    DegenerateCovarianceWarning. A replicate whose primary and
    fallback solves both fail raises RootFindingExhausted, or is dropped
    when ``on_failure='drop'``.
    """
    alpha = check_probability(alpha)
    data = as_sample(data, ndim=2, min_rows=2)
    mu0 = np.mean(data, axis=0)
    cov0 = _cov(data)
    result = bootstrap_distribution(data, _dy_sigma_statistic, 1 - alpha, n_boots, mu0, cov0, **kwargs)

    n_degenerate = int(np.sum(np.isinf(result.replicates)))
    if n_degenerate > 0:
        warnings.warn(
            f"{n_degenerate} of {result.n_boots} bootstrap covariances are not positive "
            f"definite; their replicates are infinite",
            DegenerateCovarianceWarning,
        )
    return result.threshold
