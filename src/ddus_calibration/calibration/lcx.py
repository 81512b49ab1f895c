"""
LCX Threshold Calibration.

The LCX uncertainty set is calibrated by the bootstrap quantile of

    Γ* = sup_a max_b  (1/N)Σ[aᵀξ_i - b]⁺ - (1/N)Σ[aᵀξ*_i - b]⁺

where ξ* is a bootstrap resample. For a fixed direction a the inner
maximum is computed exactly in one sweep over the sorted projections;
the supremum over a is approximated by sampling random directions on
the L1 sphere.
"""

import numpy as np
from typing import Optional
from dataclasses import dataclass, field

from ..core.config import FINDLAST_TOL, SeedLike, check_count, check_probability
from ..core.exceptions import InvalidParameter
from ..data.preprocessing import as_sample
from .bootstrap import bootstrap_quantile


# =============================================================================
# Part 1: Single-Pass Threshold
# =============================================================================

def findlast_sort(
    val: float,
    sorted_list: np.ndarray,
    tol: float = FINDLAST_TOL,
    start: int = 0,
) -> int:
    """
    Advance a monotone pointer past every entry not above ``val``.

    Assumes ``sorted_list`` is ascending and every entry before
    ``start`` is already at most ``val``.

    Returns
    -------
    int
        Index one past the last entry <= ``val + tol``; equivalently the
        count of such entries. ``start`` if there is none from ``start`` on.
    """
    i = start
    n = len(sorted_list)
    while i < n and sorted_list[i] <= val + tol:
        i += 1
    return i


def single_pass_gamma(
    zetas: np.ndarray,
    zeta_hats: np.ndarray,
    presorted: bool = False,
) -> float:
    """
    Maximum stop-loss gap between two samples in a single sweep.

    Computes

        max_b (1/N)Σ[ζ_i - b]⁺ - (1/N)Σ[ζ̂_i - b]⁺

    Both terms are piecewise linear in b with kinks at the data, so the
    maximum is attained at a kink of either sample (below all kinks the
    gap is constant, above them it is zero). b sweeps the merged sorted
    kinks; each term is updated from a running empirical CDF of its
    sample, located with a monotone pointer. Linear time after sorting.

    Parameters
    ----------
    zetas : np.ndarray
        Projections of the original sample (N,)
    zeta_hats : np.ndarray
        Projections of the bootstrap resample (N,)
    presorted : bool
        Inputs are already sorted ascending (and may be private
        buffers); otherwise sorted copies are taken

    Returns
    -------
    float
        Threshold Γ; at least zero, the gap for b above both samples
    """
    if len(zetas) != len(zeta_hats):
        raise InvalidParameter(
            f"Samples must have the same length, got {len(zetas)} and {len(zeta_hats)}"
        )
    if len(zetas) == 0:
        raise InvalidParameter("Samples must be non-empty")

    if not presorted:
        zetas = np.sort(zetas)
        zeta_hats = np.sort(zeta_hats)

    n = len(zetas)
    # at the lowest kink no term is clipped
    b = min(zetas[0], zeta_hats[0])
    vstar = np.mean(zetas) - b
    vb = np.mean(zeta_hats) - b
    # above every kink both terms vanish
    gamma = max(0.0, vstar - vb)

    star_indx = 0
    hat_indx = 0
    while True:
        # entries at or below the current breakpoint
        star_indx = findlast_sort(b, zetas, start=star_indx)
        hat_indx = findlast_sort(b, zeta_hats, start=hat_indx)
        if star_indx == n and hat_indx == n:
            break

        next_b = min(
            zetas[star_indx] if star_indx < n else np.inf,
            zeta_hats[hat_indx] if hat_indx < n else np.inf,
        )
        step = next_b - b
        vstar -= step * (n - star_indx) / n
        vb -= step * (n - hat_indx) / n
        b = next_b
        gamma = max(gamma, vstar - vb)

    return float(gamma)


# =============================================================================
# Part 2: Directional Sampling
# =============================================================================

@dataclass
class DirectionScratch:
    """
    Reusable buffers for the directional sampling loop.

    Every field is overwritten on each draw, never accumulated. One
    instance per worker; do not share across threads.
    """
    d: int
    n: int
    weights: np.ndarray = field(init=False, repr=False)
    signs: np.ndarray = field(init=False, repr=False)
    zetas: np.ndarray = field(init=False, repr=False)
    zeta_hats: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        self.weights = np.zeros(self.d)
        self.signs = np.zeros(self.d)
        self.zetas = np.zeros(self.n)
        self.zeta_hats = np.zeros(self.n)


def rand_l1(scratch: DirectionScratch, rng: np.random.Generator) -> np.ndarray:
    """
    Draw a random direction with unit L1 norm into ``scratch.weights``.

    Magnitudes are uniform weights normalised to sum to one; each sign
    is an independent fair coin flip.
    """
    a = scratch.weights
    rng.random(out=a)
    a /= np.sum(a)

    signs = scratch.signs
    rng.random(out=signs)
    np.copysign(1.0, 0.5 - signs, out=signs)
    a *= signs
    return a


def directional_threshold(
    boot_sample: np.ndarray,
    data: np.ndarray,
    n_samples: int,
    scratch: Optional[DirectionScratch] = None,
    rng: SeedLike = None,
) -> float:
    """
    Largest single-pass threshold over random projection directions.

    Parameters
    ----------
    boot_sample : np.ndarray
        Bootstrap resample (N × d)
    data : np.ndarray
        Original sample (N × d)
    n_samples : int
        Number of random directions
    scratch : DirectionScratch, optional
        Buffers reused across calls (allocated if None)
    rng : int or np.random.Generator, optional
        Source of the directions

    Returns
    -------
    float
        max over sampled directions of single_pass_gamma
    """
    n, d = data.shape
    if scratch is None or scratch.d != d or scratch.n != n:
        scratch = DirectionScratch(d=d, n=n)
    rng = np.random.default_rng(rng)

    gamma = 0.0
    for _ in range(n_samples):
        a = rand_l1(scratch, rng)
        np.matmul(data, a, out=scratch.zetas)
        np.matmul(boot_sample, a, out=scratch.zeta_hats)
        scratch.zetas.sort()
        scratch.zeta_hats.sort()
        gamma = max(gamma, single_pass_gamma(scratch.zetas, scratch.zeta_hats, presorted=True))

    return gamma


def calc_ab_thresh(
    data: np.ndarray,
    alpha: float,
    n_boots: int,
    n_samples: int,
    **kwargs,
) -> float:
    """
    Bootstrap LCX threshold.

    (1-α)-quantile, over bootstrap replicates, of the maximum stop-loss
    gap across ``n_samples`` random directions.

    Parameters
    ----------
    data : np.ndarray
        Sample (N × d)
    alpha : float
        Miscoverage level
    n_boots : int
        Bootstrap replicates
    n_samples : int
        Directions sampled per replicate
    **kwargs
        seed, n_jobs, on_failure, cancel (see bootstrap_distribution)

    Returns
    -------
    float
        Threshold Γ
    """
    alpha = check_probability(alpha)
    n_samples = check_count(n_samples, 'n_samples')
    data = as_sample(data, ndim=2)

    n, d = data.shape
    scratch = DirectionScratch(d=d, n=n)
    return bootstrap_quantile(
        data, directional_threshold, 1 - alpha, n_boots,
        data, n_samples, scratch,
        pass_rng=True, **kwargs,
    )
