"""
Calibrator facade bound to a fixed set of calibration settings.

This is the object the uncertainty-set (constraint generation) layer
holds: it owns one random generator so that successive calibrations
draw from a single reproducible stream.
"""

import numpy as np
from typing import Optional, Tuple
from dataclasses import dataclass, field

from ..core.config import CalibrationSettings
from .moments import (
    calc_sigs_boot,
    calc_means_t,
    ks_gamma,
    boot_mu,
    boot_sigma,
    boot_dy_mu,
    boot_dy_sigma,
)
from .lcx import calc_ab_thresh


@dataclass
class UncertaintySetCalibrator:
    """
    Calibrates uncertainty-set parameters at a common confidence level.

    Parameters
    ----------
    settings : CalibrationSettings
        Confidence level, replicate counts, seed and execution options

    Examples
    --------
    >>> cal = UncertaintySetCalibrator(CalibrationSettings(alpha=0.1, n_boots=2000, seed=7))
    >>> gamma1, gamma2 = cal.dy_radii(returns)
    """
    settings: CalibrationSettings = field(default_factory=CalibrationSettings)
    rng: np.random.Generator = field(init=False, repr=False)

    def __post_init__(self):
        self.rng = np.random.default_rng(self.settings.seed)

    def _boot_kwargs(self) -> dict:
        return {
            'seed': self.rng,
            'n_jobs': self.settings.n_jobs,
            'on_failure': self.settings.on_failure,
        }

    def _alpha(self, alpha: Optional[float]) -> float:
        return self.settings.alpha if alpha is None else alpha

    # -------------------------------------------------------------------------
    # Moment-based sets
    # -------------------------------------------------------------------------

    def forward_backward_sigmas(self, data: np.ndarray, alpha: Optional[float] = None) -> Tuple[float, float]:
        """Jointly valid bootstrap bounds on the forward and backward deviations."""
        return calc_sigs_boot(data, self._alpha(alpha), self.settings.n_boots, **self._boot_kwargs())

    def mean_interval(self, data: np.ndarray, alpha: Optional[float] = None, joint: bool = True):
        """Student-t bounds on the mean."""
        return calc_means_t(data, self._alpha(alpha), joint=joint)

    def mean_radius(self, data: np.ndarray, alpha: Optional[float] = None) -> float:
        return boot_mu(data, self._alpha(alpha), self.settings.n_boots, **self._boot_kwargs())

    def covariance_radius(self, data: np.ndarray, alpha: Optional[float] = None) -> float:
        return boot_sigma(data, self._alpha(alpha), self.settings.n_boots, **self._boot_kwargs())

    def dy_radii(self, data: np.ndarray, alpha: Optional[float] = None) -> Tuple[float, float]:
        """
        Mean and covariance scales (γ₁, γ₂) of the DY set.

        Each is calibrated at level 1 - alpha/2 so the pair holds jointly.
        γ₂ is inf when the bootstrap covariance degenerates.
        """
        half = self._alpha(alpha) / 2
        gamma1 = boot_dy_mu(data, half, self.settings.n_boots, **self._boot_kwargs())
        gamma2 = boot_dy_sigma(data, half, self.settings.n_boots, **self._boot_kwargs())
        return gamma1, gamma2

    # -------------------------------------------------------------------------
    # Distribution-based sets
    # -------------------------------------------------------------------------

    def lcx_threshold(self, data: np.ndarray, alpha: Optional[float] = None) -> float:
        return calc_ab_thresh(
            data, self._alpha(alpha), self.settings.n_boots, self.settings.n_samples,
            **self._boot_kwargs(),
        )

    def ks_threshold(self, n: int, alpha: Optional[float] = None) -> float:
        return ks_gamma(self._alpha(alpha), n)
