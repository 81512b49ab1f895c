"""
Calibration of uncertainty-set thresholds.

This module provides the bootstrap-based calibration routines for
data-driven uncertainty sets:

1. Generic bootstrap quantile of a statistic (resampler)
2. Moment-based sets (forward/backward deviations, mean and
   covariance radii, DY scales)
3. LCX sets (single-pass stop-loss gap over random directions)
"""

from .bootstrap import (
    bootstrap_quantile,
    bootstrap_distribution,
    BootstrapResult,
)
from .moments import (
    f_sig,
    df_sig,
    sig_fwd_back,
    calc_sigs_boot,
    calc_means_t,
    ks_gamma,
    kappa,
    boot_mu,
    boot_sigma,
    boot_dy_mu,
    boot_dy_sigma,
    dy_min_eig,
    is_degenerate,
)
from .lcx import (
    findlast_sort,
    single_pass_gamma,
    DirectionScratch,
    rand_l1,
    directional_threshold,
    calc_ab_thresh,
)
from .calibrator import UncertaintySetCalibrator

__all__ = [
    # Resampler
    'bootstrap_quantile',
    'bootstrap_distribution',
    'BootstrapResult',
    # Moments
    'f_sig',
    'df_sig',
    'sig_fwd_back',
    'calc_sigs_boot',
    'calc_means_t',
    'ks_gamma',
    'kappa',
    'boot_mu',
    'boot_sigma',
    'boot_dy_mu',
    'boot_dy_sigma',
    'dy_min_eig',
    'is_degenerate',
    # LCX
    'findlast_sort',
    'single_pass_gamma',
    'DirectionScratch',
    'rand_l1',
    'directional_threshold',
    'calc_ab_thresh',
    # Facade
    'UncertaintySetCalibrator',
]
