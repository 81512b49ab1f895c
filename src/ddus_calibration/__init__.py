"""
Data-Driven Uncertainty Set Calibration

Statistically calibrated thresholds ("Gamma") for robust-optimization
uncertainty sets, computed by nonparametric bootstrap and root finding
over implicit calibration equations.

Key Features:
- Generic bootstrap quantile with explicit, reproducible random streams
- Multiplicative bracketing and Brent root finding with a manual fallback
- Forward/backward deviation, mean, covariance and DY calibration
- Single-pass LCX threshold over random projection directions

Main Entry Points:
    from ddus_calibration import UncertaintySetCalibrator, CalibrationSettings
    from ddus_calibration import bootstrap_quantile, calc_ab_thresh
"""

__version__ = "0.1.0"

from .core import (
    CalibrationSettings,
    CalibrationError,
    InvalidParameter,
    BracketingFailed,
    RootFindingFailed,
    RootFindingExhausted,
    CalibrationCancelled,
    DegenerateCovarianceWarning,
)
from .optimization import (
    find_bracket,
    solve_root,
    solve_with_fallback,
)
from .calibration import (
    bootstrap_quantile,
    bootstrap_distribution,
    BootstrapResult,
    sig_fwd_back,
    calc_sigs_boot,
    calc_means_t,
    ks_gamma,
    kappa,
    boot_mu,
    boot_sigma,
    boot_dy_mu,
    boot_dy_sigma,
    single_pass_gamma,
    directional_threshold,
    calc_ab_thresh,
    UncertaintySetCalibrator,
)
from .data import sort_data_cols

__all__ = [
    # Version info
    '__version__',
    # Settings and errors
    'CalibrationSettings',
    'CalibrationError',
    'InvalidParameter',
    'BracketingFailed',
    'RootFindingFailed',
    'RootFindingExhausted',
    'CalibrationCancelled',
    'DegenerateCovarianceWarning',
    # Root finding
    'find_bracket',
    'solve_root',
    'solve_with_fallback',
    # Calibration
    'bootstrap_quantile',
    'bootstrap_distribution',
    'BootstrapResult',
    'sig_fwd_back',
    'calc_sigs_boot',
    'calc_means_t',
    'ks_gamma',
    'kappa',
    'boot_mu',
    'boot_sigma',
    'boot_dy_mu',
    'boot_dy_sigma',
    'single_pass_gamma',
    'directional_threshold',
    'calc_ab_thresh',
    'UncertaintySetCalibrator',
    # Utilities
    'sort_data_cols',
]
