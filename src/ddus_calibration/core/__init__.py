"""
Shared configuration and error types.
"""

from .exceptions import (
    CalibrationError,
    InvalidParameter,
    BracketingFailed,
    RootFindingFailed,
    RootFindingExhausted,
    CalibrationCancelled,
    DegenerateCovarianceWarning,
)
from .config import (
    CalibrationSettings,
    check_probability,
    check_count,
)

__all__ = [
    # Errors
    'CalibrationError',
    'InvalidParameter',
    'BracketingFailed',
    'RootFindingFailed',
    'RootFindingExhausted',
    'CalibrationCancelled',
    'DegenerateCovarianceWarning',
    # Settings
    'CalibrationSettings',
    'check_probability',
    'check_count',
]
