"""
Error types raised by the calibration engine.

All errors derive from CalibrationError and, where it makes sense, from
the builtin exception a caller would already expect (ValueError for bad
inputs, RuntimeError for numerical failures).
"""

from typing import Any, Dict, Optional


class CalibrationError(Exception):
    """Base class for calibration failures."""


class InvalidParameter(CalibrationError, ValueError):
    """Malformed confidence level, count or sample shape."""


class BracketingFailed(CalibrationError, RuntimeError):
    """No sign change found within the iteration budget."""

    def __init__(self, message: str, low: float, high: float, iterations: int):
        super().__init__(message)
        self.low = low
        self.high = high
        self.iterations = iterations

    def __reduce__(self):
        return (self.__class__, (str(self), self.low, self.high, self.iterations))


class RootFindingFailed(CalibrationError, RuntimeError):
    """A single root-finding attempt did not converge."""


class RootFindingExhausted(RootFindingFailed):
    """
    Primary solve and fallback bracket search both failed.
    
    ``diagnostics`` maps diagnostic points to function values, for debugging
    the shape of the objective. ``stage`` is the solver state at
    failure (SolveStage.EXHAUSTED).
    """

    def __init__(
        self,
        message: str,
        diagnostics: Optional[Dict[float, float]] = None,
        stage: Optional[Any] = None,
    ):
        super().__init__(message)
        self.diagnostics = diagnostics or {}
        self.stage = stage

    def __reduce__(self):
        return (self.__class__, (str(self), self.diagnostics, self.stage))


class CalibrationCancelled(CalibrationError):
    """Cancellation was requested between bootstrap replicates."""


class DegenerateCovarianceWarning(UserWarning):
    """Bootstrap covariance is not positive definite; threshold set to inf."""
