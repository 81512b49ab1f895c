"""
Numeric defaults and settings for threshold calibration.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from .exceptions import InvalidParameter


# Bracketing search
BRACKET_MAX_ITER = 32
BRACKET_RATIO = 2.0

# Manual fallback bracketing for the DY covariance objective
FALLBACK_MAX_ITER = 100
DY_PRIMARY_BRACKET: Tuple[float, float] = (0.01, 500.0)
DIAGNOSTIC_EXPONENTS = range(-2, 6)

# Tie tolerance for the single-pass monotone pointer
FINDLAST_TOL = 1e-10

# Returned when a replicate's calibration is unidentifiable
INFINITE_THRESHOLD = np.inf

# Covariances whose smallest eigenvalue is below this fraction of the
# largest are treated as singular
DEGENERATE_EIG_RTOL = 1e-12

FAILURE_POLICIES = ('raise', 'drop')

# Replicates per parallel task; cancellation latency is one task per worker
PARALLEL_TASK_SIZE = 16

SeedLike = Union[None, int, np.random.Generator]


def check_probability(value: float, name: str = 'alpha') -> float:
    """Validate that ``value`` lies in the open interval (0, 1)."""
    if not (0.0 < value < 1.0):
        raise InvalidParameter(f"{name} must be in (0, 1), got {value}")
    return float(value)


def check_count(value: int, name: str) -> int:
    """Validate a positive integer count."""
    if isinstance(value, bool) or int(value) != value or value < 1:
        raise InvalidParameter(f"{name} must be a positive integer, got {value}")
    return int(value)


@dataclass(frozen=True)
class CalibrationSettings:
    """
    Parameters shared by every calibration call.
    
    Attributes
    ----------
    alpha : float
        Miscoverage level; thresholds hold with confidence 1 - alpha.
    n_boots : int
        Number of bootstrap replicates.
    n_samples : int
        Random directions per replicate for the LCX threshold.
    seed : int, optional
        Seed of the generator driving every resample.
    n_jobs : int
        Worker processes for the replicate loop (1 = serial).
    on_failure : str
        'raise' aborts on a replicate whose root finding is exhausted,
        'drop' discards that replicate and warns.
    """
    alpha: float = 0.1
    n_boots: int = 10000
    n_samples: int = 500
    seed: Optional[int] = None
    n_jobs: int = 1
    on_failure: str = 'raise'

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        check_probability(self.alpha, 'alpha')
        check_count(self.n_boots, 'n_boots')
        check_count(self.n_samples, 'n_samples')
        check_count(self.n_jobs, 'n_jobs')
        if self.on_failure not in FAILURE_POLICIES:
            raise InvalidParameter(
                f"Unknown failure policy: {self.on_failure}. Choose from {list(FAILURE_POLICIES)}"
            )
