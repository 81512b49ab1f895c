"""
Bracketing and Root Finding for Calibration Equations.

Calibration thresholds are defined implicitly as zeros of scalar
functions whose scale is unknown in advance. This module provides:
- Multiplicative bracket search around an initial guess
- A Brent-method adapter that reports failures as calibration errors
- A two-stage solver (primary bracket, then manual doubling/halving)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Tuple

import numpy as np
from scipy.optimize import brentq

from ..core.config import (
    BRACKET_MAX_ITER,
    BRACKET_RATIO,
    DIAGNOSTIC_EXPONENTS,
    FALLBACK_MAX_ITER,
)
from ..core.exceptions import (
    BracketingFailed,
    CalibrationError,
    InvalidParameter,
    RootFindingExhausted,
    RootFindingFailed,
)

logger = logging.getLogger(__name__)

ScalarFunction = Callable[[float], float]


# =============================================================================
# Bracketing
# =============================================================================

def find_bracket(
    f: ScalarFunction,
    guess: float,
    max_iter: int = BRACKET_MAX_ITER,
    ratio: float = BRACKET_RATIO,
    trace: bool = False,
) -> Tuple[float, float]:
    """
    Search multiplicatively for an interval containing a sign change.

    Starting from (guess/ratio, guess*ratio) the interval is widened
    symmetrically, on a log scale, until f changes sign across it.
    The tightest known bracket is then returned: the last expansion
    step on whichever side contains the crossing.

    Parameters
    ----------
    f : Callable
        Scalar function
    guess : float
        Initial guess; its sign fixes the half-line that is searched
    max_iter : int
        Maximum number of expansions
    ratio : float
        Expansion factor (> 1)
    trace : bool
        Log every expansion at DEBUG level

    Returns
    -------
    (low, high) : Tuple[float, float]
        Ordered bracket with f(low) * f(high) <= 0
    """
    if guess == 0:
        raise InvalidParameter("Bracketing guess must be non-zero")
    if ratio <= 1:
        raise InvalidParameter(f"Expansion ratio must exceed 1, got {ratio}")
    if max_iter < 1:
        raise InvalidParameter(f"max_iter must be positive, got {max_iter}")

    low = guess / ratio
    high = guess * ratio
    f_low = f(low)
    f_high = f(high)

    iteration = 0
    while f_low * f_high > 0 and iteration < max_iter:
        if trace:
            logger.debug("Bracketing %d\t%g\t%g\t%g\t%g", iteration, low, high, f_low, f_high)
        low /= ratio
        high *= ratio
        f_low = f(low)
        f_high = f(high)
        iteration += 1

    # NaN products compare False above, so test for the sign change explicitly
    if not f_low * f_high <= 0:
        raise BracketingFailed(
            f"Bracketing failed after {iteration} expansions around {guess}",
            low=low, high=high, iterations=iteration,
        )

    if f_high * f(high / ratio) <= 0:
        a, b = high / ratio, high
    elif f_low * f(low * ratio) <= 0:
        a, b = low, low * ratio
    else:
        raise CalibrationError(
            f"Sign change not located after {iteration} expansions: "
            f"f({low})={f_low}, f({high})={f_high}"
        )

    if trace:
        logger.debug("Bracketing success:\t%g\t%g", a, b)
    return min(a, b), max(a, b)


# =============================================================================
# Root Solver Adapter
# =============================================================================

def solve_root(
    f: ScalarFunction,
    bracket: Tuple[float, float],
    xtol: float = 2e-12,
    maxiter: int = 100,
) -> float:
    """
    Solve f(x) = 0 on a bracket with Brent's method.

    Parameters
    ----------
    f : Callable
        Scalar function, continuous on the bracket
    bracket : Tuple[float, float]
        End points, in either order
    xtol : float
        Absolute tolerance on the root
    maxiter : int
        Iteration cap passed to the solver

    Returns
    -------
    float
        Root of f

    Raises
    ------
    RootFindingFailed
        If f does not change sign on the bracket or the solver does not
        converge.
    """
    a, b = min(bracket), max(bracket)
    f_a, f_b = f(a), f(b)

    if f_a == 0:
        return float(a)
    if f_b == 0:
        return float(b)
    if not np.isfinite(f_a) or not np.isfinite(f_b) or f_a * f_b > 0:
        raise RootFindingFailed(
            f"No sign change on [{a}, {b}]: f(a)={f_a}, f(b)={f_b}"
        )

    try:
        root, info = brentq(f, a, b, xtol=xtol, maxiter=maxiter, full_output=True, disp=False)
    except (ValueError, RuntimeError) as e:
        raise RootFindingFailed(f"Root finding failed on [{a}, {b}]: {e}") from e

    if not info.converged:
        raise RootFindingFailed(
            f"Root finding did not converge on [{a}, {b}] after {info.iterations} iterations"
        )
    return float(root)


# =============================================================================
# Two-Stage Solver
# =============================================================================

class SolveStage(Enum):
    """State of the two-stage solver.
    
    PRIMARY and FALLBACK label a RootSolveResult; EXHAUSTED is carried
    by the RootFindingExhausted raised when both stages fail.
    """
    PRIMARY = 'primary'
    FALLBACK = 'fallback'
    EXHAUSTED = 'exhausted'


@dataclass
class RootSolveResult:
    """Container for a root together with how it was found."""
    root: float
    stage: SolveStage
    bracket: Tuple[float, float]


def fallback_bracket(
    f: ScalarFunction,
    max_iter: int = FALLBACK_MAX_ITER,
) -> Tuple[float, float]:
    """
    Manual doubling/halving bracket search anchored at x = 1.

    Intended for increasing objectives on the positive half-line: if
    f(1) < 0 the upper end doubles until f is non-negative, otherwise
    the lower end halves until f is non-positive. The returned interval
    is only a candidate; the solver re-checks the sign change.
    """
    iteration = 0
    if f(1.0) < 0:
        low, high = 1.0, 2.0
        while f(high) < 0 and iteration < max_iter:
            low = high
            high *= 2.0
            iteration += 1
    else:
        low, high = 0.5, 1.0
        while f(low) > 0 and iteration < max_iter:
            high = low
            low *= 0.5
            iteration += 1
    return low, high


def diagnostic_values(f: ScalarFunction) -> Dict[float, float]:
    """Evaluate f on geometrically spaced points 1e-2 ... 1e5."""
    values = {}
    for k in DIAGNOSTIC_EXPONENTS:
        x = 10.0 ** k
        try:
            values[x] = float(f(x))
        except (ArithmeticError, ValueError, np.linalg.LinAlgError):
            values[x] = np.nan
    return values


def solve_with_fallback(
    f: ScalarFunction,
    primary_bracket: Tuple[float, float],
    fallback_max_iter: int = FALLBACK_MAX_ITER,
) -> RootSolveResult:
    """
    Solve f(x) = 0 trying a fixed bracket first, then a manual search.

    PRIMARY -> (on failure) FALLBACK -> (on failure) EXHAUSTED.

    Parameters
    ----------
    f : Callable
        Scalar function, increasing in x on the positive half-line
    primary_bracket : Tuple[float, float]
        Bracket tried first
    fallback_max_iter : int
        Iteration cap for the doubling/halving search

    Returns
    -------
    RootSolveResult
        Root with the stage and bracket that produced it

    Raises
    ------
    RootFindingExhausted
        If both stages fail, with ``stage`` set to SolveStage.EXHAUSTED
        and ``diagnostics`` holding f at the diagnostic points.
    """
    try:
        root = solve_root(f, primary_bracket)
        return RootSolveResult(root=root, stage=SolveStage.PRIMARY, bracket=tuple(primary_bracket))
    except RootFindingFailed as e:
        logger.info("Primary solve failed (%s); using manual bracketing", e)

    bracket = fallback_bracket(f, max_iter=fallback_max_iter)
    try:
        root = solve_root(f, bracket)
        return RootSolveResult(root=root, stage=SolveStage.FALLBACK, bracket=bracket)
    except RootFindingFailed as e:
        diagnostics = diagnostic_values(f)
        logger.debug("Manual bracketing failed; diagnostic sequence %s", diagnostics)
        raise RootFindingExhausted(
            f"Primary and fallback root finding failed (last bracket {bracket}): {e}",
            diagnostics=diagnostics,
            stage=SolveStage.EXHAUSTED,
        ) from e
