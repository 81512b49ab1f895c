"""
Root finding utilities for implicit calibration equations.
"""

from .root_finding import (
    find_bracket,
    solve_root,
    fallback_bracket,
    solve_with_fallback,
    diagnostic_values,
    SolveStage,
    RootSolveResult,
)

__all__ = [
    'find_bracket',
    'solve_root',
    'fallback_bracket',
    'solve_with_fallback',
    'diagnostic_values',
    'SolveStage',
    'RootSolveResult',
]
