"""
Data module for sample coercion and preprocessing.
"""

from .preprocessing import (
    as_sample,
    sort_data_cols,
)

__all__ = [
    'as_sample',
    'sort_data_cols',
]
