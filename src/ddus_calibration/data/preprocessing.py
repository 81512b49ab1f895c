"""
Sample Preprocessing Utilities.

Functions for coercing and validating the data samples handed to the
calibration routines.
"""

import pandas as pd
import numpy as np
from typing import Optional, Union

from ..core.exceptions import InvalidParameter


SampleLike = Union[np.ndarray, pd.Series, pd.DataFrame, list, tuple]


def as_sample(
    data: SampleLike,
    ndim: Optional[int] = None,
    min_rows: int = 1,
) -> np.ndarray:
    """
    Convert a sample to a float array of observations.
    
    Parameters
    ----------
    data : array-like, pd.Series or pd.DataFrame
        Observations, shape (N,) or (N, d)
    ndim : int, optional
        Required dimensionality (1 or 2). A 1-D sample is promoted to a
        single column when ``ndim=2``.
    min_rows : int
        Minimum number of observations
        
    Returns
    -------
    np.ndarray
        Float array; may share memory with ``data`` and must not be
        written to
    """
    if isinstance(data, (pd.Series, pd.DataFrame)):
        arr = data.to_numpy(dtype=float)
    else:
        arr = np.asarray(data, dtype=float)
    
    if arr.ndim not in (1, 2):
        raise InvalidParameter(f"Sample must be 1-D or 2-D, got {arr.ndim}-D")
    
    if ndim == 2 and arr.ndim == 1:
        arr = arr[:, np.newaxis]
    elif ndim is not None and arr.ndim != ndim:
        raise InvalidParameter(f"Expected a {ndim}-D sample, got {arr.ndim}-D")
    
    if arr.shape[0] < min_rows:
        raise InvalidParameter(
            f"Sample needs at least {min_rows} observations, got {arr.shape[0]}"
        )
    if arr.ndim == 2 and arr.shape[1] == 0:
        raise InvalidParameter("Sample has no columns")
    if not np.all(np.isfinite(arr)):
        raise InvalidParameter("Sample contains NaN or infinite values")
    
    return arr


def sort_data_cols(data: SampleLike) -> Union[np.ndarray, pd.DataFrame]:
    """
    Sort every column of a sample independently.
    
    Used by marginal (coordinate-wise) uncertainty sets, which only need
    the order statistics of each coordinate.
    
    Parameters
    ----------
    data : array-like or pd.DataFrame
        Sample (N × d)
        
    Returns
    -------
    np.ndarray or pd.DataFrame
        Copy with each column sorted ascending. DataFrames keep their
        column labels and get a fresh RangeIndex.
    """
    arr = as_sample(data, ndim=2)
    sorted_arr = np.sort(arr, axis=0)
    
    if isinstance(data, pd.DataFrame):
        return pd.DataFrame(sorted_arr, columns=data.columns)
    return sorted_arr
