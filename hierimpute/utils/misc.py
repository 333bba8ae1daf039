from typing import Literal

import numpy as np
import pandas as pd


def validate_input_type(
    X: pd.DataFrame | np.ndarray | list,
    return_type: Literal["array", "df", "list"] = "array",
):
    """Validate input type and return it in the requested container.

    Args:
        X (pandas.DataFrame | numpy.ndarray | list): Input data.
        return_type (Literal["array", "df", "list"]): Type of returned object. "df" corresponds to a pandas DataFrame, "array" to a numpy array, and "list" to a 2D list. Defaults to "array".

    Returns:
        pandas.DataFrame | numpy.ndarray | list: Input data as the desired return_type. Arrays and DataFrames are always copies.

    Raises:
        TypeError: X must be of type pandas.DataFrame, numpy.ndarray, or list.
        ValueError: Unsupported return_type provided.
    """
    if not isinstance(X, (pd.DataFrame, np.ndarray, list)):
        msg = f"X must be of type pandas.DataFrame, numpy.ndarray, or list, but got {type(X)}"
        raise TypeError(msg)

    if return_type not in {"df", "array", "list"}:
        msg = f"Unsupported return type provided: {return_type}. Supported types are 'df', 'array', and 'list'"
        raise ValueError(msg)

    if return_type == "array":
        if isinstance(X, pd.DataFrame):
            return X.to_numpy(copy=True)
        elif isinstance(X, list):
            return np.array(X)
        return X.copy()

    if return_type == "df":
        if isinstance(X, pd.DataFrame):
            return X.copy()
        return pd.DataFrame(X)

    if isinstance(X, list):
        return X
    if isinstance(X, np.ndarray):
        return X.tolist()
    return X.values.tolist()


def format_seconds(seconds: float) -> str:
    """Format elapsed seconds as ``M:SS`` or ``H:MM:SS``."""
    total = int(round(seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:d}:{secs:02d}"
