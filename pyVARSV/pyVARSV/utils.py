"""
Utility functions for pyVARSV package
"""

import numpy as np
import pandas as pd
from typing import Union, List, Optional, Tuple


class DimensionMismatchError(ValueError):
    """Raised when matrix or vector arguments have inconsistent shapes."""


class InvalidHyperparameterError(ValueError):
    """Raised when a hyperparameter lies outside its admissible range."""


class InvalidRegimeError(ValueError):
    """Raised for an unrecognized prior regime."""


def vectorize(mat: np.ndarray) -> np.ndarray:
    """
    Stack the columns of a matrix into one vector (column-major vec operator).
    """
    return np.asarray(mat).flatten('F')


def unvectorize(vec: np.ndarray, nrow: int, ncol: int) -> np.ndarray:
    """
    Inverse of :func:`vectorize`.

    Parameters
    ----------
    vec : array
        Vector of length nrow * ncol.
    nrow, ncol : int
        Shape of the result.

    Returns
    -------
    array
        Matrix of shape (nrow, ncol).
    """
    vec = np.asarray(vec)
    if vec.size != nrow * ncol:
        raise DimensionMismatchError(
            f"Cannot reshape vector of length {vec.size} into ({nrow}, {ncol})."
        )
    return vec.reshape((nrow, ncol), order='F')


def num_lowerchol(dim: int) -> int:
    """Number of strictly lower triangular elements of a dim x dim matrix."""
    return dim * (dim - 1) // 2


def lower_indices(dim: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Row-wise indices of the strictly lower triangle: (1,0), (2,0), (2,1), ...
    """
    return np.tril_indices(dim, k=-1)


def build_inv_lower(dim: int, lower_vec: np.ndarray) -> np.ndarray:
    """
    Build the unit lower triangular matrix L with L Sigma_t L' = D_t.

    Parameters
    ----------
    dim : int
        Number of equations.
    lower_vec : array
        Row-wise strictly lower triangular elements (a21, a31, a32, ...).

    Returns
    -------
    array
        dim x dim unit lower triangular matrix.
    """
    lower_vec = np.asarray(lower_vec, dtype=float)
    if lower_vec.size != num_lowerchol(dim):
        raise DimensionMismatchError(
            f"Expected {num_lowerchol(dim)} lower triangular elements, got {lower_vec.size}."
        )
    res = np.eye(dim)
    res[lower_indices(dim)] = lower_vec
    return res


def check_square(mat: np.ndarray, name: str) -> int:
    """Return the dimension of a square matrix, raising otherwise."""
    mat = np.asarray(mat)
    if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
        raise DimensionMismatchError(f"Invalid '{name}' dimension: {mat.shape} is not square.")
    return mat.shape[0]


def check_rng(rng: Optional[Union[int, np.random.Generator]] = None) -> np.random.Generator:
    """
    Turn a seed, a Generator or None into a numpy Generator.
    """
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def check_data_format(data: Union[np.ndarray, pd.DataFrame],
                      name: str,
                      prefix: str) -> Tuple[np.ndarray, List[str]]:
    """
    Convert data input to a float array and a list of column labels.

    Parameters
    ----------
    data : array or DataFrame
        Two-dimensional data.
    name : str
        Argument name used in error messages.
    prefix : str
        Label prefix for unnamed columns.

    Returns
    -------
    tuple
        (values, column labels)
    """
    if isinstance(data, pd.DataFrame):
        if data.isna().any().any():
            raise ValueError(f"'{name}' contains NaNs.")
        return data.values.astype(float), [str(col) for col in data.columns]

    values = np.asarray(data, dtype=float)
    if values.ndim == 1:
        values = values.reshape(-1, 1)
    if values.ndim != 2:
        raise DimensionMismatchError(f"'{name}' must be two-dimensional.")
    if np.isnan(values).any():
        raise ValueError(f"'{name}' contains NaNs.")
    return values, [f"{prefix}{ii + 1}" for ii in range(values.shape[1])]


def record_to_frame(record: np.ndarray,
                    columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Convert a (rows x parameters) record into a DataFrame indexed by draw.
    """
    record = np.asarray(record)
    if record.ndim == 1:
        record = record.reshape(-1, 1)
    if columns is not None and len(columns) != record.shape[1]:
        raise DimensionMismatchError(
            f"{len(columns)} labels supplied for {record.shape[1]} columns."
        )
    df = pd.DataFrame(record, columns=columns)
    df.index.name = 'draw'
    return df
