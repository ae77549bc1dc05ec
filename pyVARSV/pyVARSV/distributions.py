"""
Random matrix generators

Multivariate normal, matrix normal, inverse-Wishart and
matrix normal inverse-Wishart draws. These do not depend on the
VAR-SV sampler.
"""

import numpy as np
from typing import Dict, Optional, Union
from scipy.linalg import cholesky, sqrtm, solve_triangular

from .utils import (
    DimensionMismatchError,
    InvalidHyperparameterError,
    check_square,
    check_rng,
)


def _check_mean(mu: np.ndarray, dim: int) -> np.ndarray:
    mu = np.asarray(mu, dtype=float).ravel()
    if mu.size != dim:
        raise DimensionMismatchError(f"Invalid 'mu' size: {mu.size} != {dim}.")
    return mu


def sim_mgaussian(num_sim: int,
                  mu: np.ndarray,
                  sig: np.ndarray,
                  rng: Optional[Union[int, np.random.Generator]] = None) -> np.ndarray:
    """
    Generate multivariate normal random vectors.

    Uses the symmetric square root of the covariance,
    X = Z Sigma^{1/2} + mu.

    Parameters
    ----------
    num_sim : int
        Number of draws.
    mu : array
        Mean vector (m,).
    sig : array
        Covariance matrix (m x m).
    rng : int or Generator, optional
        Seed or random generator.

    Returns
    -------
    array
        num_sim x m matrix, one draw per row.
    """
    dim = check_square(sig, 'sig')
    mu = _check_mean(mu, dim)
    rng = check_rng(rng)
    standard_normal = rng.standard_normal((num_sim, dim))
    sig_sqrt = np.real(sqrtm(np.asarray(sig, dtype=float)))
    return standard_normal @ sig_sqrt + mu


def sim_mgaussian_chol(num_sim: int,
                       mu: np.ndarray,
                       sig: np.ndarray,
                       rng: Optional[Union[int, np.random.Generator]] = None) -> np.ndarray:
    """
    Generate multivariate normal random vectors using the Cholesky factor.

    Since draws are stored row-wise, X = Z U + mu with Sigma = U'U.
    """
    dim = check_square(sig, 'sig')
    mu = _check_mean(mu, dim)
    rng = check_rng(rng)
    standard_normal = rng.standard_normal((num_sim, dim))
    sig_upper = cholesky(np.asarray(sig, dtype=float), lower=False)
    return standard_normal @ sig_upper + mu


def sim_matgaussian(mat_mean: np.ndarray,
                    mat_scale_u: np.ndarray,
                    mat_scale_v: np.ndarray,
                    rng: Optional[Union[int, np.random.Generator]] = None) -> np.ndarray:
    """
    Generate one matrix normal random matrix.

    Y ~ MN(M, U, V) with M s x m, U s x s, V m x m, drawn as
    Y = M + P Z L' where U = P P' and V = L L'.

    Parameters
    ----------
    mat_mean : array
        Mean matrix (s x m).
    mat_scale_u : array
        Row scale matrix (s x s).
    mat_scale_v : array
        Column scale matrix (m x m).
    rng : int or Generator, optional
        Seed or random generator.

    Returns
    -------
    array
        s x m matrix.
    """
    mat_mean = np.asarray(mat_mean, dtype=float)
    if mat_mean.ndim != 2:
        raise DimensionMismatchError("'mat_mean' must be a matrix.")
    num_rows, num_cols = mat_mean.shape
    if check_square(mat_scale_u, 'mat_scale_u') != num_rows:
        raise DimensionMismatchError("Invalid 'mat_scale_u' dimension.")
    if check_square(mat_scale_v, 'mat_scale_v') != num_cols:
        raise DimensionMismatchError("Invalid 'mat_scale_v' dimension.")
    rng = check_rng(rng)
    chol_scale_u = cholesky(np.asarray(mat_scale_u, dtype=float), lower=True)
    chol_scale_v = cholesky(np.asarray(mat_scale_v, dtype=float), lower=True)
    mat_norm = rng.standard_normal((num_rows, num_cols))
    return mat_mean + chol_scale_u @ mat_norm @ chol_scale_v.T


def sim_iw_tri(mat_scale: np.ndarray,
               shape: float,
               rng: Optional[Union[int, np.random.Generator]] = None) -> np.ndarray:
    """
    Lower triangular factor A of an inverse-Wishart draw, Sigma = A A'.

    Bartlett decomposition: Q upper triangular with
    q_ii^2 ~ chi^2(nu - m + 1 + i) (i = 0, ..., m - 1) and q_ij ~ N(0, 1)
    for j > i, so that Q Q' ~ W(I, nu). With Psi = L L', A = L (Q^{-1})'.

    Parameters
    ----------
    mat_scale : array
        Scale matrix Psi (m x m).
    shape : float
        Degrees of freedom nu, must satisfy nu > m - 1.
    rng : int or Generator, optional
        Seed or random generator.

    Returns
    -------
    array
        m x m lower triangular matrix.
    """
    dim = check_square(mat_scale, 'mat_scale')
    if shape <= dim - 1:
        raise InvalidHyperparameterError(
            f"Wrong 'shape'. shape > dim - 1 must be satisfied (shape={shape}, dim={dim})."
        )
    rng = check_rng(rng)
    mat_bartlett = np.zeros((dim, dim))
    for i in range(dim):
        mat_bartlett[i, i] = np.sqrt(rng.chisquare(shape - dim + 1 + i))
        mat_bartlett[i, i + 1:] = rng.standard_normal(dim - i - 1)
    chol_scale = cholesky(np.asarray(mat_scale, dtype=float), lower=True)
    # (Q^{-1})' = solve(Q', I), lower triangular
    inv_bartlett_t = solve_triangular(mat_bartlett.T, np.eye(dim), lower=True)
    return chol_scale @ inv_bartlett_t


def sim_iw(mat_scale: np.ndarray,
           shape: float,
           rng: Optional[Union[int, np.random.Generator]] = None) -> np.ndarray:
    """
    Generate one inverse-Wishart random matrix, Sigma ~ IW(Psi, nu).

    E[Sigma] = Psi / (nu - m - 1) for nu > m + 1.
    """
    chol_res = sim_iw_tri(mat_scale, shape, rng)
    return chol_res @ chol_res.T


def sim_mniw(num_sim: int,
             mat_mean: np.ndarray,
             mat_scale_u: np.ndarray,
             mat_scale: np.ndarray,
             shape: float,
             rng: Optional[Union[int, np.random.Generator]] = None) -> Dict[str, np.ndarray]:
    """
    Generate matrix normal inverse-Wishart pairs.

    For each draw, Sigma_i ~ IW(Psi, nu) and Y_i | Sigma_i ~ MN(M, U, Sigma_i).

    Parameters
    ----------
    num_sim : int
        Number of draws.
    mat_mean : array
        Mean matrix of MN (s x m).
    mat_scale_u : array
        Row scale matrix of MN (s x s).
    mat_scale : array
        Scale matrix of IW (m x m).
    shape : float
        Shape of IW.
    rng : int or Generator, optional
        Seed or random generator.

    Returns
    -------
    dict
        Dictionary with keys:
        - 'mn': array (num_sim x s x m)
        - 'iw': array (num_sim x m x m)
    """
    mat_mean = np.asarray(mat_mean, dtype=float)
    if mat_mean.ndim != 2:
        raise DimensionMismatchError("'mat_mean' must be a matrix.")
    nrow_mn, ncol_mn = mat_mean.shape
    dim_iw = check_square(mat_scale, 'mat_scale')
    if dim_iw != ncol_mn:
        raise DimensionMismatchError(
            f"Invalid 'mat_scale' dimension: {dim_iw} does not match {ncol_mn} columns of 'mat_mean'."
        )
    if check_square(mat_scale_u, 'mat_scale_u') != nrow_mn:
        raise DimensionMismatchError("Invalid 'mat_scale_u' dimension.")
    if shape <= dim_iw - 1:
        raise InvalidHyperparameterError(
            f"Wrong 'shape'. shape > dim - 1 must be satisfied (shape={shape}, dim={dim_iw})."
        )
    rng = check_rng(rng)

    res_mn = np.zeros((num_sim, nrow_mn, ncol_mn))
    res_iw = np.zeros((num_sim, dim_iw, dim_iw))
    for i in range(num_sim):
        chol_res = sim_iw_tri(mat_scale, shape, rng)
        mat_scale_v = chol_res @ chol_res.T
        res_iw[i] = mat_scale_v
        res_mn[i] = sim_matgaussian(mat_mean, mat_scale_u, mat_scale_v, rng)

    return {'mn': res_mn, 'iw': res_iw}
