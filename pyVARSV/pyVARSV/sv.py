"""
Stochastic volatility updates

Each equation i has log-variances h_i1, ..., h_in following a random walk
started at h_i0 with innovation variance sigma_h,i^2. The observation
log(e_it^2) - h_it is log chi^2_1, approximated by the seven component
normal mixture of Kim, Shephard and Chib (1998).
"""

import numpy as np
from typing import List, Optional
from joblib import Parallel, delayed
from scipy.linalg import cholesky_banded, cho_solve_banded, solve_banded
from scipy.stats import invgamma

from .utils import DimensionMismatchError

# Offset added before taking logs of squared residuals
LOG_SQ_OFFSET = 1e-4

MIXTURE_PDF = np.array([0.0073, 0.10556, 0.00002, 0.04395, 0.34001, 0.24566, 0.2575])
MIXTURE_MEAN = np.array([-10.12999, -3.97281, -8.56686, 2.77786, 0.61942, 1.79518, -1.08819]) - 1.2704
MIXTURE_VAR = np.array([5.79596, 2.61369, 5.1795, 0.16735, 0.64009, 0.34023, 1.26261])


def log_sq_resid(ortho_latent: np.ndarray) -> np.ndarray:
    """log(e^2 + c) of orthogonalized residuals, guarded against log(0)."""
    return np.log(ortho_latent ** 2 + LOG_SQ_OFFSET)


def sample_mixture(sv_vec: np.ndarray, latent_vec: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Draw the mixture component of each period by inverse transform.

    Parameters
    ----------
    sv_vec : array
        Current log-volatility path (n,).
    latent_vec : array
        log squared residuals (n,).

    Returns
    -------
    array
        Component indices in 0..6.
    """
    resid = (latent_vec - sv_vec)[:, np.newaxis] - MIXTURE_MEAN
    log_prob = np.log(MIXTURE_PDF) - 0.5 * np.log(MIXTURE_VAR) - resid ** 2 / (2 * MIXTURE_VAR)
    log_prob -= log_prob.max(axis=1, keepdims=True)
    prob = np.exp(log_prob)
    cum_prob = np.cumsum(prob, axis=1)
    inv_method = rng.random(sv_vec.size) * cum_prob[:, -1]
    return np.minimum((cum_prob < inv_method[:, np.newaxis]).sum(axis=1), MIXTURE_PDF.size - 1)


def varsv_ht(sv_vec: np.ndarray,
             init_sv: float,
             sv_sig: float,
             latent_vec: np.ndarray,
             rng: np.random.Generator) -> np.ndarray:
    """
    Draw one equation's log-volatility path.

    Given mixture indicators s_t, log(e_t^2) = h_t + m_{s_t} + N(0, v_{s_t}) and
    H h = h_0 e_1 + N(0, sigma_h^2 I) with H the first difference matrix.
    The posterior of h is Gaussian with tridiagonal precision
    H'H / sigma_h^2 + diag(1 / v_s), sampled through its banded Cholesky factor.

    Parameters
    ----------
    sv_vec : array
        Previous path h_1, ..., h_n.
    init_sv : float
        Initial state h_0.
    sv_sig : float
        Innovation variance sigma_h^2.
    latent_vec : array
        log squared orthogonalized residuals.
    rng : Generator
        Random generator.

    Returns
    -------
    array
        New path (n,).
    """
    sv_vec = np.asarray(sv_vec, dtype=float)
    latent_vec = np.asarray(latent_vec, dtype=float)
    if sv_vec.shape != latent_vec.shape or sv_vec.ndim != 1:
        raise DimensionMismatchError("'sv_vec' and 'latent_vec' must be vectors of equal length.")
    num_design = sv_vec.size

    binom_latent = sample_mixture(sv_vec, latent_vec, rng)
    ds = MIXTURE_MEAN[binom_latent]
    inv_sig_s = 1 / MIXTURE_VAR[binom_latent]

    # H'H: 2 on the diagonal except 1 at the end, -1 off the diagonal
    hth_diag = np.full(num_design, 2.0)
    hth_diag[-1] = 1.0
    post_prec = np.zeros((2, num_design))
    post_prec[0, 1:] = -1 / sv_sig
    post_prec[1] = hth_diag / sv_sig + inv_sig_s

    post_rhs = inv_sig_s * (latent_vec - ds)
    post_rhs[0] += init_sv / sv_sig

    chol_upper = cholesky_banded(post_prec, lower=False)
    post_mean = cho_solve_banded((chol_upper, False), post_rhs)
    return post_mean + solve_banded((0, 1), chol_upper, rng.standard_normal(num_design))


def sample_lvol(lvol: np.ndarray,
                lvol_init: np.ndarray,
                lvol_sig: np.ndarray,
                ortho_latent: np.ndarray,
                rngs: List[np.random.Generator],
                nthreads: int = 1,
                pool: Optional[Parallel] = None) -> np.ndarray:
    """
    Draw the log-volatility paths of all equations.

    Equations are independent given the residuals, so they can be
    drawn on a thread pool. Each equation owns its generator in rngs.

    Parameters
    ----------
    lvol : array
        Previous paths (n x dim).
    lvol_init : array
        Initial states (dim,).
    lvol_sig : array
        Innovation variances (dim,).
    ortho_latent : array
        log squared orthogonalized residuals (n x dim).
    rngs : list of Generator
        One generator per equation.
    nthreads : int
        Number of worker threads, used when no pool is given.
    pool : joblib.Parallel, optional
        Open thread pool reused across iterations.

    Returns
    -------
    array
        New paths (n x dim).
    """
    dim = lvol.shape[1]
    if len(rngs) != dim:
        raise DimensionMismatchError(f"Need {dim} generators, got {len(rngs)}.")
    tasks = (
        delayed(varsv_ht)(lvol[:, t], lvol_init[t], lvol_sig[t], ortho_latent[:, t], rngs[t])
        for t in range(dim)
    )
    if pool is not None and dim > 1:
        paths = pool(tasks)
    elif nthreads > 1 and dim > 1:
        paths = Parallel(n_jobs=min(nthreads, dim), backend='threading')(tasks)
    else:
        paths = [
            varsv_ht(lvol[:, t], lvol_init[t], lvol_sig[t], ortho_latent[:, t], rngs[t])
            for t in range(dim)
        ]
    return np.column_stack(paths)


def varsv_sigh(shp: np.ndarray,
               scl: np.ndarray,
               init_sv: np.ndarray,
               h1: np.ndarray,
               rng: np.random.Generator) -> np.ndarray:
    """
    Draw the innovation variances sigma_h^2 from their inverse-gamma posterior.

    sigma_h,i^2 ~ IG((shp + n) / 2, (scl + sum_t (h_it - h_i,t-1)^2) / 2) with h_i0 = init_sv[i].

    Parameters
    ----------
    shp, scl : array
        Prior shape and scale (dim,).
    init_sv : array
        Initial states (dim,).
    h1 : array
        Log-volatility paths (n x dim).
    rng : Generator
        Random generator.
    """
    num_design = h1.shape[0]
    h_slide = np.vstack([init_sv, h1[:-1]])
    lvol_shape = (shp + num_design) / 2
    lvol_scl = (scl + np.sum((h1 - h_slide) ** 2, axis=0)) / 2
    return np.atleast_1d(invgamma.rvs(lvol_shape, scale=lvol_scl, random_state=rng))


def varsv_h0(prior_mean: np.ndarray,
             prior_prec: np.ndarray,
             h1: np.ndarray,
             sv_sig: np.ndarray,
             rng: np.random.Generator) -> np.ndarray:
    """
    Draw the initial states h_0 given the first path values.

    h_0,i | h_i1 ~ N(m_i / k_i, 1 / k_i) with k_i = prior_prec_i + 1 / sigma_h,i^2
    and m_i = prior_prec_i prior_mean_i + h_i1 / sigma_h,i^2.

    Parameters
    ----------
    prior_mean, prior_prec : array
        Prior mean and precision (dim,).
    h1 : array
        First row of the log-volatility paths (dim,).
    sv_sig : array
        Innovation variances (dim,).
    """
    post_h0_prec = prior_prec + 1 / sv_sig
    post_mean = (prior_prec * prior_mean + h1 / sv_sig) / post_h0_prec
    return post_mean + rng.standard_normal(post_mean.size) / np.sqrt(post_h0_prec)
