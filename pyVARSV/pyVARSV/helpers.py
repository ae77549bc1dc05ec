"""
Helper functions for VAR-SV estimation

Conditional posterior draws shared by the Gibbs steps: the conjugate
normal regression, and the SSVS and Horseshoe shrinkage updates.
"""

import numpy as np
from typing import Tuple
from scipy.linalg import cholesky, cho_solve, solve_triangular
from scipy.special import expit
from scipy.stats import norm, invgamma, beta

from .utils import DimensionMismatchError, num_lowerchol


def build_coef_design(x: np.ndarray, dim: int) -> np.ndarray:
    """
    Per-period design blocks of the SUR form y_t = (I_dim kron x_t') vec(A) + e_t.

    Parameters
    ----------
    x : array
        Design matrix (n x dim_design).
    dim : int
        Number of equations.

    Returns
    -------
    array
        Blocks of shape (n, dim, dim * dim_design).
    """
    num_design, dim_design = x.shape
    blocks = np.zeros((num_design, dim, dim * dim_design))
    for j in range(dim):
        blocks[:, j, j * dim_design:(j + 1) * dim_design] = x
    return blocks


def build_contem_design(latent_innov: np.ndarray) -> np.ndarray:
    """
    Per-period design blocks of the loading regression e_t = E_t a + eta_t.

    Row j of block t holds -e_t[:j] in the columns of (a_j1, ..., a_j,j-1).

    Parameters
    ----------
    latent_innov : array
        Reduced form residuals (n x dim).

    Returns
    -------
    array
        Blocks of shape (n, dim, dim * (dim - 1) / 2).
    """
    num_design, dim = latent_innov.shape
    blocks = np.zeros((num_design, dim, num_lowerchol(dim)))
    reginnov_id = 0
    for j in range(1, dim):
        blocks[:, j, reginnov_id:reginnov_id + j] = -latent_innov[:, :j]
        reginnov_id += j
    return blocks


def build_innov_prec(chol_lower: np.ndarray, lvol: np.ndarray) -> np.ndarray:
    """
    Residual precision blocks Sigma_t^{-1} = L' D_t^{-1} L, D_t = diag(exp(h_t)).

    Returns
    -------
    array
        Blocks of shape (n, dim, dim).
    """
    inv_vol = np.exp(-lvol)
    return np.einsum('ji,tj,jk->tik', chol_lower, inv_vol, chol_lower)


def varsv_regression(design: np.ndarray,
                     response: np.ndarray,
                     prior_mean: np.ndarray,
                     prior_prec: np.ndarray,
                     innov_prec: np.ndarray,
                     rng: np.random.Generator) -> np.ndarray:
    """
    Draw from the conjugate normal posterior of a linear regression with
    block-diagonal residual precision.

    Posterior precision P = prior_prec + sum_t X_t' O_t X_t and mean
    P^{-1} (prior_prec m + sum_t X_t' O_t y_t). The draw uses P = U'U.

    Parameters
    ----------
    design : array
        Design blocks (n x m x p).
    response : array
        Response blocks (n x m).
    prior_mean : array
        Prior mean (p,).
    prior_prec : array
        Prior precision (p x p).
    innov_prec : array
        Residual precision blocks (n x m x m).
    rng : Generator
        Random generator.

    Returns
    -------
    array
        One draw (p,).
    """
    design = np.asarray(design, dtype=float)
    if design.ndim != 3:
        raise DimensionMismatchError("'design' must have shape (n, m, p).")
    num_design, dim, num_param = design.shape
    if response.shape != (num_design, dim):
        raise DimensionMismatchError(
            f"'response' must be {(num_design, dim)}, got {response.shape}."
        )
    if innov_prec.shape != (num_design, dim, dim):
        raise DimensionMismatchError(
            f"'innov_prec' must be {(num_design, dim, dim)}, got {innov_prec.shape}."
        )
    if prior_mean.shape != (num_param,) or prior_prec.shape != (num_param, num_param):
        raise DimensionMismatchError("Prior moments do not match the number of regressors.")

    xt_prec = np.einsum('tmp,tmq->tpq', design, innov_prec)
    post_prec = prior_prec + np.einsum('tpq,tqr->pr', xt_prec, design)
    post_rhs = prior_prec @ prior_mean + np.einsum('tpq,tq->p', xt_prec, response)
    if not np.all(np.isfinite(post_prec)) or not np.all(np.isfinite(post_rhs)):
        raise np.linalg.LinAlgError("Non-finite posterior precision.")

    chol_upper = cholesky(post_prec, lower=False)
    post_mean = cho_solve((chol_upper, False), post_rhs)
    return post_mean + solve_triangular(chol_upper, rng.standard_normal(num_param), lower=False)


def group_index(grp_vec: np.ndarray, grp_id: np.ndarray) -> np.ndarray:
    """
    Position in grp_id of every entry of grp_vec.
    """
    grp_vec = np.asarray(grp_vec).ravel()
    grp_id = np.asarray(grp_id).ravel()
    lookup = {gid: pos for pos, gid in enumerate(grp_id.tolist())}
    unknown = set(grp_vec.tolist()) - set(lookup)
    if unknown:
        raise ValueError(f"Group ids {sorted(unknown)} are not in 'grp_id'.")
    return np.array([lookup[gid] for gid in grp_vec.tolist()], dtype=int)


# SSVS -----------------------------------------------------------------------

def build_ssvs_sd(spike_sd: np.ndarray, slab_sd: np.ndarray, mixture_dummy: np.ndarray) -> np.ndarray:
    """Prior sd: slab where the dummy is one, spike otherwise."""
    return np.where(np.asarray(mixture_dummy) == 1, slab_sd, spike_sd)


def ssvs_dummy(param_obs: np.ndarray,
               sd_slab: np.ndarray,
               sd_spike: np.ndarray,
               slab_weight: np.ndarray,
               rng: np.random.Generator) -> np.ndarray:
    """
    Draw SSVS inclusion indicators.

    P(gamma_j = 1) = u1 / (u1 + u2) with u1 = N(b_j; 0, slab_j) w_j and
    u2 = N(b_j; 0, spike_j) (1 - w_j).

    Returns
    -------
    array
        Vector of zeros and ones.
    """
    param_obs = np.asarray(param_obs, dtype=float)
    with np.errstate(divide='ignore'):
        log_u1 = np.log(slab_weight) + norm.logpdf(param_obs, 0, sd_slab)
        log_u2 = np.log1p(-np.asarray(slab_weight, dtype=float)) + norm.logpdf(param_obs, 0, sd_spike)
    prob = expit(log_u1 - log_u2)
    return (rng.random(param_obs.size) < prob).astype(float)


def ssvs_weight(param_dummy: np.ndarray, s1: float, s2: float, rng: np.random.Generator) -> float:
    """Draw one slab weight from Beta(s1 + #included, s2 + #excluded)."""
    num_latent = param_dummy.size
    num_incl = param_dummy.sum()
    return float(beta.rvs(s1 + num_incl, s2 + num_latent - num_incl, random_state=rng))


def ssvs_mn_weight(grp_vec: np.ndarray,
                   grp_id: np.ndarray,
                   param_dummy: np.ndarray,
                   s1: float,
                   s2: float,
                   rng: np.random.Generator) -> np.ndarray:
    """
    Draw one slab weight per coefficient group.

    Parameters
    ----------
    grp_vec : array
        Group id of each coefficient.
    grp_id : array
        Unique group ids.
    param_dummy : array
        Current inclusion indicators.
    s1, s2 : float
        Beta prior shapes.
    rng : Generator
        Random generator.

    Returns
    -------
    array
        Slab weights, ordered as grp_id.
    """
    grp_vec = np.asarray(grp_vec).ravel()
    if grp_vec.size != param_dummy.size:
        raise DimensionMismatchError("'grp_vec' and 'param_dummy' lengths differ.")
    res = np.empty(len(grp_id))
    for j, gid in enumerate(np.asarray(grp_id).ravel()):
        in_group = param_dummy[grp_vec == gid]
        res[j] = ssvs_weight(in_group, s1, s2, rng)
    return res


# Horseshoe ------------------------------------------------------------------

def build_shrink_mat(global_hyperparam: np.ndarray, local_hyperparam: np.ndarray) -> np.ndarray:
    """Horseshoe prior precision diag(1 / (tau_j^2 lambda_j^2))."""
    return np.diag(1 / (np.asarray(global_hyperparam) * np.asarray(local_hyperparam)) ** 2)


def shrinkage_factor(prior_prec: np.ndarray) -> np.ndarray:
    """
    diag((I + prior_prec)^{-1}) for a diagonal prior precision.
    """
    return 1 / (1 + np.diag(prior_prec))


def horseshoe_latent(hyperparam: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Auxiliary variables nu_j ~ IG(1, 1 + 1 / hyperparam_j^2)."""
    hyperparam = np.atleast_1d(np.asarray(hyperparam, dtype=float))
    return invgamma.rvs(1.0, scale=1 + 1 / hyperparam ** 2, random_state=rng).reshape(hyperparam.shape)


def horseshoe_local_sparsity(local_latent: np.ndarray,
                             global_hyperparam: np.ndarray,
                             coef_vec: np.ndarray,
                             rng: np.random.Generator,
                             prior_var: float = 1.0) -> np.ndarray:
    """
    Local scales lambda_j^2 ~ IG(1, 1 / nu_j + b_j^2 / (2 tau_j^2)).

    Returns the scales lambda_j (not squared).
    """
    invgam_scl = 1 / local_latent + coef_vec ** 2 / (2 * prior_var * global_hyperparam ** 2)
    return np.sqrt(invgamma.rvs(1.0, scale=invgam_scl, random_state=rng)).reshape(coef_vec.shape)


def horseshoe_global_sparsity(global_latent: float,
                              local_hyperparam: np.ndarray,
                              coef_vec: np.ndarray,
                              rng: np.random.Generator,
                              prior_var: float = 1.0) -> float:
    """
    Global scale tau^2 ~ IG((n + 1) / 2, 1 / xi + sum b_j^2 / (2 lambda_j^2)).
    """
    invgam_shape = (coef_vec.size + 1) / 2
    invgam_scl = 1 / global_latent + np.sum(coef_vec ** 2 / (2 * prior_var * local_hyperparam ** 2))
    return float(np.sqrt(invgamma.rvs(invgam_shape, scale=invgam_scl, random_state=rng)))


def horseshoe_mn_global_sparsity(grp_vec: np.ndarray,
                                 grp_id: np.ndarray,
                                 global_latent: np.ndarray,
                                 local_hyperparam: np.ndarray,
                                 coef_vec: np.ndarray,
                                 rng: np.random.Generator,
                                 prior_var: float = 1.0) -> np.ndarray:
    """
    Group-wise global scales. Each group uses only its own coefficients.

    Returns
    -------
    array
        Global scales, ordered as grp_id.
    """
    grp_vec = np.asarray(grp_vec).ravel()
    if grp_vec.size != coef_vec.size:
        raise DimensionMismatchError("'grp_vec' and 'coef_vec' lengths differ.")
    res = np.empty(len(grp_id))
    for j, gid in enumerate(np.asarray(grp_id).ravel()):
        in_group = grp_vec == gid
        res[j] = horseshoe_global_sparsity(
            global_latent[j], local_hyperparam[in_group], coef_vec[in_group], rng, prior_var
        )
    return res


def ols_coef(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Least squares coefficients and residuals, used as starting values.
    """
    try:
        chol_upper = cholesky(x.T @ x, lower=False)
        coef = cho_solve((chol_upper, False), x.T @ y)
    except np.linalg.LinAlgError:
        coef = np.linalg.lstsq(x, y, rcond=None)[0]
    return coef, y - x @ coef
