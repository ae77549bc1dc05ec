"""
Prior setups for VAR-SV estimation

Each shrinkage regime is described by its own configuration object:
- Minnesota (MN): fixed prior mean and precision
- Stochastic Search Variable Selection (SSVS)
- Horseshoe (HS)

plus the stochastic volatility hyperparameters shared by all regimes.
"""

import numpy as np
import warnings
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from .utils import (
    DimensionMismatchError,
    InvalidHyperparameterError,
    InvalidRegimeError,
    vectorize,
    num_lowerchol,
)


@dataclass(frozen=True)
class MinnesotaConfig:
    """
    Minnesota prior.

    The coefficient prior precision is kron(prec_diag, prior_coef_prec),
    held fixed for the whole run.

    Attributes
    ----------
    prior_coef_mean : array
        Prior mean matrix (dim_design x dim).
    prior_coef_prec : array
        Precision block shared by the equations (dim_design x dim_design).
    prec_diag : array
        Diagonal matrix of inverse residual scales (dim x dim).
    """
    prior_coef_mean: np.ndarray
    prior_coef_prec: np.ndarray
    prec_diag: np.ndarray

    name = 'MN'


@dataclass(frozen=True)
class SsvsConfig:
    """
    Stochastic Search Variable Selection prior.

    Attributes
    ----------
    coef_spike, coef_slab : array
        Spike and slab standard deviations of the lag coefficients.
    coef_slab_weight : array
        Initial slab weight of each coefficient group.
    coef_s1, coef_s2 : float
        Beta prior shapes of the coefficient slab weights.
    chol_spike, chol_slab : array
        Spike and slab standard deviations of the Cholesky loadings.
    chol_slab_weight : float
        Initial slab weight of the Cholesky loadings.
    chol_s1, chol_s2 : float
        Beta prior shapes of the loading slab weight.
    mean_non : array
        Prior mean of the intercepts (not subject to selection).
    sd_non : float
        Prior sd of the intercepts.
    """
    coef_spike: np.ndarray
    coef_slab: np.ndarray
    coef_slab_weight: np.ndarray
    coef_s1: float
    coef_s2: float
    chol_spike: np.ndarray
    chol_slab: np.ndarray
    chol_slab_weight: float
    chol_s1: float
    chol_s2: float
    mean_non: np.ndarray
    sd_non: float

    name = 'SSVS'


@dataclass(frozen=True)
class HorseshoeConfig:
    """
    Horseshoe prior. Holds the starting local and global scales.
    """
    init_local: np.ndarray
    init_global: np.ndarray
    init_contem_local: np.ndarray
    init_contem_global: float

    name = 'HS'


@dataclass(frozen=True)
class SvConfig:
    """
    Stochastic volatility hyperparameters (per equation).

    sigma_h^2 ~ IG(prior_sig_shp / 2, prior_sig_scl / 2) and
    h_0 ~ N(prior_init_mean, 1 / prior_init_prec).
    """
    prior_sig_shp: float = 3.0
    prior_sig_scl: float = 0.01
    prior_init_mean: float = 1.0
    prior_init_prec: float = 0.1


PriorConfig = Union[MinnesotaConfig, SsvsConfig, HorseshoeConfig]

PRIOR_NAMES = {
    'MN': 'Minnesota prior',
    'SSVS': 'Stochastic Search Variable Selection prior',
    'HS': 'Horseshoe prior',
}

DEFAULT_HYPERPARA = {
    'MN': {
        'sigma': None,
        'lambda': 0.1,
        'delta': 0.0,
        'eps': 1e-4,
    },
    'SSVS': {
        'coef_spike': 0.1,
        'coef_slab': 5.0,
        'coef_mixture': 0.5,
        'coef_s1': 1.0,
        'coef_s2': 1.0,
        'chol_spike': 0.1,
        'chol_slab': 5.0,
        'chol_mixture': 0.5,
        'chol_s1': 1.0,
        'chol_s2': 1.0,
        'mean_non': 0.0,
        'sd_non': 0.1,
    },
    'HS': {
        'local_sparsity': 1.0,
        'global_sparsity': 1.0,
        'contem_local_sparsity': 1.0,
        'contem_global_sparsity': 1.0,
    },
    'SV': {
        'prior_sig_shp': 3.0,
        'prior_sig_scl': 0.01,
        'prior_init_mean': 1.0,
        'prior_init_prec': 0.1,
    },
}


def _fill(value, size: int, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float).ravel()
    if arr.size == 1:
        return np.full(size, arr[0])
    if arr.size != size:
        raise DimensionMismatchError(f"'{name}' must have length 1 or {size}, got {arr.size}.")
    return arr


def _merge_hyperpara(key: str, hyperpara: Optional[Dict]) -> Dict:
    """
    Merge user values over the defaults of one table.

    A prior table accepts its own keys and the SV keys; anything else
    warns. The SV table is filled from the same dictionary as the prior,
    so it only warns on keys no table knows.
    """
    merged = dict(DEFAULT_HYPERPARA[key])
    if key == 'SV':
        accepted = set().union(*DEFAULT_HYPERPARA.values())
    else:
        accepted = set(merged) | set(DEFAULT_HYPERPARA['SV'])
    if hyperpara:
        for name, value in hyperpara.items():
            if name in merged:
                merged[name] = value
            elif name not in accepted:
                warnings.warn(f"Unknown hyperparameter for {key}: {name}. Ignoring.")
    return merged


def _check_positive(value, name: str):
    arr = np.asarray(value, dtype=float)
    if not np.all(np.isfinite(arr)) or np.any(arr <= 0):
        raise InvalidHyperparameterError(f"'{name}' must be positive.")


def _check_weight(value, name: str):
    arr = np.asarray(value, dtype=float)
    if np.any(np.isnan(arr)) or np.any(arr < 0) or np.any(arr > 1):
        raise InvalidHyperparameterError(f"'{name}' must lie in [0, 1].")


def check_config(config: 'PriorConfig'):
    """
    Range checks of SSVS and Horseshoe hyperparameters.

    Beta shapes, spike and slab sds and Horseshoe scales must be positive,
    slab weights must lie in [0, 1]. Minnesota moments are taken as given.
    """
    if isinstance(config, SsvsConfig):
        for name in ('coef_spike', 'coef_slab', 'coef_s1', 'coef_s2',
                     'chol_spike', 'chol_slab', 'chol_s1', 'chol_s2', 'sd_non'):
            _check_positive(getattr(config, name), name)
        _check_weight(config.coef_slab_weight, 'coef_mixture')
        _check_weight(config.chol_slab_weight, 'chol_mixture')
    elif isinstance(config, HorseshoeConfig):
        for name in ('init_local', 'init_global', 'init_contem_local', 'init_contem_global'):
            _check_positive(getattr(config, name), name)


def minnesota_moments(dim: int,
                      dim_design: int,
                      sigma: np.ndarray,
                      lambda_: float,
                      delta: Union[float, np.ndarray],
                      eps: float = 1e-4,
                      include_mean: bool = False) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Construct Minnesota prior moments.

    The implied prior variance of the coefficient of lag l of variable k in
    equation i is (lambda / l)^2 * sigma_i^2 / sigma_k^2; intercepts get
    precision eps^2.

    Parameters
    ----------
    dim : int
        Number of endogenous variables.
    dim_design : int
        Number of columns of the design matrix.
    sigma : array
        Residual scale of each variable.
    lambda_ : float
        Overall tightness.
    delta : float or array
        Prior mean of the first own lag.
    eps : float
        Precision scale of the intercept.
    include_mean : bool
        Whether the last design column is the intercept.

    Returns
    -------
    tuple
        (prior_coef_mean, prior_coef_prec, prec_diag)
    """
    sigma = _fill(sigma, dim, 'sigma')
    delta = _fill(delta, dim, 'delta')
    if lambda_ <= 0:
        raise InvalidHyperparameterError("'lambda' must be positive.")
    num_lag_rows = dim_design - int(include_mean)
    if num_lag_rows % dim != 0:
        raise DimensionMismatchError(
            f"Design has {num_lag_rows} lag columns, not a multiple of dim={dim}."
        )
    var_lag = num_lag_rows // dim

    prec_block = np.zeros(dim_design)
    for pp in range(1, var_lag + 1):
        for kk in range(dim):
            prec_block[(pp - 1) * dim + kk] = (pp * sigma[kk] / lambda_) ** 2
    if include_mean:
        prec_block[-1] = eps ** 2

    prior_coef_mean = np.zeros((dim_design, dim))
    if var_lag > 0:
        prior_coef_mean[:dim, :dim] = np.diag(delta)
    return prior_coef_mean, np.diag(prec_block), np.diag(1 / sigma ** 2)


def set_prior(prior: str,
              dim: int,
              dim_design: int,
              hyperpara: Optional[Dict] = None,
              num_grp: int = 1,
              include_mean: bool = False,
              y: Optional[np.ndarray] = None) -> PriorConfig:
    """
    Build a prior configuration from a prior tag and a hyperparameter dictionary.

    Parameters
    ----------
    prior : str
        'MN', 'SSVS' or 'HS'.
    dim : int
        Number of endogenous variables.
    dim_design : int
        Number of design columns (including the intercept if any).
    hyperpara : dict, optional
        Overrides of the default hyperparameters.
    num_grp : int
        Number of coefficient groups.
    include_mean : bool
        Whether the last design column is the intercept.
    y : array, optional
        Response matrix, used for the default Minnesota scales.

    Returns
    -------
    MinnesotaConfig, SsvsConfig or HorseshoeConfig
    """
    if prior not in ('MN', 'SSVS', 'HS'):
        raise InvalidRegimeError(f"'prior' must be one of {list(PRIOR_NAMES)}, got {prior!r}.")
    para = _merge_hyperpara(prior, hyperpara)
    num_coef = dim * dim_design
    num_alpha = num_coef - dim if include_mean else num_coef
    nchol = num_lowerchol(dim)

    if prior == 'MN':
        sigma = para['sigma']
        if sigma is None:
            sigma = np.ones(dim) if y is None else np.std(np.asarray(y, dtype=float), axis=0, ddof=1)
        mean, prec, prec_diag = minnesota_moments(
            dim, dim_design, sigma, para['lambda'], para['delta'], para['eps'], include_mean
        )
        return MinnesotaConfig(prior_coef_mean=mean, prior_coef_prec=prec, prec_diag=prec_diag)

    if prior == 'SSVS':
        config = SsvsConfig(
            coef_spike=_fill(para['coef_spike'], num_alpha, 'coef_spike'),
            coef_slab=_fill(para['coef_slab'], num_alpha, 'coef_slab'),
            coef_slab_weight=_fill(para['coef_mixture'], num_grp, 'coef_mixture'),
            coef_s1=float(para['coef_s1']),
            coef_s2=float(para['coef_s2']),
            chol_spike=_fill(para['chol_spike'], nchol, 'chol_spike'),
            chol_slab=_fill(para['chol_slab'], nchol, 'chol_slab'),
            chol_slab_weight=float(para['chol_mixture']),
            chol_s1=float(para['chol_s1']),
            chol_s2=float(para['chol_s2']),
            mean_non=_fill(para['mean_non'], dim, 'mean_non'),
            sd_non=float(para['sd_non']),
        )
    else:
        config = HorseshoeConfig(
            init_local=_fill(para['local_sparsity'], num_coef, 'local_sparsity'),
            init_global=_fill(para['global_sparsity'], num_grp, 'global_sparsity'),
            init_contem_local=_fill(para['contem_local_sparsity'], nchol, 'contem_local_sparsity'),
            init_contem_global=float(para['contem_global_sparsity']),
        )
    check_config(config)
    return config


def set_sv(hyperpara: Optional[Dict] = None) -> SvConfig:
    """Build the stochastic volatility hyperparameters from a dictionary."""
    para = _merge_hyperpara('SV', hyperpara)
    if para['prior_sig_shp'] <= 0 or para['prior_sig_scl'] <= 0 or para['prior_init_prec'] <= 0:
        raise InvalidHyperparameterError("SV shape, scale and precision must be positive.")
    return SvConfig(**{key: float(value) for key, value in para.items()})


def build_prior(config: PriorConfig,
                dim: int,
                dim_design: int,
                include_mean: bool = False,
                grp_index: Optional[np.ndarray] = None
                ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Prior mean and starting precision of the coefficients and loadings.

    Only the Minnesota precision stays fixed; SSVS and Horseshoe
    precisions are rebuilt every iteration from the shrinkage state.

    Parameters
    ----------
    config : MinnesotaConfig, SsvsConfig or HorseshoeConfig
        Prior configuration.
    dim : int
        Number of equations.
    dim_design : int
        Number of design columns.
    include_mean : bool
        Whether the last design column is the intercept.
    grp_index : array, optional
        Group position of each coefficient (Horseshoe only).

    Returns
    -------
    tuple
        (coef_mean, coef_prec, chol_mean, chol_prec)
    """
    num_coef = dim * dim_design
    nchol = num_lowerchol(dim)
    chol_mean = np.zeros(nchol)
    chol_prec = np.eye(nchol)

    if isinstance(config, MinnesotaConfig):
        if config.prior_coef_mean.shape != (dim_design, dim):
            raise DimensionMismatchError(
                f"'prior_coef_mean' must be {(dim_design, dim)}, got {config.prior_coef_mean.shape}."
            )
        if config.prior_coef_prec.shape != (dim_design, dim_design):
            raise DimensionMismatchError(
                f"'prior_coef_prec' must be {(dim_design, dim_design)}, got {config.prior_coef_prec.shape}."
            )
        if config.prec_diag.shape != (dim, dim):
            raise DimensionMismatchError(
                f"'prec_diag' must be {(dim, dim)}, got {config.prec_diag.shape}."
            )
        coef_mean = vectorize(config.prior_coef_mean)
        coef_prec = np.kron(config.prec_diag, config.prior_coef_prec)
        return coef_mean, coef_prec, chol_mean, chol_prec

    if isinstance(config, SsvsConfig):
        coef_mean = np.zeros(num_coef)
        prior_sd = np.empty(num_coef)
        if include_mean:
            rows = dim_design - 1
            for j in range(dim):
                prior_sd[j * dim_design:j * dim_design + rows] = config.coef_slab[j * rows:(j + 1) * rows]
                prior_sd[j * dim_design + rows] = config.sd_non
                coef_mean[j * dim_design + rows] = config.mean_non[j]
        else:
            prior_sd[:] = config.coef_slab
        chol_prec = np.diag(1 / config.chol_slab ** 2)
        return coef_mean, np.diag(1 / prior_sd ** 2), chol_mean, chol_prec

    if isinstance(config, HorseshoeConfig):
        if grp_index is None:
            grp_index = np.zeros(num_coef, dtype=int)
        global_vec = np.asarray(config.init_global)[grp_index]
        coef_prec = np.diag(1 / (global_vec * config.init_local) ** 2)
        chol_prec = np.diag(1 / (config.init_contem_global * config.init_contem_local) ** 2)
        return np.zeros(num_coef), coef_prec, chol_mean, chol_prec

    raise InvalidRegimeError(f"Unknown prior configuration: {type(config).__name__}.")
