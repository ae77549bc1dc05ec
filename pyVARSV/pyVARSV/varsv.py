"""
VAR-SV estimation module with Gibbs sampling

Each iteration draws, in this order,
1. the VAR coefficients (and the coefficient shrinkage state),
2. the log-volatility paths,
3. the contemporaneous Cholesky loadings (and their shrinkage state),
4. the log-volatility innovation variances,
5. the log-volatility initial states.

Supported priors:
- Minnesota (MN)
- Stochastic Search Variable Selection (SSVS)
- Horseshoe (HS)
"""

import logging
import warnings
from contextlib import nullcontext
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Union

import numpy as np
from joblib import Parallel

from . import helpers
from . import sv
from .priors import (
    HorseshoeConfig,
    MinnesotaConfig,
    PriorConfig,
    SsvsConfig,
    SvConfig,
    build_prior,
    check_config,
)
from .utils import (
    DimensionMismatchError,
    InvalidHyperparameterError,
    InvalidRegimeError,
    build_inv_lower,
    check_rng,
    num_lowerchol,
    unvectorize,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SsvsState:
    """SSVS indicators and slab weights."""
    coef_dummy: np.ndarray
    coef_weight: np.ndarray
    contem_dummy: np.ndarray
    contem_weight: float


@dataclass(frozen=True)
class HorseshoeState:
    """Horseshoe local and global scales, with the shrinkage factors they imply."""
    local: np.ndarray
    group_global: np.ndarray
    contem_local: np.ndarray
    contem_global: float
    shrink: np.ndarray


@dataclass(frozen=True)
class IterState:
    """
    Current draws of every sampled quantity.

    Attributes
    ----------
    coef : array
        vec(A), A is dim_design x dim.
    contem : array
        Row-wise strictly lower Cholesky loadings.
    lvol : array
        Log-volatility paths (n x dim).
    lvol_init : array
        Initial states h_0 (dim,).
    lvol_sig : array
        Innovation variances sigma_h^2 (dim,).
    shrinkage : SsvsState or HorseshoeState, optional
        Regime specific state, None for Minnesota.
    """
    coef: np.ndarray
    contem: np.ndarray
    lvol: np.ndarray
    lvol_init: np.ndarray
    lvol_sig: np.ndarray
    shrinkage: Optional[Union[SsvsState, HorseshoeState]] = None


@dataclass(frozen=True)
class VarsvSetup:
    """Quantities fixed for the whole run."""
    x: np.ndarray
    y: np.ndarray
    prior: PriorConfig
    sv_config: SvConfig
    include_mean: bool
    coef_design: np.ndarray
    coef_mean: np.ndarray
    coef_prec: np.ndarray
    chol_mean: np.ndarray
    chol_prec: np.ndarray
    grp_id: np.ndarray
    grp_vec: np.ndarray
    grp_index: np.ndarray
    alpha_index: np.ndarray

    @property
    def dim(self) -> int:
        return self.y.shape[1]

    @property
    def dim_design(self) -> int:
        return self.x.shape[1]

    @property
    def num_design(self) -> int:
        return self.y.shape[0]

    @property
    def num_coef(self) -> int:
        return self.dim * self.dim_design

    @property
    def num_lowerchol(self) -> int:
        return num_lowerchol(self.dim)


def build_setup(x: np.ndarray,
                y: np.ndarray,
                prior: PriorConfig,
                grp_id: Optional[np.ndarray] = None,
                grp_mat: Optional[np.ndarray] = None,
                include_mean: bool = False,
                sv_config: Optional[SvConfig] = None) -> VarsvSetup:
    """
    Validate the inputs and precompute the run constants.

    Parameters
    ----------
    x : array
        Design matrix (n x dim_design). With include_mean, the last column
        is the intercept.
    y : array
        Response matrix (n x dim).
    prior : MinnesotaConfig, SsvsConfig or HorseshoeConfig
        Prior configuration.
    grp_id : array, optional
        Unique group ids. Defaults to a single group.
    grp_mat : array, optional
        Group id of every coefficient (dim_design x dim). Defaults to one group.
    include_mean : bool
        Whether the model has an intercept.
    sv_config : SvConfig, optional
        Stochastic volatility hyperparameters.

    Returns
    -------
    VarsvSetup
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.ndim != 2 or y.ndim != 2:
        raise DimensionMismatchError("'x' and 'y' must be matrices.")
    if x.shape[0] != y.shape[0]:
        raise DimensionMismatchError(
            f"'x' has {x.shape[0]} rows but 'y' has {y.shape[0]}."
        )
    num_design, dim_design = x.shape
    dim = y.shape[1]
    if not isinstance(prior, (MinnesotaConfig, SsvsConfig, HorseshoeConfig)):
        raise InvalidRegimeError(f"Unknown prior configuration: {type(prior).__name__}.")
    check_config(prior)

    if grp_mat is None:
        grp_mat = np.ones((dim_design, dim), dtype=int)
    grp_mat = np.asarray(grp_mat)
    if grp_mat.shape != (dim_design, dim):
        raise DimensionMismatchError(
            f"'grp_mat' must be {(dim_design, dim)}, got {grp_mat.shape}."
        )
    if grp_id is None:
        grp_id = np.unique(grp_mat)
    grp_id = np.asarray(grp_id).ravel()
    grp_vec = grp_mat.flatten('F')
    grp_index = helpers.group_index(grp_vec, grp_id)

    # lag coefficients, i.e. every coefficient except the intercepts
    num_rows = dim_design - 1 if include_mean else dim_design
    alpha_index = np.concatenate(
        [np.arange(j * dim_design, j * dim_design + num_rows) for j in range(dim)]
    ).astype(int)

    if isinstance(prior, SsvsConfig):
        if prior.coef_spike.size != alpha_index.size or prior.coef_slab.size != alpha_index.size:
            raise DimensionMismatchError("SSVS spike/slab sd must have one entry per lag coefficient.")
        if prior.coef_slab_weight.size != grp_id.size:
            raise DimensionMismatchError("'coef_slab_weight' must have one entry per group.")
        if prior.chol_spike.size != num_lowerchol(dim) or prior.chol_slab.size != num_lowerchol(dim):
            raise DimensionMismatchError("Cholesky spike/slab sd must have dim * (dim - 1) / 2 entries.")
    elif isinstance(prior, HorseshoeConfig):
        if prior.init_local.size != dim * dim_design:
            raise DimensionMismatchError("'init_local' must have one entry per coefficient.")
        if prior.init_global.size != grp_id.size:
            raise DimensionMismatchError("'init_global' must have one entry per group.")
        if prior.init_contem_local.size != num_lowerchol(dim):
            raise DimensionMismatchError("'init_contem_local' must have dim * (dim - 1) / 2 entries.")

    coef_mean, coef_prec, chol_mean, chol_prec = build_prior(
        prior, dim, dim_design, include_mean, grp_index
    )
    return VarsvSetup(
        x=x, y=y, prior=prior,
        sv_config=sv_config if sv_config is not None else SvConfig(),
        include_mean=include_mean,
        coef_design=helpers.build_coef_design(x, dim),
        coef_mean=coef_mean, coef_prec=coef_prec,
        chol_mean=chol_mean, chol_prec=chol_prec,
        grp_id=grp_id, grp_vec=grp_vec, grp_index=grp_index,
        alpha_index=alpha_index,
    )


def initial_state(setup: VarsvSetup) -> IterState:
    """
    Starting values: least squares coefficients, zero loadings,
    h_0 = log of the mean squared residual, flat paths and sigma_h^2 = 0.1.
    """
    coef_ols, resid = helpers.ols_coef(setup.x, setup.y)
    lvol_init = np.log(np.mean(resid ** 2, axis=0))
    prior = setup.prior
    shrinkage = None
    if isinstance(prior, SsvsConfig):
        shrinkage = SsvsState(
            coef_dummy=np.ones(setup.alpha_index.size),
            coef_weight=np.array(prior.coef_slab_weight, dtype=float),
            contem_dummy=np.ones(setup.num_lowerchol),
            contem_weight=float(prior.chol_slab_weight),
        )
    elif isinstance(prior, HorseshoeConfig):
        shrinkage = HorseshoeState(
            local=np.array(prior.init_local, dtype=float),
            group_global=np.array(prior.init_global, dtype=float),
            contem_local=np.array(prior.init_contem_local, dtype=float),
            contem_global=float(prior.init_contem_global),
            shrink=helpers.shrinkage_factor(setup.coef_prec),
        )
    return IterState(
        coef=coef_ols.flatten('F'),
        contem=np.zeros(setup.num_lowerchol),
        lvol=np.tile(lvol_init, (setup.num_design, 1)),
        lvol_init=lvol_init,
        lvol_sig=np.full(setup.dim, 0.1),
        shrinkage=shrinkage,
    )


def _latent_innov(state: IterState, setup: VarsvSetup) -> np.ndarray:
    coef_mat = unvectorize(state.coef, setup.dim_design, setup.dim)
    return setup.y - setup.x @ coef_mat


def _ssvs_coef_prec(shrinkage: SsvsState, setup: VarsvSetup) -> np.ndarray:
    prior = setup.prior
    prior_sd = np.full(setup.num_coef, prior.sd_non)
    prior_sd[setup.alpha_index] = helpers.build_ssvs_sd(
        prior.coef_spike, prior.coef_slab, shrinkage.coef_dummy
    )
    return np.diag(1 / prior_sd ** 2)


def draw_coef(state: IterState, setup: VarsvSetup, rng: np.random.Generator) -> IterState:
    """
    Step 1: VAR coefficients and the coefficient shrinkage state.

    Uses the previous loadings and log-volatilities for the residual precision.
    """
    chol_lower = build_inv_lower(setup.dim, state.contem)
    prec_stack = helpers.build_innov_prec(chol_lower, state.lvol)
    prior = setup.prior
    shrinkage = state.shrinkage

    if isinstance(prior, MinnesotaConfig):
        prior_prec = setup.coef_prec
    elif isinstance(prior, SsvsConfig):
        prior_prec = _ssvs_coef_prec(shrinkage, setup)
    else:
        global_shrinkage = shrinkage.group_global[setup.grp_index]
        prior_prec = helpers.build_shrink_mat(global_shrinkage, shrinkage.local)

    coef = helpers.varsv_regression(
        setup.coef_design, setup.y, setup.coef_mean, prior_prec, prec_stack, rng
    )

    if isinstance(prior, SsvsConfig):
        alpha = coef[setup.alpha_index]
        slab_weight = shrinkage.coef_weight[setup.grp_index[setup.alpha_index]]
        coef_dummy = helpers.ssvs_dummy(alpha, prior.coef_slab, prior.coef_spike, slab_weight, rng)
        coef_weight = helpers.ssvs_mn_weight(
            setup.grp_vec[setup.alpha_index], setup.grp_id, coef_dummy,
            prior.coef_s1, prior.coef_s2, rng
        )
        shrinkage = replace(shrinkage, coef_dummy=coef_dummy, coef_weight=coef_weight)
    elif isinstance(prior, HorseshoeConfig):
        latent_local = helpers.horseshoe_latent(shrinkage.local, rng)
        latent_global = helpers.horseshoe_latent(shrinkage.group_global, rng)
        local = helpers.horseshoe_local_sparsity(latent_local, global_shrinkage, coef, rng)
        group_global = helpers.horseshoe_mn_global_sparsity(
            setup.grp_vec, setup.grp_id, latent_global, local, coef, rng
        )
        shrink = helpers.shrinkage_factor(
            helpers.build_shrink_mat(group_global[setup.grp_index], local)
        )
        shrinkage = replace(shrinkage, local=local, group_global=group_global, shrink=shrink)

    return replace(state, coef=coef, shrinkage=shrinkage)


def draw_lvol(state: IterState,
              setup: VarsvSetup,
              rng: np.random.Generator,
              nthreads: int = 1,
              pool: Optional[Parallel] = None) -> IterState:
    """
    Step 2: log-volatility paths given the new coefficients.

    The per-equation generators are seeded from draws of rng itself, so the
    step depends only on the bit state of rng and not on nthreads.
    """
    chol_lower = build_inv_lower(setup.dim, state.contem)
    ortho_latent = sv.log_sq_resid(_latent_innov(state, setup) @ chol_lower.T)
    seed_seq = np.random.SeedSequence(rng.integers(2 ** 63, size=4))
    rngs = [np.random.default_rng(child) for child in seed_seq.spawn(setup.dim)]
    lvol = sv.sample_lvol(
        state.lvol, state.lvol_init, state.lvol_sig, ortho_latent, rngs, nthreads, pool
    )
    return replace(state, lvol=lvol)


def draw_contem(state: IterState, setup: VarsvSetup, rng: np.random.Generator) -> IterState:
    """
    Step 3: Cholesky loadings given the new coefficients and paths.

    The loading shrinkage state is refreshed from the previous loadings first.
    """
    if setup.num_lowerchol == 0:
        return state
    prior = setup.prior
    shrinkage = state.shrinkage
    prior_prec = setup.chol_prec

    if isinstance(prior, SsvsConfig):
        contem_dummy = helpers.ssvs_dummy(
            state.contem, prior.chol_slab, prior.chol_spike, shrinkage.contem_weight, rng
        )
        contem_weight = helpers.ssvs_weight(contem_dummy, prior.chol_s1, prior.chol_s2, rng)
        prior_prec = np.diag(
            1 / helpers.build_ssvs_sd(prior.chol_spike, prior.chol_slab, contem_dummy) ** 2
        )
        shrinkage = replace(shrinkage, contem_dummy=contem_dummy, contem_weight=contem_weight)
    elif isinstance(prior, HorseshoeConfig):
        latent_contem_local = helpers.horseshoe_latent(shrinkage.contem_local, rng)
        latent_contem_global = helpers.horseshoe_latent(shrinkage.contem_global, rng)[0]
        contem_global = np.full(setup.num_lowerchol, shrinkage.contem_global)
        contem_local = helpers.horseshoe_local_sparsity(
            latent_contem_local, contem_global, state.contem, rng
        )
        contem_global_new = helpers.horseshoe_global_sparsity(
            latent_contem_global, contem_local, state.contem, rng
        )
        prior_prec = helpers.build_shrink_mat(contem_global, contem_local)
        shrinkage = replace(shrinkage, contem_local=contem_local, contem_global=contem_global_new)

    latent_innov = _latent_innov(state, setup)
    innov_prec = np.zeros((setup.num_design, setup.dim, setup.dim))
    diag = np.arange(setup.dim)
    innov_prec[:, diag, diag] = np.exp(-state.lvol)
    contem = helpers.varsv_regression(
        helpers.build_contem_design(latent_innov), latent_innov,
        setup.chol_mean, prior_prec, innov_prec, rng
    )
    return replace(state, contem=contem, shrinkage=shrinkage)


def draw_lvol_sig(state: IterState, setup: VarsvSetup, rng: np.random.Generator) -> IterState:
    """Step 4: log-volatility innovation variances given the new paths."""
    sv_config = setup.sv_config
    lvol_sig = sv.varsv_sigh(
        np.full(setup.dim, sv_config.prior_sig_shp),
        np.full(setup.dim, sv_config.prior_sig_scl),
        state.lvol_init, state.lvol, rng
    )
    return replace(state, lvol_sig=lvol_sig)


def draw_lvol_init(state: IterState, setup: VarsvSetup, rng: np.random.Generator) -> IterState:
    """Step 5: log-volatility initial states given the new paths and variances."""
    sv_config = setup.sv_config
    lvol_init = sv.varsv_h0(
        np.full(setup.dim, sv_config.prior_init_mean),
        np.full(setup.dim, sv_config.prior_init_prec),
        state.lvol[0], state.lvol_sig, rng
    )
    return replace(state, lvol_init=lvol_init)


def gibbs_step(state: IterState,
               setup: VarsvSetup,
               rng: np.random.Generator,
               nthreads: int = 1,
               pool: Optional[Parallel] = None) -> IterState:
    """One full Gibbs sweep. The step order must not change."""
    state = draw_coef(state, setup, rng)
    state = draw_lvol(state, setup, rng, nthreads, pool)
    state = draw_contem(state, setup, rng)
    state = draw_lvol_sig(state, setup, rng)
    return draw_lvol_init(state, setup, rng)


class History:
    """
    Preallocated per-parameter records, row i holding the draw of iteration i.

    Row 0 holds the starting values.
    """

    def __init__(self, num_iter: int, setup: VarsvSetup):
        rows = num_iter + 1
        nchol = setup.num_lowerchol
        self.records = {
            'alpha_record': np.zeros((rows, setup.num_coef)),
            'h_record': np.zeros((rows, setup.num_design, setup.dim)),
            'a_record': np.zeros((rows, nchol)),
            'h0_record': np.zeros((rows, setup.dim)),
            'sigh_record': np.zeros((rows, setup.dim)),
        }
        if isinstance(setup.prior, SsvsConfig):
            self.records.update({
                'gamma_record': np.zeros((rows, setup.alpha_index.size)),
                'gamma_weight_record': np.zeros((rows, setup.grp_id.size)),
                'contem_gamma_record': np.zeros((rows, nchol)),
                'contem_weight_record': np.zeros((rows, nchol)),
            })
        elif isinstance(setup.prior, HorseshoeConfig):
            self.records.update({
                'lambda_record': np.zeros((rows, setup.num_coef)),
                'tau_record': np.zeros((rows, setup.grp_id.size)),
                'kappa_record': np.zeros((rows, setup.num_coef)),
                'contem_lambda_record': np.zeros((rows, nchol)),
                'contem_tau_record': np.zeros((rows, 1)),
            })

    def record(self, i: int, state: IterState):
        """Write the state into row i."""
        rec = self.records
        rec['alpha_record'][i] = state.coef
        rec['h_record'][i] = state.lvol
        rec['a_record'][i] = state.contem
        rec['h0_record'][i] = state.lvol_init
        rec['sigh_record'][i] = state.lvol_sig
        shrinkage = state.shrinkage
        if isinstance(shrinkage, SsvsState):
            rec['gamma_record'][i] = shrinkage.coef_dummy
            rec['gamma_weight_record'][i] = shrinkage.coef_weight
            rec['contem_gamma_record'][i] = shrinkage.contem_dummy
            rec['contem_weight_record'][i] = shrinkage.contem_weight
        elif isinstance(shrinkage, HorseshoeState):
            rec['lambda_record'][i] = shrinkage.local
            rec['tau_record'][i] = shrinkage.group_global
            rec['kappa_record'][i] = shrinkage.shrink
            rec['contem_lambda_record'][i] = shrinkage.contem_local
            rec['contem_tau_record'][i] = shrinkage.contem_global

    def partial(self, num_rows: int) -> Dict[str, np.ndarray]:
        """Rows 0..num_rows-1 of every record, without burn-in trimming."""
        return {key: value[:num_rows].copy() for key, value in self.records.items()}

    def finalize(self, num_burn: int) -> Dict[str, np.ndarray]:
        """Drop rows 0..num_burn of every record except the volatility path."""
        return {
            key: value.copy() if key == 'h_record' else value[num_burn + 1:].copy()
            for key, value in self.records.items()
        }


def _is_cancelled(cancel) -> bool:
    if cancel is None:
        return False
    if hasattr(cancel, 'is_set'):
        return bool(cancel.is_set())
    return bool(cancel())


def estimate_var_sv(num_iter: int,
                    num_burn: int,
                    x: np.ndarray,
                    y: np.ndarray,
                    prior: PriorConfig,
                    grp_id: Optional[np.ndarray] = None,
                    grp_mat: Optional[np.ndarray] = None,
                    include_mean: bool = False,
                    sv_config: Optional[SvConfig] = None,
                    cancel: Optional[Union[Callable[[], bool], object]] = None,
                    verbose: bool = False,
                    nthreads: int = 1,
                    rng: Optional[Union[int, np.random.Generator]] = None) -> Dict[str, np.ndarray]:
    """
    Estimate VAR-SV by Gibbs sampling.

    Parameters
    ----------
    num_iter : int
        Number of MCMC iterations.
    num_burn : int
        Number of burn-in iterations, dropped from the returned records.
    x : array
        Design matrix (n x dim_design).
    y : array
        Response matrix (n x dim).
    prior : MinnesotaConfig, SsvsConfig or HorseshoeConfig
        Prior configuration.
    grp_id : array, optional
        Unique coefficient group ids.
    grp_mat : array, optional
        Group id of each coefficient (dim_design x dim).
    include_mean : bool
        Whether the last column of x is the intercept.
    sv_config : SvConfig, optional
        Stochastic volatility hyperparameters.
    cancel : Event or callable, optional
        Checked before every iteration; when set, the draws made so far are
        returned.
    verbose : bool
        Whether to print progress.
    nthreads : int
        Worker threads for the log-volatility step.
    rng : int or Generator, optional
        Seed or random generator.

    Returns
    -------
    dict
        Dictionary containing:
        - alpha_record: coefficient draws
        - h_record: log-volatility paths (never trimmed)
        - a_record: Cholesky loading draws
        - h0_record: initial state draws
        - sigh_record: innovation variance draws
        - Prior-specific records (SSVS: gamma_record, gamma_weight_record,
          contem_gamma_record, contem_weight_record; HS: lambda_record,
          tau_record, kappa_record, contem_lambda_record, contem_tau_record)
    """
    if num_iter < 1:
        raise InvalidHyperparameterError("'num_iter' must be a positive integer.")
    if num_burn < 0 or num_burn >= num_iter:
        raise InvalidHyperparameterError("'num_burn' must satisfy 0 <= num_burn < num_iter.")
    if nthreads < 1:
        raise InvalidHyperparameterError("'nthreads' must be a positive integer.")

    rng = check_rng(rng)
    setup = build_setup(x, y, prior, grp_id, grp_mat, include_mean, sv_config)
    state = initial_state(setup)
    history = History(num_iter, setup)
    history.record(0, state)

    # one worker pool for the whole run
    if nthreads > 1 and setup.dim > 1:
        pool_ctx = Parallel(n_jobs=min(nthreads, setup.dim), backend='threading')
    else:
        pool_ctx = nullcontext()

    with pool_ctx as pool:
        for i in range(1, num_iter + 1):
            if _is_cancelled(cancel):
                logger.debug("Sampling cancelled before iteration %d", i)
                if verbose:
                    print(f"Sampling cancelled after {i - 1} iterations.")
                return history.partial(i)
            if verbose and i % 1000 == 0:
                print(f"Iteration {i}/{num_iter}")
            try:
                state = gibbs_step(state, setup, rng, nthreads, pool)
            except np.linalg.LinAlgError as exc:
                logger.debug("Numerical failure at iteration %d: %s", i, exc)
                warnings.warn(
                    f"Numerical failure at iteration {i} ({exc}). Returning the {i - 1} completed iterations."
                )
                return history.partial(i)
            history.record(i, state)

    return history.finalize(num_burn)
