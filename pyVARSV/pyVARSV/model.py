"""
Main VAR-SV estimation module
"""

import numpy as np
import pandas as pd
from typing import Union, Dict, Optional
import warnings
from datetime import datetime

from . import utils
from . import priors
from . import varsv


class VARSV:
    """
    Vector Autoregression with Stochastic Volatility

    This class estimates a VAR-SV model by Gibbs sampling with one of the
    prior setups:
    - Minnesota (MN)
    - Stochastic Search Variable Selection (SSVS)
    - Horseshoe (HS)

    The design matrix is taken as given (lags built by the caller).

    Parameters
    ----------
    Y : array or DataFrame
        Response matrix (n x dim).
    X : array or DataFrame
        Design matrix (n x k), without intercept column.
    num_iter : int, default=1000
        Number of MCMC iterations.
    num_burn : int, default=500
        Number of burn-in iterations.
    prior : str or prior config, default='MN'
        'MN', 'SSVS', 'HS', or a MinnesotaConfig / SsvsConfig / HorseshoeConfig.
    include_mean : bool, default=True
        Whether to append an intercept column to X.
    hyperpara : dict, optional
        Hyperparameters overriding the defaults of the prior and SV setup.
    grp_id : array, optional
        Unique coefficient group ids.
    grp_mat : array, optional
        Group id of each coefficient (rows of X, plus intercept, x dim).
    nthreads : int, default=1
        Worker threads for the log-volatility step.
    seed : int, optional
        Random seed.
    cancel : Event or callable, optional
        Cooperative cancellation flag, checked once per iteration.
    verbose : bool, default=True
        Whether to print progress messages.

    Attributes
    ----------
    args : dict
        Estimation arguments.
    records : dict
        Posterior draws returned by the sampler.
    coef_names : list
        Labels of the coefficients, '<regressor>.<equation>'.

    Examples
    --------
    >>> import numpy as np
    >>> from pyVARSV import VARSV
    >>> y = np.random.randn(101, 2)
    >>> model = VARSV(y[1:], y[:-1], num_iter=200, num_burn=100, prior='HS', verbose=False)
    >>> model.coef_draws().shape
    (100, 6)
    """

    def __init__(self,
                 Y: Union[np.ndarray, pd.DataFrame],
                 X: Union[np.ndarray, pd.DataFrame],
                 num_iter: int = 1000,
                 num_burn: int = 500,
                 prior: Union[str, priors.PriorConfig] = 'MN',
                 include_mean: bool = True,
                 hyperpara: Optional[Dict] = None,
                 grp_id: Optional[np.ndarray] = None,
                 grp_mat: Optional[np.ndarray] = None,
                 nthreads: int = 1,
                 seed: Optional[int] = None,
                 cancel=None,
                 verbose: bool = True):

        self.start_time = datetime.now()

        self.args = {
            'Y': Y,
            'X': X,
            'num_iter': num_iter,
            'num_burn': num_burn,
            'prior': prior,
            'include_mean': include_mean,
            'hyperpara': hyperpara or {},
            'grp_id': grp_id,
            'grp_mat': grp_mat,
            'nthreads': nthreads,
            'seed': seed,
            'cancel': cancel,
            'verbose': verbose
        }

        self._validate_inputs()
        self._process_data()
        self._set_hyperparameters()

        if verbose:
            self._print_init_message()

        self._estimate()

        if verbose:
            elapsed = (datetime.now() - self.start_time).total_seconds()
            print(f"\nTotal estimation time: {elapsed:.2f} seconds")

    def _validate_inputs(self):
        """Validate input arguments."""
        prior = self.args['prior']
        if isinstance(prior, str):
            if prior not in priors.PRIOR_NAMES:
                raise utils.InvalidRegimeError(f"'prior' must be one of {list(priors.PRIOR_NAMES)}.")
            self.args['prior_name'] = prior
        elif isinstance(prior, (priors.MinnesotaConfig, priors.SsvsConfig, priors.HorseshoeConfig)):
            self.args['prior_name'] = prior.name
        else:
            raise utils.InvalidRegimeError(f"Unknown prior: {prior!r}.")

        if not isinstance(self.args['num_iter'], (int, np.integer)) or self.args['num_iter'] < 1:
            raise ValueError("'num_iter' must be a positive integer.")
        if not isinstance(self.args['num_burn'], (int, np.integer)) or self.args['num_burn'] < 0:
            raise ValueError("'num_burn' must be a non-negative integer.")
        if self.args['num_burn'] >= self.args['num_iter']:
            raise ValueError("'num_burn' must be smaller than 'num_iter'.")
        if not isinstance(self.args['nthreads'], (int, np.integer)) or self.args['nthreads'] < 1:
            raise ValueError("'nthreads' must be a positive integer.")

    def _process_data(self):
        """Convert data to arrays and build coefficient labels."""
        self.y, self.var_names = utils.check_data_format(self.args['Y'], 'Y', 'y')
        self.x, self.design_names = utils.check_data_format(self.args['X'], 'X', 'x')
        if self.x.shape[0] != self.y.shape[0]:
            raise utils.DimensionMismatchError(
                f"'X' has {self.x.shape[0]} rows but 'Y' has {self.y.shape[0]}."
            )

        if self.args['include_mean']:
            self.x = np.hstack([self.x, np.ones((self.x.shape[0], 1))])
            self.design_names.append('cons')

        self.num_design, self.dim = self.y.shape
        self.dim_design = self.x.shape[1]
        self.coef_names = [f"{reg}.{eq}" for eq in self.var_names for reg in self.design_names]
        self.contem_names = [
            f"{self.var_names[i]}.{self.var_names[j]}"
            for i, j in zip(*utils.lower_indices(self.dim))
        ]

    def _set_hyperparameters(self):
        """Set the prior and SV configuration from defaults and user values."""
        hyperpara = self.args['hyperpara']
        grp_mat = self.args['grp_mat']
        grp_id = self.args['grp_id']
        if grp_id is not None:
            num_grp = len(grp_id)
        elif grp_mat is not None:
            num_grp = np.unique(grp_mat).size
        else:
            num_grp = 1

        prior = self.args['prior']
        if isinstance(prior, str):
            self.prior = priors.set_prior(
                prior, self.dim, self.dim_design, hyperpara,
                num_grp=num_grp, include_mean=self.args['include_mean'], y=self.y
            )
        else:
            if any(key not in priors.DEFAULT_HYPERPARA['SV'] for key in hyperpara):
                warnings.warn("Prior configuration given directly; prior hyperparameters are ignored.")
            self.prior = prior
        self.sv_config = priors.set_sv(hyperpara)

    def _print_init_message(self):
        """Print initialization message."""
        print("\n" + "="*80)
        print("Start estimation of Vector Autoregression with Stochastic Volatility")
        print("="*80)
        print(f"Prior: {priors.PRIOR_NAMES[self.args['prior_name']]}")
        print(f"Number of variables: {self.dim}")
        print(f"Number of regressors: {self.dim_design}")
        print(f"Sample size: {self.num_design}")
        print(f"Number of iterations: {self.args['num_iter']}")
        print(f"Burn-in: {self.args['num_burn']}")
        print(f"Threads for SV step: {self.args['nthreads']}")
        print("="*80 + "\n")

    def _estimate(self):
        """Main estimation function."""
        self.records = varsv.estimate_var_sv(
            num_iter=self.args['num_iter'],
            num_burn=self.args['num_burn'],
            x=self.x,
            y=self.y,
            prior=self.prior,
            grp_id=self.args['grp_id'],
            grp_mat=self.args['grp_mat'],
            include_mean=self.args['include_mean'],
            sv_config=self.sv_config,
            cancel=self.args['cancel'],
            verbose=self.args['verbose'],
            nthreads=self.args['nthreads'],
            rng=self.args['seed']
        )
        self.num_draws = self.records['alpha_record'].shape[0]

        if self.args['verbose']:
            print(f"Estimation finished. {self.num_draws} draws stored.")

    def coef_draws(self) -> pd.DataFrame:
        """Coefficient draws with labelled columns."""
        return utils.record_to_frame(self.records['alpha_record'], self.coef_names)

    def contem_draws(self) -> pd.DataFrame:
        """Cholesky loading draws, columns '<equation>.<regressor equation>'."""
        return utils.record_to_frame(self.records['a_record'], self.contem_names)

    def lvol_draws(self, draw: int = -1) -> pd.DataFrame:
        """
        Log-volatility path of one stored iteration.

        Parameters
        ----------
        draw : int, default=-1
            Row of h_record, i.e. iteration number (negative counts from the end).
        """
        return pd.DataFrame(self.records['h_record'][draw], columns=self.var_names)

    def sv_par_draws(self) -> Dict[str, pd.DataFrame]:
        """Draws of h_0 and sigma_h^2."""
        return {
            'h0': utils.record_to_frame(self.records['h0_record'], self.var_names),
            'sigh': utils.record_to_frame(self.records['sigh_record'], self.var_names)
        }

    def summary(self) -> Optional[Dict]:
        """
        Print and return the Geweke convergence diagnostic of the coefficients.
        """
        from . import diagnostics

        if self.num_draws == 0:
            print("Computation of VAR-SV has yielded no posterior draws!")
            return None

        CD = diagnostics.conv_diag(self.records['alpha_record'])
        print("-" * 75)
        print("Model Info:")
        print(f"Prior: {priors.PRIOR_NAMES[self.args['prior_name']]}")
        print(f"Number of variables: {self.dim}")
        print(f"Number of stored draws: {self.num_draws}")
        print("-" * 75)
        print("Convergence diagnostics")
        print(f"Geweke statistic: {CD['perc']}")
        print("-" * 75)
        return {'object': self, 'CD': CD}
