"""
pyVARSV: Python implementation of Bayesian VAR with stochastic volatility

This package estimates Vector Autoregressions with time-varying
stochastic volatility by Gibbs sampling, under Minnesota, SSVS or
Horseshoe priors, and provides random matrix generators.
"""

__version__ = "0.1.0"
__author__ = "Python VARSV Team"

from .model import VARSV
from . import utils
from . import priors
from . import helpers
from . import sv
from . import varsv
from . import distributions
from . import diagnostics
from . import plot

# Estimation
from .varsv import (
    estimate_var_sv,
    IterState,
    History
)

# Prior setups
from .priors import (
    MinnesotaConfig,
    SsvsConfig,
    HorseshoeConfig,
    SvConfig,
    set_prior,
    set_sv,
    build_prior
)

# Random matrix generators
from .distributions import (
    sim_mgaussian,
    sim_mgaussian_chol,
    sim_matgaussian,
    sim_iw_tri,
    sim_iw,
    sim_mniw
)

# Errors
from .utils import (
    DimensionMismatchError,
    InvalidHyperparameterError,
    InvalidRegimeError
)

# Diagnostics functions
from .diagnostics import (
    conv_diag,
    inclusion_trace,
    shrinkage_trace
)

__all__ = [
    # Main class
    "VARSV",

    # Modules
    "utils",
    "priors",
    "helpers",
    "sv",
    "varsv",
    "distributions",
    "diagnostics",
    "plot",

    # Estimation
    "estimate_var_sv",
    "IterState",
    "History",

    # Prior setups
    "MinnesotaConfig",
    "SsvsConfig",
    "HorseshoeConfig",
    "SvConfig",
    "set_prior",
    "set_sv",
    "build_prior",

    # Random matrix generators
    "sim_mgaussian",
    "sim_mgaussian_chol",
    "sim_matgaussian",
    "sim_iw_tri",
    "sim_iw",
    "sim_mniw",

    # Errors
    "DimensionMismatchError",
    "InvalidHyperparameterError",
    "InvalidRegimeError",

    # Diagnostics
    "conv_diag",
    "inclusion_trace",
    "shrinkage_trace",
]
