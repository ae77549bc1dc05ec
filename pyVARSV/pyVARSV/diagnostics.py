"""
Diagnostic functions for VAR-SV sampling histories
"""

import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Union
from scipy import stats


def conv_diag(record: Union[np.ndarray, pd.DataFrame],
              crit_val: float = 1.96,
              first: float = 0.1,
              last: float = 0.5) -> Dict:
    """
    MCMC convergence diagnostics using Geweke test.

    Compares the mean of the first part of each chain with the mean of the
    last part.

    Parameters
    ----------
    record : array or DataFrame
        Draws (iterations x parameters).
    crit_val : float, default=1.96
        Critical value for test statistic.
    first : float, default=0.1
        Share of the chain in the first window.
    last : float, default=0.5
        Share of the chain in the last window.

    Returns
    -------
    dict
        Dictionary containing Geweke statistics, p-values and percentage
        exceeding threshold.
    """
    chains = np.asarray(record, dtype=float)
    if chains.ndim == 1:
        chains = chains.reshape(-1, 1)
    if first + last > 1:
        raise ValueError("'first' and 'last' windows overlap.")

    draws = chains.shape[0]
    geweke_z = np.full(chains.shape[1], np.nan)
    if draws > 20:
        n1 = max(int(draws * first), 10)
        n2 = max(int(draws * last), 10)
        for j in range(chains.shape[1]):
            chain = chains[:, j]
            var1 = np.var(chain[:n1], ddof=1)
            var2 = np.var(chain[-n2:], ddof=1)
            se = np.sqrt(var1 / n1 + var2 / n2)
            if se > 0:
                geweke_z[j] = (np.mean(chain[:n1]) - np.mean(chain[-n2:])) / se

    valid = ~np.isnan(geweke_z)
    n_valid = int(valid.sum())
    n_exceed = int(np.sum(np.abs(geweke_z[valid]) > crit_val))
    share = n_exceed / n_valid * 100 if n_valid > 0 else 0.0
    perc = (f"{n_exceed} out of {n_valid} variables' z-values exceed the "
            f"{crit_val} threshold ({share:.2f}%).")

    return {
        'geweke.z': geweke_z,
        'p.value': 2 * stats.norm.sf(np.abs(geweke_z)),
        'perc': perc
    }


def inclusion_trace(gamma_record: np.ndarray,
                    columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Running share of iterations in which each SSVS indicator equals one.

    Parameters
    ----------
    gamma_record : array
        Indicator draws (iterations x coefficients).
    columns : list, optional
        Coefficient labels.

    Returns
    -------
    DataFrame
        Running inclusion frequencies, one row per iteration.
    """
    gamma_record = np.asarray(gamma_record, dtype=float)
    running = np.cumsum(gamma_record, axis=0) / np.arange(1, gamma_record.shape[0] + 1)[:, np.newaxis]
    df = pd.DataFrame(running, columns=columns)
    df.index.name = 'draw'
    return df


def shrinkage_trace(kappa_record: np.ndarray,
                    columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Running mean of the Horseshoe shrinkage factors kappa_j = 1 / (1 + prec_j).

    Values near one indicate coefficients shrunk to zero.
    """
    kappa_record = np.asarray(kappa_record, dtype=float)
    running = np.cumsum(kappa_record, axis=0) / np.arange(1, kappa_record.shape[0] + 1)[:, np.newaxis]
    df = pd.DataFrame(running, columns=columns)
    df.index.name = 'draw'
    return df
