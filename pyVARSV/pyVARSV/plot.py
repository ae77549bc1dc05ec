"""
Plotting functions for VAR-SV sampling histories
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib
from typing import List, Optional, Union

# Set style
matplotlib.style.use('seaborn-v0_8-whitegrid')


def plot_trace(record: Union[np.ndarray, pd.DataFrame],
               columns: Optional[List[str]] = None,
               which: Optional[List[int]] = None,
               **kwargs) -> plt.Figure:
    """
    Plot MCMC trace plots.

    Parameters
    ----------
    record : array or DataFrame
        Draws (iterations x parameters), e.g. ``alpha_record``.
    columns : list, optional
        Parameter labels.
    which : list, optional
        Column positions to plot. Defaults to all columns.
    **kwargs
        Passed to ``Axes.plot``.

    Returns
    -------
    Figure
        Matplotlib figure object.
    """
    if isinstance(record, pd.DataFrame):
        columns = list(record.columns) if columns is None else columns
        record = record.values
    record = np.asarray(record)
    if record.ndim == 1:
        record = record.reshape(-1, 1)
    if columns is None:
        columns = [f'param{j + 1}' for j in range(record.shape[1])]
    if which is None:
        which = list(range(record.shape[1]))

    n_par = len(which)
    fig, axes = plt.subplots(n_par, 1, figsize=(10, 2.5 * n_par), squeeze=False)

    for i, j in enumerate(which):
        ax = axes[i][0]
        ax.plot(record[:, j], linewidth=0.8, **kwargs)
        ax.axhline(np.mean(record[:, j]), color='red', linestyle='--', linewidth=1)
        ax.set_xlabel('Iteration')
        ax.set_title(columns[j])
        ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig


def plot_volatility(h_record: np.ndarray,
                    var_names: Optional[List[str]] = None,
                    draws: Optional[List[int]] = None,
                    **kwargs) -> plt.Figure:
    """
    Plot time-varying standard deviations exp(h_t / 2).

    Parameters
    ----------
    h_record : array
        Log-volatility paths (iterations x n x dim).
    var_names : list, optional
        Variable names.
    draws : list, optional
        Iterations to overlay. Defaults to the last iteration.
    **kwargs
        Passed to ``Axes.plot``.

    Returns
    -------
    Figure
        Matplotlib figure object.
    """
    h_record = np.asarray(h_record)
    if h_record.ndim != 3:
        raise ValueError("'h_record' must have shape (iterations, n, dim).")
    _, num_design, dim = h_record.shape
    if var_names is None:
        var_names = [f'y{j + 1}' for j in range(dim)]
    if draws is None:
        draws = [h_record.shape[0] - 1]

    fig, axes = plt.subplots(dim, 1, figsize=(10, 3 * dim), squeeze=False)

    for j in range(dim):
        ax = axes[j][0]
        for d in draws:
            ax.plot(np.exp(h_record[d, :, j] / 2), alpha=0.7, label=f'iteration {d}', **kwargs)
        ax.set_xlabel('Time')
        ax.set_ylabel('sd')
        ax.set_title(f'Stochastic volatility: {var_names[j]}')
        ax.grid(True, alpha=0.3)
        if len(draws) <= 5:
            ax.legend()

    plt.tight_layout()
    return fig
