"""
pyVARSV usage example
=====================

This script shows the main features of the pyVARSV package.
"""

import threading

import numpy as np
import pandas as pd
from pyVARSV import (
    VARSV,
    estimate_var_sv,
    set_prior,
    set_sv,
    sim_mniw,
    conv_diag,
    inclusion_trace,
    shrinkage_trace,
)
from pyVARSV.plot import plot_trace, plot_volatility

# =============================================================================
# Example 1: Data preparation
# =============================================================================

print("=" * 80)
print("Example 1: Data preparation")
print("=" * 80)

rng = np.random.default_rng(42)

T = 200  # sample length
var_names = ['y', 'Dp', 'stir']

# VAR(1) with a volatility break in the middle of the sample
A = np.array([
    [0.5, 0.1, 0.0],
    [0.0, 0.4, 0.1],
    [0.1, 0.0, 0.6]
])
data = np.zeros((T + 1, 3))
for t in range(1, T + 1):
    scale = 1.0 if t < T // 2 else 2.0
    data[t] = data[t - 1] @ A.T + scale * rng.standard_normal(3)

data = pd.DataFrame(data, columns=var_names)

# The design matrix is built by the caller: here one lag
Y = data.iloc[1:].reset_index(drop=True)
X = data.iloc[:-1].reset_index(drop=True).add_suffix('_l1')

print(f"Number of variables: {Y.shape[1]}")
print(f"Sample size: {Y.shape[0]}")
print(Y.head())

# =============================================================================
# Example 2: Minnesota prior
# =============================================================================

print("\n" + "=" * 80)
print("Example 2: VAR-SV with Minnesota prior")
print("=" * 80)

model_mn = VARSV(
    Y, X,
    num_iter=2000,
    num_burn=1000,
    prior='MN',
    hyperpara={'lambda': 0.2, 'delta': 0.5},
    seed=1
)

coefs = model_mn.coef_draws()
print(f"\nCoefficient draws: {coefs.shape}")
print(coefs.mean().round(3))

model_mn.summary()

# =============================================================================
# Example 3: SSVS prior with coefficient groups
# =============================================================================

print("\n" + "=" * 80)
print("Example 3: VAR-SV with SSVS prior")
print("=" * 80)

# own lags in group 1, cross lags in group 2, intercepts in group 3
grp_mat = np.array([
    [1, 2, 2],
    [2, 1, 2],
    [2, 2, 1],
    [3, 3, 3]
])

model_ssvs = VARSV(
    Y, X,
    num_iter=2000,
    num_burn=1000,
    prior='SSVS',
    hyperpara={'coef_spike': 0.05, 'coef_slab': 2.0},
    grp_mat=grp_mat,
    seed=2
)

lag_names = [name for name in model_ssvs.coef_names if not name.startswith('cons.')]
inclusion = inclusion_trace(model_ssvs.records['gamma_record'], lag_names)
print("\nPosterior inclusion frequencies:")
print(inclusion.iloc[-1].round(2))

# =============================================================================
# Example 4: Horseshoe prior, multithreaded SV step
# =============================================================================

print("\n" + "=" * 80)
print("Example 4: VAR-SV with Horseshoe prior")
print("=" * 80)

model_hs = VARSV(
    Y, X,
    num_iter=2000,
    num_burn=1000,
    prior='HS',
    hyperpara={'prior_sig_scl': 0.05},
    nthreads=3,
    seed=3
)

kappa = shrinkage_trace(model_hs.records['kappa_record'], model_hs.coef_names)
print("\nShrinkage factors (1 = shrunk to zero):")
print(kappa.iloc[-1].round(2))

sv_par = model_hs.sv_par_draws()
print("\nMean innovation variance of log-volatility:")
print(sv_par['sigh'].mean().round(4))

# =============================================================================
# Example 5: Low-level driver and cancellation
# =============================================================================

print("\n" + "=" * 80)
print("Example 5: Low-level driver")
print("=" * 80)

x = np.hstack([X.values, np.ones((X.shape[0], 1))])
y = Y.values
prior = set_prior('HS', dim=3, dim_design=4)

# the run stops at the next iteration boundary once the event is set
stop = threading.Event()
timer = threading.Timer(0.5, stop.set)
timer.start()
res = estimate_var_sv(
    num_iter=100000, num_burn=1000, x=x, y=y, prior=prior,
    include_mean=True, sv_config=set_sv({'prior_sig_shp': 4}),
    cancel=stop, rng=4
)
timer.cancel()
print(f"Rows returned after cancellation: {res['alpha_record'].shape[0]}")
print(f"Records: {list(res.keys())}")

CD = conv_diag(res['alpha_record'])
print(CD['perc'])

# =============================================================================
# Example 6: Random matrix generators
# =============================================================================

print("\n" + "=" * 80)
print("Example 6: Matrix normal inverse-Wishart draws")
print("=" * 80)

draws = sim_mniw(
    num_sim=1000,
    mat_mean=np.zeros((4, 3)),
    mat_scale_u=np.eye(4),
    mat_scale=np.eye(3),
    shape=10,
    rng=5
)
print(f"MN draws: {draws['mn'].shape}, IW draws: {draws['iw'].shape}")
print("Mean of IW draws (expected I / 6):")
print(draws['iw'].mean(axis=0).round(3))

# =============================================================================
# Example 7: Plots
# =============================================================================

print("\n" + "=" * 80)
print("Example 7: Plots")
print("=" * 80)

fig = plot_trace(model_mn.coef_draws(), which=[0, 1, 2])
fig.savefig('trace_mn.png')

fig = plot_volatility(model_hs.records['h_record'], var_names, draws=[500, 1000, 2000])
fig.savefig('volatility_hs.png')

print("Saved trace_mn.png and volatility_hs.png")
