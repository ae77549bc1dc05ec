import threading
import unittest
import warnings
from dataclasses import replace
from unittest import mock

import numpy as np
from joblib import Parallel

from pyVARSV import helpers, varsv
from pyVARSV.priors import MinnesotaConfig, set_prior, set_sv
from pyVARSV.utils import (
    DimensionMismatchError,
    InvalidHyperparameterError,
    InvalidRegimeError,
)

BASE_KEYS = {'alpha_record', 'h_record', 'a_record', 'h0_record', 'sigh_record'}
SSVS_KEYS = {'gamma_record', 'gamma_weight_record', 'contem_gamma_record', 'contem_weight_record'}
HS_KEYS = {'lambda_record', 'tau_record', 'kappa_record', 'contem_lambda_record', 'contem_tau_record'}


def simulate_var(num_design=120, dim=2, seed=0):
    """VAR(1) data with coefficient 0.5 on own lags, returned as (x, y)."""
    rng = np.random.default_rng(seed)
    data = np.zeros((num_design + 1, dim))
    for t in range(1, num_design + 1):
        data[t] = 0.5 * data[t - 1] + rng.standard_normal(dim)
    return data[:-1], data[1:]


def with_intercept(x):
    return np.hstack([x, np.ones((x.shape[0], 1))])


class TestRecordShapes(unittest.TestCase):

    def setUp(self):
        self.x, self.y = simulate_var()
        self.num_design, self.dim = self.y.shape

    def test_minnesota(self):
        x = with_intercept(self.x)
        prior = set_prior('MN', 2, 3, include_mean=True, y=self.y)
        res = varsv.estimate_var_sv(30, 10, x, self.y, prior, include_mean=True, rng=1)
        self.assertEqual(set(res), BASE_KEYS)
        self.assertEqual(res['alpha_record'].shape, (20, 6))
        self.assertEqual(res['a_record'].shape, (20, 1))
        self.assertEqual(res['h0_record'].shape, (20, 2))
        self.assertEqual(res['sigh_record'].shape, (20, 2))
        # the volatility path is kept for every iteration
        self.assertEqual(res['h_record'].shape, (31, self.num_design, 2))

    def test_ssvs(self):
        x = with_intercept(self.x)
        grp_mat = np.array([[1, 2], [2, 1], [3, 3]])
        prior = set_prior('SSVS', 2, 3, num_grp=3, include_mean=True)
        res = varsv.estimate_var_sv(30, 10, x, self.y, prior, grp_mat=grp_mat,
                                    include_mean=True, rng=2)
        self.assertEqual(set(res), BASE_KEYS | SSVS_KEYS)
        # intercepts are not selected
        self.assertEqual(res['gamma_record'].shape, (20, 4))
        self.assertEqual(res['gamma_weight_record'].shape, (20, 3))
        self.assertTrue(np.isin(res['gamma_record'], [0.0, 1.0]).all())
        self.assertTrue(np.isin(res['contem_gamma_record'], [0.0, 1.0]).all())
        weights = res['gamma_weight_record']
        self.assertTrue(np.all((weights > 0) & (weights < 1)))

    def test_horseshoe(self):
        prior = set_prior('HS', 2, 2)
        res = varsv.estimate_var_sv(30, 10, self.x, self.y, prior, rng=3)
        self.assertEqual(set(res), BASE_KEYS | HS_KEYS)
        self.assertEqual(res['lambda_record'].shape, (20, 4))
        self.assertEqual(res['tau_record'].shape, (20, 1))
        self.assertEqual(res['contem_tau_record'].shape, (20, 1))
        for key in ('lambda_record', 'tau_record', 'contem_lambda_record', 'contem_tau_record'):
            self.assertTrue(np.all(res[key] > 0), key)
        kappa = res['kappa_record']
        self.assertTrue(np.all((kappa > 0) & (kappa < 1)))

    def test_single_equation_has_no_loadings(self):
        prior = set_prior('SSVS', 1, 1)
        res = varsv.estimate_var_sv(10, 5, self.x[:, :1], self.y[:, :1], prior, rng=4)
        self.assertEqual(res['a_record'].shape, (5, 0))
        self.assertEqual(res['contem_gamma_record'].shape, (5, 0))

    def test_variances_are_positive(self):
        prior = set_prior('MN', 2, 2, y=self.y)
        res = varsv.estimate_var_sv(20, 5, self.x, self.y, prior, rng=5)
        self.assertTrue(np.all(res['sigh_record'] > 0))
        self.assertTrue(np.isfinite(res['h_record']).all())


class TestHistory(unittest.TestCase):

    def test_untrimmed_rows(self):
        x, y = simulate_var()
        setup = varsv.build_setup(x, y, set_prior('HS', 2, 2))
        history = varsv.History(25, setup)
        for key, value in history.records.items():
            self.assertEqual(value.shape[0], 26, key)
        self.assertEqual(history.partial(4)['alpha_record'].shape, (4, 4))


class TestCancellation(unittest.TestCase):

    def setUp(self):
        self.x, self.y = simulate_var()
        self.prior = set_prior('SSVS', 2, 2)

    def test_callable_flag(self):
        calls = [0]

        def cancel():
            calls[0] += 1
            return calls[0] > 5

        res = varsv.estimate_var_sv(100, 50, self.x, self.y, self.prior, cancel=cancel, rng=6)
        full = varsv.estimate_var_sv(10, 5, self.x, self.y, self.prior, rng=6)
        self.assertEqual(set(res), set(full))
        for key, value in res.items():
            self.assertEqual(value.shape[0], 6, key)
            self.assertEqual(value.shape[1:], full[key].shape[1:], key)

    def test_event_set_before_start(self):
        event = threading.Event()
        event.set()
        res = varsv.estimate_var_sv(100, 50, self.x, self.y, self.prior, cancel=event, rng=7)
        self.assertEqual(res['alpha_record'].shape[0], 1)
        self.assertEqual(res['h_record'].shape[0], 1)


class TestNumericalFailure(unittest.TestCase):

    def test_partial_result_and_warning(self):
        x, y = simulate_var()
        prior = MinnesotaConfig(
            prior_coef_mean=np.zeros((2, 2)),
            prior_coef_prec=-1e6 * np.eye(2),
            prec_diag=np.eye(2),
        )
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            res = varsv.estimate_var_sv(20, 5, x, y, prior, rng=8)
        self.assertTrue(any('Numerical failure' in str(w.message) for w in caught))
        self.assertEqual(set(res), BASE_KEYS)
        self.assertEqual(res['alpha_record'].shape[0], 1)

    def _fail_at_third_iteration(self, prior):
        x, y = simulate_var()
        regression = helpers.varsv_regression
        calls = [0]

        # two regressions per iteration: coefficients, then loadings
        def failing(*args, **kwargs):
            calls[0] += 1
            if calls[0] == 5:
                raise np.linalg.LinAlgError("leading minor not positive definite")
            return regression(*args, **kwargs)

        with mock.patch.object(helpers, 'varsv_regression', side_effect=failing):
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter('always')
                res = varsv.estimate_var_sv(20, 5, x, y, prior, rng=15)
        full = varsv.estimate_var_sv(10, 5, x, y, prior, rng=15)
        self.assertTrue(any('iteration 3' in str(w.message) for w in caught))
        self.assertEqual(set(res), set(full))
        for key, value in res.items():
            self.assertEqual(value.shape[0], 3, key)
            self.assertEqual(value.shape[1:], full[key].shape[1:], key)
        return res

    def test_ssvs_partial_result(self):
        res = self._fail_at_third_iteration(set_prior('SSVS', 2, 2))
        self.assertTrue(SSVS_KEYS <= set(res))
        self.assertTrue(np.isin(res['gamma_record'], [0.0, 1.0]).all())

    def test_horseshoe_partial_result(self):
        res = self._fail_at_third_iteration(set_prior('HS', 2, 2))
        self.assertTrue(HS_KEYS <= set(res))
        self.assertTrue(np.all(res['lambda_record'] > 0))


class TestReproducibility(unittest.TestCase):

    def setUp(self):
        x, y = simulate_var()
        self.x = x
        self.y = y
        self.setup = varsv.build_setup(x, y, set_prior('HS', 2, 2))

    def test_gibbs_step_is_deterministic(self):
        state = varsv.initial_state(self.setup)
        first = varsv.gibbs_step(state, self.setup, np.random.default_rng(9))
        second = varsv.gibbs_step(state, self.setup, np.random.default_rng(9))
        np.testing.assert_array_equal(first.coef, second.coef)
        np.testing.assert_array_equal(first.lvol, second.lvol)
        np.testing.assert_array_equal(first.contem, second.contem)
        np.testing.assert_array_equal(first.lvol_sig, second.lvol_sig)
        np.testing.assert_array_equal(first.lvol_init, second.lvol_init)
        np.testing.assert_array_equal(first.shrinkage.local, second.shrinkage.local)

    def test_previous_state_is_untouched(self):
        state = varsv.initial_state(self.setup)
        coef = state.coef.copy()
        lvol = state.lvol.copy()
        varsv.gibbs_step(state, self.setup, np.random.default_rng(10))
        np.testing.assert_array_equal(state.coef, coef)
        np.testing.assert_array_equal(state.lvol, lvol)

    def test_replay_from_saved_bit_state(self):
        state = varsv.initial_state(self.setup)
        rng = np.random.default_rng(16)
        saved = rng.bit_generator.state
        first = varsv.gibbs_step(state, self.setup, rng)
        rng.bit_generator.state = saved
        second = varsv.gibbs_step(state, self.setup, rng)
        np.testing.assert_array_equal(first.coef, second.coef)
        np.testing.assert_array_equal(first.lvol, second.lvol)
        np.testing.assert_array_equal(first.contem, second.contem)
        np.testing.assert_array_equal(first.lvol_init, second.lvol_init)

    def test_shared_pool_matches_serial(self):
        state = varsv.initial_state(self.setup)
        serial = varsv.gibbs_step(state, self.setup, np.random.default_rng(17))
        with Parallel(n_jobs=2, backend='threading') as pool:
            pooled = varsv.gibbs_step(state, self.setup, np.random.default_rng(17), pool=pool)
        np.testing.assert_array_equal(serial.lvol, pooled.lvol)
        np.testing.assert_array_equal(serial.coef, pooled.coef)

    def test_threads_do_not_change_results(self):
        prior = set_prior('MN', 2, 2, y=self.y)
        serial = varsv.estimate_var_sv(15, 5, self.x, self.y, prior, nthreads=1, rng=11)
        threaded = varsv.estimate_var_sv(15, 5, self.x, self.y, prior, nthreads=2, rng=11)
        for key in serial:
            np.testing.assert_array_equal(serial[key], threaded[key])


class TestMinnesotaShrinkage(unittest.TestCase):

    def test_tighter_prior_moves_toward_prior_mean(self):
        x, y = simulate_var(num_design=150, seed=12)
        distances = []
        for scale in (1.0, 1e2, 1e4, 1e6):
            prior = MinnesotaConfig(
                prior_coef_mean=np.zeros((2, 2)),
                prior_coef_prec=scale * np.eye(2),
                prec_diag=np.eye(2),
            )
            setup = varsv.build_setup(x, y, prior)
            state = varsv.initial_state(setup)
            rng = np.random.default_rng(13)
            draws = [varsv.draw_coef(state, setup, rng).coef for _ in range(200)]
            distances.append(np.linalg.norm(np.mean(draws, axis=0)))
        self.assertTrue(all(a > b for a, b in zip(distances, distances[1:])), distances)


class TestInputValidation(unittest.TestCase):

    def setUp(self):
        self.x, self.y = simulate_var()
        self.prior = set_prior('MN', 2, 2)

    def test_burn_in(self):
        with self.assertRaises(InvalidHyperparameterError):
            varsv.estimate_var_sv(10, 10, self.x, self.y, self.prior)

    def test_row_mismatch(self):
        with self.assertRaises(DimensionMismatchError):
            varsv.estimate_var_sv(10, 5, self.x[:-1], self.y, self.prior)

    def test_unknown_prior(self):
        with self.assertRaises(InvalidRegimeError):
            varsv.estimate_var_sv(10, 5, self.x, self.y, {'prior': 'MN'})

    def test_group_matrix_shape(self):
        with self.assertRaises(DimensionMismatchError):
            varsv.estimate_var_sv(10, 5, self.x, self.y, self.prior, grp_mat=np.ones((3, 2)))

    def test_sv_config(self):
        res = varsv.estimate_var_sv(10, 5, self.x, self.y, self.prior,
                                    sv_config=set_sv({'prior_sig_scl': 0.1}), rng=14)
        self.assertEqual(res['sigh_record'].shape, (5, 2))

    def test_config_ranges_checked_before_sampling(self):
        ssvs = set_prior('SSVS', 2, 2)
        for field, value in (('coef_s1', -5.0), ('chol_s2', 0.0),
                             ('coef_spike', np.full(4, -0.1)), ('sd_non', 0.0)):
            with self.subTest(field=field):
                with self.assertRaises(InvalidHyperparameterError):
                    varsv.estimate_var_sv(10, 5, self.x, self.y, replace(ssvs, **{field: value}))
        hs = set_prior('HS', 2, 2)
        for field, value in (('init_local', np.zeros(4)), ('init_contem_global', -1.0)):
            with self.subTest(field=field):
                with self.assertRaises(InvalidHyperparameterError):
                    varsv.estimate_var_sv(10, 5, self.x, self.y, replace(hs, **{field: value}))


if __name__ == '__main__':
    unittest.main()
