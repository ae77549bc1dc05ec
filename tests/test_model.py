import unittest
import warnings

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from pyVARSV import VARSV, diagnostics, plot
from pyVARSV.priors import HorseshoeConfig
from pyVARSV.utils import DimensionMismatchError, InvalidRegimeError


def make_frames(num_design=80, seed=0):
    rng = np.random.default_rng(seed)
    data = np.zeros((num_design + 1, 2))
    for t in range(1, num_design + 1):
        data[t] = 0.4 * data[t - 1] + rng.standard_normal(2)
    y = pd.DataFrame(data[1:], columns=['gdp', 'infl'])
    x = pd.DataFrame(data[:-1], columns=['gdp_l1', 'infl_l1'])
    return y, x


class TestVARSV(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.y, cls.x = make_frames()
        cls.model = VARSV(cls.y, cls.x, num_iter=40, num_burn=20, prior='SSVS',
                          seed=1, verbose=False)

    def test_labels(self):
        self.assertEqual(self.model.design_names, ['gdp_l1', 'infl_l1', 'cons'])
        self.assertEqual(self.model.coef_names[:3], ['gdp_l1.gdp', 'infl_l1.gdp', 'cons.gdp'])
        self.assertEqual(self.model.contem_names, ['infl.gdp'])

    def test_draw_frames(self):
        coef = self.model.coef_draws()
        self.assertEqual(coef.shape, (20, 6))
        self.assertEqual(coef.index.name, 'draw')
        self.assertEqual(self.model.contem_draws().shape, (20, 1))
        self.assertEqual(list(self.model.lvol_draws().columns), ['gdp', 'infl'])
        self.assertEqual(self.model.lvol_draws(0).shape, (80, 2))
        sv_par = self.model.sv_par_draws()
        self.assertEqual(set(sv_par), {'h0', 'sigh'})

    def test_summary(self):
        res = self.model.summary()
        self.assertIn('CD', res)
        self.assertEqual(res['CD']['geweke.z'].shape, (6,))

    def test_numpy_input_without_mean(self):
        model = VARSV(self.y.values, self.x.values, num_iter=10, num_burn=5, prior='HS',
                      include_mean=False, seed=2, verbose=False)
        self.assertEqual(model.coef_names[0], 'x1.y1')
        self.assertIn('kappa_record', model.records)

    def test_config_object(self):
        prior = HorseshoeConfig(np.ones(6), np.ones(1), np.ones(1), 1.0)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            model = VARSV(self.y, self.x, num_iter=10, num_burn=5, prior=prior,
                          hyperpara={'lambda': 0.2}, seed=3, verbose=False)
        self.assertTrue(any('ignored' in str(w.message) for w in caught))
        self.assertEqual(model.args['prior_name'], 'HS')

    def test_invalid_arguments(self):
        with self.assertRaises(InvalidRegimeError):
            VARSV(self.y, self.x, prior='NG', verbose=False)
        with self.assertRaises(ValueError):
            VARSV(self.y, self.x, num_iter=10, num_burn=10, verbose=False)
        with self.assertRaises(DimensionMismatchError):
            VARSV(self.y.iloc[1:], self.x, num_iter=10, num_burn=5, verbose=False)


class TestDiagnostics(unittest.TestCase):

    def test_conv_diag_flags_trend(self):
        rng = np.random.default_rng(4)
        record = np.column_stack([rng.standard_normal(500), np.linspace(0, 10, 500)])
        res = diagnostics.conv_diag(record)
        self.assertLess(abs(res['geweke.z'][0]), 4)
        self.assertGreater(abs(res['geweke.z'][1]), 10)
        self.assertIn('out of 2', res['perc'])

    def test_short_chain(self):
        res = diagnostics.conv_diag(np.ones((5, 2)))
        self.assertTrue(np.isnan(res['geweke.z']).all())

    def test_running_traces(self):
        gamma = np.array([[1.0, 0.0], [0.0, 0.0], [1.0, 1.0], [1.0, 0.0]])
        inclusion = diagnostics.inclusion_trace(gamma, ['a', 'b'])
        np.testing.assert_allclose(inclusion.iloc[-1].values, [0.75, 0.25])
        shrink = diagnostics.shrinkage_trace(np.full((3, 2), 0.5))
        np.testing.assert_allclose(shrink.values, 0.5)


class TestPlots(unittest.TestCase):

    def tearDown(self):
        plt.close('all')

    def test_trace(self):
        record = pd.DataFrame(np.random.default_rng(5).standard_normal((30, 2)), columns=['a', 'b'])
        fig = plot.plot_trace(record, which=[1])
        self.assertEqual(len(fig.axes), 1)
        self.assertEqual(fig.axes[0].get_title(), 'b')

    def test_volatility(self):
        h_record = np.zeros((4, 20, 2))
        fig = plot.plot_volatility(h_record, ['gdp', 'infl'], draws=[0, 3])
        self.assertEqual(len(fig.axes), 2)
        with self.assertRaises(ValueError):
            plot.plot_volatility(np.zeros((20, 2)))


if __name__ == '__main__':
    unittest.main()
