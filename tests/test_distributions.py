import unittest

import numpy as np

from pyVARSV.distributions import (
    sim_mgaussian,
    sim_mgaussian_chol,
    sim_matgaussian,
    sim_iw_tri,
    sim_iw,
    sim_mniw,
)
from pyVARSV.utils import DimensionMismatchError, InvalidHyperparameterError


class TestMultivariateNormal(unittest.TestCase):

    def setUp(self):
        self.mu = np.array([1.0, 2.0])
        self.sig = np.array([[1.0, 0.5], [0.5, 2.0]])
        self.num_sim = 100000

    def test_sqrt_draws_converge(self):
        draws = sim_mgaussian(self.num_sim, self.mu, self.sig, rng=1)
        self.assertEqual(draws.shape, (self.num_sim, 2))
        np.testing.assert_allclose(draws.mean(axis=0), self.mu, atol=0.03)
        np.testing.assert_allclose(np.cov(draws.T), self.sig, atol=0.05)

    def test_chol_draws_converge(self):
        draws = sim_mgaussian_chol(self.num_sim, self.mu, self.sig, rng=2)
        np.testing.assert_allclose(draws.mean(axis=0), self.mu, atol=0.03)
        np.testing.assert_allclose(np.cov(draws.T), self.sig, atol=0.05)

    def test_non_square_covariance(self):
        with self.assertRaises(DimensionMismatchError):
            sim_mgaussian(10, self.mu, np.ones((2, 3)))
        with self.assertRaises(DimensionMismatchError):
            sim_mgaussian_chol(10, self.mu, np.ones((3, 2)))

    def test_mean_size_mismatch(self):
        with self.assertRaises(DimensionMismatchError):
            sim_mgaussian(10, np.zeros(3), self.sig)


class TestMatrixNormal(unittest.TestCase):

    def test_shape_and_mean(self):
        mean = np.arange(6, dtype=float).reshape(3, 2)
        rng = np.random.default_rng(3)
        draws = np.array([sim_matgaussian(mean, np.eye(3), np.eye(2), rng) for _ in range(5000)])
        self.assertEqual(draws.shape, (5000, 3, 2))
        np.testing.assert_allclose(draws.mean(axis=0), mean, atol=0.1)

    def test_scale_mismatch(self):
        mean = np.zeros((3, 2))
        with self.assertRaises(DimensionMismatchError):
            sim_matgaussian(mean, np.eye(2), np.eye(2))
        with self.assertRaises(DimensionMismatchError):
            sim_matgaussian(mean, np.eye(3), np.eye(3))


class TestInverseWishart(unittest.TestCase):

    def setUp(self):
        self.scale = np.array([[2.0, 0.5], [0.5, 1.0]])
        self.shape = 10.0

    def test_tri_is_lower_triangular(self):
        chol_res = sim_iw_tri(self.scale, self.shape, rng=4)
        np.testing.assert_allclose(np.triu(chol_res, k=1), 0.0)

    def test_mean_converges(self):
        rng = np.random.default_rng(5)
        draws = np.array([sim_iw(self.scale, self.shape, rng) for _ in range(20000)])
        expected = self.scale / (self.shape - 2 - 1)
        np.testing.assert_allclose(draws.mean(axis=0), expected, atol=0.02)

    def test_draw_is_symmetric_positive_definite(self):
        draw = sim_iw(self.scale, self.shape, rng=6)
        np.testing.assert_allclose(draw, draw.T)
        self.assertTrue(np.all(np.linalg.eigvalsh(draw) > 0))

    def test_invalid_shape(self):
        with self.assertRaises(InvalidHyperparameterError):
            sim_iw(self.scale, 1.0)

    def test_non_square_scale(self):
        with self.assertRaises(DimensionMismatchError):
            sim_iw(np.ones((2, 3)), 5.0)


class TestMatrixNormalInverseWishart(unittest.TestCase):

    def test_output_shapes(self):
        res = sim_mniw(4, np.zeros((3, 2)), np.eye(3), np.eye(2), 5.0, rng=7)
        self.assertEqual(set(res), {'mn', 'iw'})
        self.assertEqual(res['mn'].shape, (4, 3, 2))
        self.assertEqual(res['iw'].shape, (4, 2, 2))

    def test_scale_mismatched_to_mean_columns(self):
        with self.assertRaises(DimensionMismatchError):
            sim_mniw(4, np.zeros((3, 2)), np.eye(3), np.eye(3), 5.0)

    def test_row_scale_mismatch(self):
        with self.assertRaises(DimensionMismatchError):
            sim_mniw(4, np.zeros((3, 2)), np.eye(2), np.eye(2), 5.0)


if __name__ == '__main__':
    unittest.main()
