import unittest

import numpy as npy
from numpy.testing import assert_allclose

from vnacal.calibration import (MATCH, ONE, OPEN, SHORT, ZERO,
                                CorrelatedParameter, ScalarParameter,
                                UnknownParameter, VectorParameter,
                                as_parameter)


class ScalarParameterTest(unittest.TestCase):
    def test_predefined(self):
        self.assertIs(MATCH, ZERO)
        self.assertIs(OPEN, ONE)
        self.assertEqual(SHORT.value, -1.0)
        self.assertTrue(ZERO.is_zero)
        self.assertFalse(SHORT.is_zero)

    def test_as_parameter(self):
        self.assertIs(as_parameter(0), ZERO)
        self.assertIs(as_parameter(1.0), ONE)
        self.assertIs(as_parameter(npy.float64(0.0)), ZERO)
        self.assertIs(as_parameter(SHORT), SHORT)
        p = as_parameter(0.5j)
        self.assertIsInstance(p, ScalarParameter)
        self.assertEqual(p.value, 0.5j)
        with self.assertRaises(TypeError):
            as_parameter('short')

    def test_evaluate(self):
        assert_allclose(SHORT.evaluate([1e9, 2e9]), [-1.0, -1.0])


class VectorParameterTest(unittest.TestCase):
    def setUp(self):
        self.fv = npy.linspace(1e9, 10e9, 10)
        self.values = 0.5 * npy.exp(-0.2j * self.fv / 1e9)
        self.p = VectorParameter(self.fv, self.values)

    def test_evaluate_at_points(self):
        assert_allclose(self.p.evaluate(self.fv), self.values)

    def test_interpolate(self):
        f = npy.array([5.5e9])
        assert_allclose(self.p.evaluate(f), 0.5 * npy.exp(-1.1j), atol=1e-4)

    def test_extrapolation_limit(self):
        self.p.evaluate([0.995e9, 10.05e9])
        with self.assertRaises(ValueError):
            self.p.evaluate([0.9e9])
        with self.assertRaises(ValueError):
            self.p.evaluate([10.2e9])

    def test_invalid(self):
        with self.assertRaises(ValueError):
            VectorParameter([2e9, 1e9], [0.0, 0.0])
        with self.assertRaises(ValueError):
            VectorParameter([1e9, 2e9], [0.0])
        with self.assertRaises(ValueError):
            VectorParameter([], [])

    def test_not_zero(self):
        self.assertFalse(VectorParameter([1e9], [0.0]).is_zero)


class UnknownParameterTest(unittest.TestCase):
    def test_initial_guess(self):
        p = UnknownParameter(SHORT)
        self.assertTrue(p.is_unknown)
        self.assertFalse(p.is_zero)
        assert_allclose(p.evaluate([1e9]), [-1.0])
        self.assertEqual(UnknownParameter(0.3).initial.value, 0.3)

    def test_unknown_initial_guess(self):
        with self.assertRaises(TypeError):
            UnknownParameter(UnknownParameter(SHORT))


class CorrelatedParameterTest(unittest.TestCase):
    def test_known_other(self):
        p = CorrelatedParameter(SHORT, 0.01)
        self.assertTrue(p.is_unknown)
        self.assertIs(p.initial, SHORT)
        assert_allclose(p.evaluate_sigma([1e9, 2e9]), [0.01, 0.01])

    def test_unknown_other(self):
        other = UnknownParameter(OPEN)
        p = CorrelatedParameter(other, 0.01)
        self.assertIs(p.other, other)
        self.assertIs(p.initial, OPEN)

    def test_sigma_vector(self):
        p = CorrelatedParameter(SHORT, [0.01, 0.02], [1e9, 2e9])
        assert_allclose(p.evaluate_sigma([1e9, 2e9]), [0.01, 0.02])
        assert_allclose(p.evaluate_sigma([1.5e9]), [0.015])
        with self.assertRaises(ValueError):
            p.evaluate_sigma([3e9])

    def test_invalid_sigma(self):
        with self.assertRaises(ValueError):
            CorrelatedParameter(SHORT, 0.0)
        with self.assertRaises(ValueError):
            CorrelatedParameter(SHORT, [0.01, 0.02])
        with self.assertRaises(ValueError):
            CorrelatedParameter(SHORT, [0.01], [1e9, 2e9])
