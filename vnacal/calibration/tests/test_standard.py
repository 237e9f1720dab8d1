import unittest

import numpy as npy
from numpy.testing import assert_allclose, assert_equal

from vnacal.calibration import (ONE, SHORT, ZERO, InvalidDimensions, Layout,
                                MeasuredStandard, SingularMatrix,
                                UnknownParameter, measurement_from_ab)


def measured(cal_type, n, s, port_map=None, frequencies=1):
    layout = Layout(cal_type, n, n).solve_layout()
    return MeasuredStandard(layout, npy.zeros((frequencies, n, n)), s,
                            port_map)


class ThroughOnThreePortsTest(unittest.TestCase):
    '''
    A through between ports 1 and 2 of a 3 port calibration.
    '''
    def setUp(self):
        self.standard = measured('TE10', 3, [[0.0, 1.0], [1.0, 0.0]], [1, 2])

    def test_cells(self):
        cells = self.standard.s_cells
        self.assertIs(cells[0, 1], ONE)
        self.assertIs(cells[0, 0], ZERO)
        self.assertIs(cells[0, 2], ZERO)
        self.assertIs(cells[2, 1], ZERO)
        self.assertIsNone(cells[2, 2])

    def test_reachable(self):
        assert_equal(self.standard.reachable,
                     [[True, True, False], [True, True, False],
                      [False, False, True]])
        assert_equal(self.standard.port_connected, [True, True, False])

    def test_given(self):
        assert_equal(self.standard.row_given, [True, True, False])
        assert_equal(self.standard.column_given, [True, True, False])

    def test_equation_cells(self):
        self.assertEqual(self.standard.equation_cells(),
                         [(0, 0), (0, 1), (1, 0), (1, 1)])

    def test_leakage_cells(self):
        self.assertEqual(self.standard.leakage_cells(),
                         [(0, 2), (1, 2), (2, 0), (2, 1)])

    def test_v_mask(self):
        assert_equal(self.standard.v_mask(),
                     [[True, True, False], [True, True, False],
                      [False, False, False]])

    def test_s_matrix(self):
        s = self.standard.s_matrix({id(ONE): 1.0, id(ZERO): 0.0}, {})
        assert_equal(s, [[0, 1, 0], [1, 0, 0], [0, 0, 0]])


class ReachabilityTest(unittest.TestCase):
    def test_transitive(self):
        # 1 -> 2 and 2 -> 3 gives a path from 1 to 3
        s = [[0.0, 0.5, 0.0], [0.5, 0.0, 0.5], [0.0, 0.5, 0.0]]
        standard = measured('T8', 3, s)
        self.assertTrue(standard.reachable[0, 2])
        self.assertTrue(standard.reachable[2, 0])
        self.assertEqual(standard.leakage_cells(), [])

    def test_full_connectivity(self):
        standard = measured('T16', 2, [[SHORT, ZERO], [ZERO, SHORT]])
        assert_equal(standard.connectivity, npy.ones((2, 2), dtype=bool))
        self.assertEqual(len(standard.equation_cells()), 4)
        standard = measured('T8', 2, [[SHORT, ZERO], [ZERO, SHORT]])
        self.assertEqual(standard.equation_cells(), [(0, 0), (1, 1)])

    def test_column_system(self):
        standard = measured('E12', 2, [[SHORT, ZERO], [ZERO, SHORT]])
        self.assertEqual(standard.equation_cells(1), [(1, 1)])
        standard = measured('E12', 2, [[0.0, 1.0], [1.0, 0.0]])
        self.assertEqual(standard.equation_cells(1), [(0, 1), (1, 1)])


class ParametersTest(unittest.TestCase):
    def test_parameters(self):
        gamma = UnknownParameter(SHORT)
        standard = measured('T8', 2, [[gamma, ZERO], [ZERO, gamma]])
        parameters = standard.parameters()
        self.assertEqual(len(parameters), 2)
        self.assertIs(parameters[0], gamma)
        assert_equal(standard.indicator(gamma), npy.eye(2))
        s = standard.s_matrix({id(ZERO): 0.0}, {id(gamma): -0.5})
        assert_allclose(s, -0.5 * npy.eye(2))


class ValidationTest(unittest.TestCase):
    def test_map_required(self):
        with self.assertRaises(InvalidDimensions):
            measured('T8', 2, [[SHORT]])

    def test_bad_port_maps(self):
        with self.assertRaises(InvalidDimensions):
            measured('T8', 2, [[SHORT]], [3])
        with self.assertRaises(InvalidDimensions):
            measured('T8', 2, [[SHORT, ZERO], [ZERO, SHORT]], [1, 1])
        with self.assertRaises(InvalidDimensions):
            measured('T8', 2, [[SHORT]], [1, 2])

    def test_incomplete_column(self):
        # T parameters need complete S columns
        with self.assertRaises(InvalidDimensions):
            measured('T8', 3, [[0.0, 1.0]], [1, 2])
        # U parameters need complete S rows
        with self.assertRaises(InvalidDimensions):
            measured('U8', 3, [[0.0], [1.0]], [1, 2])

    def test_too_large(self):
        with self.assertRaises(InvalidDimensions):
            measured('T8', 1, [[0.0, 1.0], [1.0, 0.0]], [1, 2])

    def test_m_shape(self):
        layout = Layout('T8', 2, 2)
        with self.assertRaises(InvalidDimensions):
            MeasuredStandard(layout, npy.zeros((1, 2, 3)),
                             [[SHORT, ZERO], [ZERO, SHORT]])
        standard = MeasuredStandard(layout, npy.zeros((2, 2)),
                                    [[SHORT, ZERO], [ZERO, SHORT]], index=4)
        self.assertEqual(standard.frequencies, 1)
        self.assertIn('index=4', repr(standard))


class MeasurementFromABTest(unittest.TestCase):
    def test_m(self):
        a = npy.array([[[2.0, 0.0], [0.0, 4.0]]])
        b = npy.array([[[2.0, 4.0], [6.0, 8.0]]])
        assert_allclose(measurement_from_ab(a, b), [[[1.0, 1.0], [3.0, 2.0]]])

    def test_column_system(self):
        a = npy.array([[[2.0, 4.0]]])
        b = npy.array([[[2.0, 4.0], [6.0, 8.0]]])
        assert_allclose(measurement_from_ab(a, b, column_system=True),
                        [[[1.0, 1.0], [3.0, 2.0]]])

    def test_singular(self):
        a = npy.ones((1, 2, 2))
        with self.assertRaises(SingularMatrix) as e:
            measurement_from_ab(a, npy.ones((1, 2, 2)), standard_index=2)
        self.assertEqual(e.exception.frequency_index, 0)
        self.assertEqual(e.exception.standard_index, 2)

    def test_shape(self):
        with self.assertRaises(InvalidDimensions):
            measurement_from_ab(npy.ones((1, 1, 2)), npy.ones((1, 2, 2)))
