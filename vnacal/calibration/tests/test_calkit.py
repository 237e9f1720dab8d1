import unittest

import numpy as npy
import pytest
from numpy.testing import assert_allclose

from vnacal.calibration import (MATCH, CalkitLoad, CalkitOpen, CalkitShort,
                                CalkitThrough, DataStandard, Solver,
                                StandardParameter, UnknownParameter)
from vnacal.mathFunctions import renormalize_s

FV = npy.linspace(1e8, 6e9, 7)


class CalkitIdealTest(unittest.TestCase):
    '''
    Without offset or parasitics the kit standards are ideal.
    '''
    def test_short(self):
        assert_allclose(CalkitShort().evaluate(FV)[:, 0, 0], -1.0,
                        atol=1e-12)

    def test_open(self):
        assert_allclose(CalkitOpen().evaluate(FV)[:, 0, 0], 1.0, atol=1e-12)

    def test_load(self):
        assert_allclose(CalkitLoad().evaluate(FV)[:, 0, 0], 0.0, atol=1e-12)

    def test_through(self):
        s = CalkitThrough().evaluate(FV)
        assert_allclose(s, npy.broadcast_to([[0.0, 1.0], [1.0, 0.0]],
                                            s.shape), atol=1e-12)

    def test_zero_frequency(self):
        f = npy.array([0.0, 1e9])
        kits = [CalkitShort(l_coefficients=(1e-12,), offset_delay=30e-12,
                            offset_loss=1e9),
                CalkitOpen(c_coefficients=(5e-15, 1e-27), offset_delay=30e-12,
                           offset_loss=1e9),
                CalkitLoad(zl=75.0, offset_delay=30e-12, offset_loss=1e9)]
        for kit, expected in zip(kits, (-1.0, 1.0, 0.2)):
            gamma = kit.evaluate(f)[:, 0, 0]
            self.assertTrue(npy.all(npy.isfinite(gamma)))
            assert_allclose(gamma[0], expected, atol=1e-12)


class CalkitOffsetTest(unittest.TestCase):
    def test_lossless_delay(self):
        delay = 40e-12
        rotation = npy.exp(-2j * npy.pi * FV * delay)
        through = CalkitThrough(offset_delay=delay).evaluate(FV)
        assert_allclose(through[:, 1, 0], rotation, atol=1e-12)
        assert_allclose(through[:, 0, 1], rotation, atol=1e-12)
        assert_allclose(through[:, 0, 0], 0.0, atol=1e-12)
        short = CalkitShort(offset_delay=delay).evaluate(FV)[:, 0, 0]
        assert_allclose(short, -rotation ** 2, atol=1e-12)
        open_ = CalkitOpen(offset_delay=delay).evaluate(FV)[:, 0, 0]
        assert_allclose(open_, rotation ** 2, atol=1e-12)

    def test_lossy_offset(self):
        lossless = CalkitShort(offset_delay=30e-12).evaluate(FV)[:, 0, 0]
        for traditional in (False, True):
            short = CalkitShort(offset_delay=30e-12, offset_loss=2e9,
                                traditional=traditional)
            gamma = short.evaluate(FV)[:, 0, 0]
            self.assertTrue(npy.all(npy.abs(gamma) < 1.0))
            self.assertTrue(npy.all(npy.abs(gamma) > 0.95))
            self.assertFalse(npy.allclose(gamma, lossless, atol=1e-6))

    def test_offset_z0_mismatch(self):
        load = CalkitLoad(zl=50.0, offset_z0=75.0, offset_delay=25e-12)
        gamma = load.evaluate(FV)[:, 0, 0]
        # the input impedance of a 75 ohm line ending in 50 ohm lies
        # between 50 and 75**2 / 50 ohm
        self.assertTrue(npy.all(npy.abs(gamma) <= 62.5 / 162.5 + 1e-12))
        self.assertTrue(npy.all(npy.abs(gamma) > 1e-3))
        assert_allclose(CalkitLoad(offset_z0=75.0).evaluate(FV)[:, 0, 0],
                        0.0, atol=1e-12)

    def test_short_inductance(self):
        inductance = 10e-12
        gamma = CalkitShort(l_coefficients=(inductance,)).evaluate(FV)[:, 0, 0]
        zl = 2j * npy.pi * FV * inductance
        assert_allclose(gamma, (zl - 50.0) / (zl + 50.0), atol=1e-12)

    def test_reference_impedance(self):
        load = CalkitLoad(zl=50.0)
        assert_allclose(load.evaluate(FV, z0=25.0)[:, 0, 0], 1.0 / 3.0,
                        atol=1e-12)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            CalkitShort(offset_z0=0.0)
        with self.assertRaises(ValueError):
            CalkitOpen(offset_delay=-1e-12)


class DataStandardTest(unittest.TestCase):
    def setUp(self):
        self.rng = npy.random.default_rng(17)
        self.fv = npy.linspace(1e9, 3e9, 9)
        self.data = 0.3 * (self.rng.standard_normal((9, 2, 2)) +
                           1j * self.rng.standard_normal((9, 2, 2)))

    def test_same_reference(self):
        standard = DataStandard(self.fv, self.data)
        assert_allclose(standard.evaluate(self.fv), self.data, atol=1e-12)

    def test_renormalize_matched_load(self):
        standard = DataStandard(self.fv, npy.zeros(9), z0=50.0)
        assert_allclose(standard.evaluate(self.fv, z0=25.0)[:, 0, 0],
                        1.0 / 3.0, atol=1e-12)

    def test_renormalize_round_trip(self):
        standard = DataStandard(self.fv, self.data, z0=[50.0, 75.0])
        s = standard.evaluate(self.fv, z0=50.0)
        back = renormalize_s(s, 50.0, [50.0, 75.0])
        assert_allclose(back, self.data, atol=1e-10)
        self.assertFalse(npy.allclose(s, self.data))

    def test_per_frequency_z0(self):
        z0 = npy.linspace(40.0, 60.0, 9)
        standard = DataStandard(self.fv, npy.zeros(9), z0=z0)
        gamma = standard.evaluate(self.fv)[:, 0, 0]
        assert_allclose(gamma, (z0 - 50.0) / (z0 + 50.0), atol=1e-12)

    def test_frequency_range(self):
        standard = DataStandard(self.fv, self.data)
        standard.evaluate([0.995e9, 3.02e9])
        with self.assertRaises(ValueError):
            standard.evaluate([0.9e9])

    def test_invalid_data(self):
        with self.assertRaises(ValueError):
            DataStandard(self.fv, npy.zeros((9, 2, 3)))
        with self.assertRaises(ValueError):
            DataStandard(self.fv, npy.zeros((8, 2, 2)))
        with self.assertRaises(ValueError):
            DataStandard(self.fv, self.data, z0=[50.0, 50.0, 50.0])


class StandardParameterTest(unittest.TestCase):
    def test_cells(self):
        through = CalkitThrough(offset_delay=10e-12)
        matrix = through.parameter_matrix()
        self.assertEqual(matrix.shape, (2, 2))
        s = through.evaluate(FV)
        for (r, c), cell in npy.ndenumerate(matrix):
            self.assertIsInstance(cell, StandardParameter)
            assert_allclose(cell.evaluate(FV), s[:, r, c])

    def test_one_port_only(self):
        with self.assertRaises(ValueError):
            CalkitThrough().parameter()
        with self.assertRaises(IndexError):
            StandardParameter(CalkitShort(), 0, 1)

    def test_unknown_initial_guess(self):
        short = CalkitShort(offset_delay=20e-12)
        gamma = UnknownParameter(short.parameter())
        assert_allclose(gamma.evaluate(FV), short.evaluate(FV)[:, 0, 0])


class PlacementTest(unittest.TestCase):
    def setUp(self):
        self.solver = Solver('T8', 3, 3, [1e9])
        self.m = npy.zeros((1, 3, 3))
        self.through = CalkitThrough().parameter_matrix()

    def test_valid_placement(self):
        self.solver.add_mapped_matrix(self.m, [
            [self.through[0, 0], self.through[0, 1], 0.0],
            [self.through[1, 0], self.through[1, 1], 0.0],
            [0.0, 0.0, MATCH]])
        self.solver.add_mapped_matrix(self.m, self.through, [3, 1])

    def test_diagonal_off_diagonal(self):
        t = self.through
        with self.assertRaises(ValueError):
            self.solver.add_mapped_matrix(self.m, [[t[0, 1], t[0, 0]],
                                                   [t[1, 0], t[1, 1]]],
                                          [1, 2])

    def test_port_on_two_vna_ports(self):
        t = self.through
        with self.assertRaises(ValueError):
            self.solver.add_mapped_matrix(self.m, [
                [t[0, 0], t[0, 1], 0.0],
                [t[1, 0], t[1, 1], t[1, 0]],
                [0.0, t[0, 1], t[0, 0]]])

    def test_missing_port(self):
        short = CalkitShort().parameter()
        t = self.through
        with self.assertRaises(ValueError):
            self.solver.add_mapped_matrix(self.m, [[t[0, 0], 0.0, 0.0],
                                                   [0.0, short, 0.0],
                                                   [0.0, 0.0, MATCH]])

    def test_mixed_with_other_parameters(self):
        t = self.through
        with self.assertRaises(ValueError):
            self.solver.add_mapped_matrix(self.m, [
                [t[0, 0], t[0, 1], 0.1],
                [t[1, 0], t[1, 1], 0.0],
                [0.1, 0.0, MATCH]])


@pytest.mark.parametrize('cal_type', ['T8', 'U8', 'E12'])
def test_solt_with_calkit(cal_type, make_calibration, rng):
    fv = npy.linspace(1e9, 3e9, 5)
    actual = make_calibration(cal_type, 2, 2, fv, rng)
    short = CalkitShort(l_coefficients=(2e-12, 1e-22), offset_delay=30e-12)
    open_ = CalkitOpen(c_coefficients=(8e-15,), offset_delay=29e-12)
    load = CalkitLoad(zl=51.0)
    through = CalkitThrough(offset_delay=50e-12, offset_loss=1e9)
    solver = Solver(cal_type, 2, 2, fv)
    for kit in (short, open_, load):
        gamma = kit.evaluate(fv)[:, 0, 0]
        m = npy.stack([actual.evaluate(npy.diag([g, g]))[k]
                       for k, g in enumerate(gamma)])
        solver.add_double_reflect(m, kit.parameter(), kit.parameter())
    s = through.evaluate(fv)
    m = npy.stack([actual.evaluate(s[k])[k] for k in range(len(fv))])
    solver.add_mapped_matrix(m, through.parameter_matrix())
    result = solver.solve()
    assert_allclose(result.calibration.error_terms, actual.error_terms,
                    rtol=1e-6, atol=1e-9)


def test_data_standard_in_solve(make_calibration, rng):
    fv = npy.linspace(1e9, 2e9, 3)
    actual = make_calibration('E12', 2, 2, fv, rng)
    line = DataStandard(fv, npy.tile([[0.2, 0.7j], [0.7j, 0.1]], (3, 1, 1)),
                        z0=25.0)
    s_line = line.evaluate(fv)
    solver = Solver('E12', 2, 2, fv)
    for k in (-1.0, 1.0, 0.0):
        solver.add_double_reflect(actual.evaluate(npy.eye(2) * k), k, k)
    m = npy.stack([actual.evaluate(s_line[k])[k] for k in range(len(fv))])
    solver.add_line(m, line.parameter_matrix())
    result = solver.solve()
    assert_allclose(result.calibration.error_terms, actual.error_terms,
                    rtol=1e-6, atol=1e-9)
