import unittest

import numpy as npy
import pytest
from numpy.testing import assert_equal

from vnacal.calibration import InvalidDimensions, Layout, compute_layout
from vnacal.calibration.layout import CalType, equations_per_standard


@pytest.mark.parametrize('cal_type, m_rows, m_columns, error_terms', [
    ('T8', 2, 2, 8), ('U8', 2, 2, 8), ('TE10', 2, 2, 10), ('UE10', 2, 2, 10),
    ('T16', 2, 2, 16), ('U16', 2, 2, 16), ('UE14', 2, 2, 14),
    ('E12', 2, 2, 12), ('T8', 1, 1, 4), ('E12', 1, 1, 3), ('UE14', 1, 1, 4),
    ('T8', 3, 3, 12), ('T16', 3, 3, 36), ('UE14', 3, 3, 30),
    ('U8', 2, 1, 6), ('T8', 1, 2, 6), ('TE10', 1, 2, 7)])
def test_error_terms(cal_type, m_rows, m_columns, error_terms):
    layout = compute_layout(cal_type, m_rows, m_columns)
    assert layout.error_terms == error_terms


def test_invalid_dimensions():
    with pytest.raises(InvalidDimensions):
        Layout('T8', 2, 1)
    with pytest.raises(InvalidDimensions):
        Layout('UE14', 1, 2)
    with pytest.raises(InvalidDimensions):
        Layout('E12', 0, 1)
    with pytest.raises(ValueError):
        Layout('X7', 2, 2)


class CalTypeTest(unittest.TestCase):
    def test_from_name(self):
        for cal_type in CalType:
            self.assertIs(CalType.from_name(cal_type.name.lower()), cal_type)
            self.assertIs(CalType.from_name(cal_type), cal_type)

    def test_properties(self):
        self.assertTrue(CalType.TE10.is_t)
        self.assertTrue(CalType.E12.is_u)
        self.assertEqual(set(t for t in CalType if t.has_leakage),
                         set([CalType.TE10, CalType.UE10, CalType.UE14,
                              CalType.E12]))
        self.assertEqual(set(t for t in CalType if t.is_column_system),
                         set([CalType.UE14, CalType.E12]))


class T8LayoutTest(unittest.TestCase):
    def setUp(self):
        self.layout = Layout('T8', 2, 2)

    def test_offsets(self):
        layout = self.layout
        self.assertEqual([layout.ts_offset(), layout.ti_offset(),
                          layout.tx_offset(), layout.tm_offset()],
                         [0, 2, 4, 6])
        self.assertEqual(layout.ts_terms(), 2)
        self.assertEqual(layout.unity_offset(), 6)
        self.assertEqual(layout.x_indices(), [0, 1, 2, 3, 4, 5, 7])
        self.assertEqual(layout.systems, 1)
        self.assertEqual(layout.t_terms, 8)
        self.assertEqual(layout.leakage_terms, 0)
        self.assertEqual(layout.v_shape, (2, 2))

    def test_no_u_blocks(self):
        with self.assertRaises(ValueError):
            self.layout.um_offset()

    def test_block_entries(self):
        self.assertEqual(self.layout.block_entries('tx'), [(0, 0), (1, 1)])

    def test_describe(self):
        self.assertEqual(self.layout.describe(),
                         ['ts11', 'ts22', 'ti11', 'ti22', 'tx11', 'tx22',
                          'tm11', 'tm22'])

    def test_block_matrix(self):
        terms = npy.arange(8) + 1.0
        assert_equal(self.layout.block_matrix('ti', terms),
                     [[3.0, 0.0], [0.0, 4.0]])

    def test_equality(self):
        self.assertEqual(self.layout, Layout('t8', 2, 2))
        self.assertNotEqual(self.layout, Layout('U8', 2, 2))
        self.assertEqual(len(set([self.layout, Layout('T8', 2, 2)])), 1)


class T16LayoutTest(unittest.TestCase):
    def test_full_blocks(self):
        layout = Layout('T16', 2, 2)
        self.assertEqual(layout.block_entries('ti'),
                         [(0, 0), (0, 1), (1, 0), (1, 1)])
        self.assertEqual(layout.unity_offset(), 12)
        self.assertEqual(layout.leakage_terms, 0)


class TE10LayoutTest(unittest.TestCase):
    def test_leakage(self):
        layout = Layout('TE10', 2, 2)
        self.assertEqual(layout.leakage_offset, 8)
        self.assertEqual(layout.el_offset(), 8)
        self.assertEqual(layout.el_terms(), 2)
        self.assertEqual(layout.leakage_map(), {(0, 1): 0, (1, 0): 1})
        self.assertEqual(layout.blocks(), [layout.block(name) for name in
                                           ('ts', 'ti', 'tx', 'tm')])
        terms = npy.zeros(10)
        terms[8:] = [5.0, 7.0]
        assert_equal(layout.leakage_matrix(terms), [[0.0, 5.0], [7.0, 0.0]])


class UE14LayoutTest(unittest.TestCase):
    def setUp(self):
        self.layout = Layout('UE14', 3, 3)

    def test_systems(self):
        layout = self.layout
        self.assertEqual(layout.systems, 3)
        self.assertEqual(layout.t_terms, 8)
        self.assertEqual(layout.system_offset(2), 16)
        self.assertEqual(layout.leakage_offset, 24)
        self.assertEqual(layout.leakage_terms, 6)

    def test_unity(self):
        layout = self.layout
        self.assertEqual(layout.um_offset(1), 8)
        self.assertEqual(layout.unity_offset(1), 9)
        self.assertEqual(layout.ui_offset(1), 11)
        self.assertEqual(layout.block_entries('us', 2), [(2, 2)])

    def test_describe(self):
        names = self.layout.describe()
        self.assertEqual(names[:4], ['c1.um11', 'c1.um22', 'c1.um33',
                                     'c1.ui11'])
        self.assertEqual(names[-1], 'el32')

    def test_bad_system(self):
        with self.assertRaises(IndexError):
            self.layout.system_offset(3)


class E12LayoutTest(unittest.TestCase):
    def setUp(self):
        self.layout = Layout('E12', 2, 2)

    def test_offsets(self):
        layout = self.layout
        self.assertEqual(layout.e_terms, 6)
        self.assertEqual([layout.el_offset(1), layout.er_offset(1),
                          layout.em_offset(1)], [6, 8, 10])
        self.assertEqual(layout.block_entries('er', 1), [(0, 1), (1, 1)])

    def test_solve_layout(self):
        self.assertEqual(self.layout.solve_layout(), Layout('UE14', 2, 2))
        with self.assertRaises(ValueError):
            self.layout.v_shape
        with self.assertRaises(ValueError):
            self.layout.unity_offset()

    def test_leakage_matrix(self):
        terms = npy.arange(12) + 1.0
        assert_equal(self.layout.leakage_matrix(terms),
                     [[0.0, 7.0], [2.0, 0.0]])


def test_equations_per_standard():
    assert equations_per_standard(Layout('T8', 2, 2)) == 4
    assert equations_per_standard(Layout('U8', 3, 2)) == 6
    assert equations_per_standard(Layout('E12', 3, 3)) == 3


def _layouts(max_ports=4):
    for cal_type in CalType:
        for m_rows in range(1, max_ports + 1):
            for m_columns in range(1, max_ports + 1):
                if (m_rows <= m_columns) if cal_type.is_t else \
                        (m_rows >= m_columns):
                    yield cal_type.name, m_rows, m_columns


@pytest.mark.parametrize('cal_type, m_rows, m_columns', list(_layouts()))
def test_blocks_partition_error_terms(cal_type, m_rows, m_columns):
    '''
    The blocks of every system together with the leakage terms cover
    each error term exactly once.
    '''
    layout = Layout(cal_type, m_rows, m_columns)
    cover = npy.zeros(layout.error_terms, dtype=int)
    blocks = [b for system in range(layout.systems)
              for b in layout.blocks(system)]
    if layout.cal_type.has_leakage and layout.cal_type is not CalType.E12:
        blocks.append(layout.block('el'))
    for b in blocks:
        cover[b.offset:b.offset + len(b.entries)] += 1
    assert_equal(cover, 1)
    for system in range(layout.systems):
        start = layout.system_offset(system)
        system_terms = sum(len(b.entries) for b in layout.blocks(system))
        assert system_terms == layout.t_terms
        assert start + layout.t_terms <= layout.error_terms


@pytest.mark.parametrize('cal_type, m_rows, m_columns',
                         [x for x in _layouts() if x[0] != 'E12'])
def test_x_indices_skip_unity(cal_type, m_rows, m_columns):
    layout = Layout(cal_type, m_rows, m_columns)
    for system in range(layout.systems):
        start = layout.system_offset(system)
        indices = layout.x_indices(system)
        assert len(indices) == layout.x_terms
        assert layout.unity_offset(system) not in indices
        assert_equal(sorted(indices + [layout.unity_offset(system)]),
                     npy.arange(start, start + layout.t_terms))
