'''
.. module:: vnacal.calibration.layout
================================================================
layout (:mod:`vnacal.calibration.layout`)
================================================================

Error term types and the layout of error terms in the per-frequency
error term vector.

Each error term type stores its terms as a set of named blocks, packed
one after the other into a flat vector:

======  ==========================================  ===================
type    blocks                                      leakage
======  ==========================================  ===================
T8      ts, ti, tx, tm (diagonal)                   none
TE10    ts, ti, tx, tm (diagonal)                   el (off-diagonal)
T16     ts, ti, tx, tm (full)                       in the system
U8      um, ui, ux, us (diagonal)                   none
UE10    um, ui, ux, us (diagonal)                   el (off-diagonal)
U16     um, ui, ux, us (full)                       in the system
UE14    per column: um, ui, ux, us                  el (off-diagonal)
E12     per column: el, er, em                      el (off-diagonal)
======  ==========================================  ===================

T types relate the measurement M of a standard with S-parameters S by
``Ts S + Ti = M (Tx S + Tm)``, U types by ``Um M + Ui = S (Ux M + Us)``.
One term of each linear system (tm11 in T, um11 in U, and the column's
own um diagonal in UE14) is normalized to one.

.. autosummary::
   :toctree: generated/

   CalType
   Block
   Layout
   compute_layout
   needed_standards

'''
from collections import namedtuple
from enum import Enum
from math import ceil

import numpy as npy

from .exceptions import InvalidDimensions


class CalType(Enum):
    '''
    Error term types.
    '''
    T8 = 'T8'
    U8 = 'U8'
    TE10 = 'TE10'
    UE10 = 'UE10'
    T16 = 'T16'
    U16 = 'U16'
    UE14 = 'UE14'
    E12 = 'E12'

    @classmethod
    def from_name(cls, name):
        '''
        Look up an error term type by name, ignoring case.

        Parameters
        ----------
        name : str or :class:`CalType`

        Returns
        -------
        cal_type : :class:`CalType`
        '''
        if isinstance(name, cls):
            return name
        try:
            return cls[str(name).upper()]
        except KeyError:
            raise ValueError('unknown error term type: %r' % (name,))

    @property
    def is_t(self):
        '''
        True if the type uses scattering transfer (T) parameters.
        '''
        return self in (CalType.T8, CalType.TE10, CalType.T16)

    @property
    def is_u(self):
        '''
        True if the type uses inverse scattering transfer (U) parameters.
        '''
        return not self.is_t

    @property
    def is_full(self):
        '''
        True for the 16-term types with full (non-diagonal) blocks.
        '''
        return self in (CalType.T16, CalType.U16)

    @property
    def has_leakage(self):
        '''
        True if leakage terms are solved outside of the linear system.
        '''
        return self in (CalType.TE10, CalType.UE10, CalType.UE14,
                        CalType.E12)

    @property
    def is_column_system(self):
        '''
        True if each driven VNA port forms an independent linear system.
        '''
        return self in (CalType.UE14, CalType.E12)


Block = namedtuple('Block', ['name', 'offset', 'rows', 'columns', 'entries'])
Block.__doc__ = '''
Named block of error terms.

`entries` lists the (row, column) cell of the block matrix that each
stored term occupies, in storage order, starting at `offset` in the
error term vector.
'''


def _diagonal(rows, columns):
    return [(i, i) for i in range(min(rows, columns))]


def _full(rows, columns):
    return [(i, j) for i in range(rows) for j in range(columns)]


class Layout(object):
    '''
    Layout of the error terms of a calibration.

    A layout is derived from the error term type and the dimensions of
    the measurement matrix and is immutable once created.

    Parameters
    ----------
    cal_type : :class:`CalType` or str
        error term type
    m_rows : int
        number of VNA detectors (rows of the measurement matrix)
    m_columns : int
        number of VNA driven ports (columns of the measurement matrix)

    Raises
    ------
    InvalidDimensions
        if T types are given m_rows > m_columns, or U types are given
        m_rows < m_columns

    Examples
    --------
    >>> layout = Layout('T8', 2, 2)
    >>> layout.error_terms
    8
    >>> layout.ts_offset(), layout.tm_offset()
    (0, 6)
    '''
    def __init__(self, cal_type, m_rows, m_columns):
        cal_type = CalType.from_name(cal_type)
        m_rows, m_columns = int(m_rows), int(m_columns)
        if m_rows < 1 or m_columns < 1:
            raise InvalidDimensions('%s: invalid dimensions %d x %d' %
                                    (cal_type.name, m_rows, m_columns))
        if cal_type.is_t and m_rows > m_columns:
            raise InvalidDimensions(
                '%s: m_rows (%d) cannot exceed m_columns (%d)' %
                (cal_type.name, m_rows, m_columns))
        if cal_type.is_u and m_rows < m_columns:
            raise InvalidDimensions(
                '%s: m_columns (%d) cannot exceed m_rows (%d)' %
                (cal_type.name, m_columns, m_rows))

        self.cal_type = cal_type
        self.m_rows = m_rows
        self.m_columns = m_columns
        self.s_rows = self.s_columns = max(m_rows, m_columns)
        self._blocks = {}

        offset = 0
        if cal_type.is_column_system:
            self.systems = m_columns
            for c in range(m_columns):
                for name, rows, columns, entries in self._column_blocks(c):
                    offset = self._add_block(name, c, offset, rows, columns,
                                             entries)
            self.t_terms = offset // m_columns
        else:
            self.systems = 1
            for name, rows, columns, entries in self._system_blocks():
                offset = self._add_block(name, 0, offset, rows, columns,
                                         entries)
            self.t_terms = offset

        if cal_type.has_leakage and cal_type is not CalType.E12:
            entries = [(r, c) for r in range(m_rows) for c in range(m_columns)
                       if r != c]
            self.leakage_offset = offset
            offset = self._add_block('el', 0, offset, m_rows, m_columns,
                                     entries)
        else:
            self.leakage_offset = offset
        self.leakage_terms = offset - self.leakage_offset
        self.error_terms = offset

    def _add_block(self, name, system, offset, rows, columns, entries):
        self._blocks[name, system] = Block(name, offset, rows, columns,
                                           tuple(entries))
        return offset + len(entries)

    def _system_blocks(self):
        m_rows, m_columns = self.m_rows, self.m_columns
        s_rows, s_columns = self.s_rows, self.s_columns
        fill = _full if self.cal_type.is_full else _diagonal
        if self.cal_type.is_t:
            shapes = [('ts', m_rows, s_rows), ('ti', m_rows, s_columns),
                      ('tx', m_columns, s_rows), ('tm', m_columns, s_columns)]
        else:
            shapes = [('um', s_rows, m_rows), ('ui', s_rows, m_columns),
                      ('ux', s_columns, m_rows), ('us', s_columns, m_columns)]
        return [(name, rows, columns, fill(rows, columns))
                for name, rows, columns in shapes]

    def _column_blocks(self, c):
        m_rows, m_columns = self.m_rows, self.m_columns
        if self.cal_type is CalType.E12:
            column = [(r, c) for r in range(m_rows)]
            return [('el', m_rows, m_columns, column),
                    ('er', m_rows, m_columns, column),
                    ('em', m_rows, m_columns, column)]
        s_rows, s_columns = self.s_rows, self.s_columns
        return [('um', s_rows, m_rows, _diagonal(s_rows, m_rows)),
                ('ui', s_rows, m_columns, [(c, c)]),
                ('ux', s_columns, m_rows, _diagonal(s_columns, m_rows)),
                ('us', s_columns, m_columns, [(c, c)])]

    def __repr__(self):
        return 'Layout(%s, %d, %d)' % (self.cal_type.name, self.m_rows,
                                        self.m_columns)

    def __eq__(self, other):
        if not isinstance(other, Layout):
            return NotImplemented
        return (self.cal_type, self.m_rows, self.m_columns) == \
            (other.cal_type, other.m_rows, other.m_columns)

    def __hash__(self):
        return hash((self.cal_type, self.m_rows, self.m_columns))

    @property
    def is_t(self):
        return self.cal_type.is_t

    @property
    def is_u(self):
        return self.cal_type.is_u

    @property
    def x_terms(self):
        '''
        Number of unknown error terms in each linear system.
        '''
        return self.t_terms - 1

    @property
    def e_terms(self):
        '''
        Number of E12 terms per column (el, er and em).
        '''
        if self.cal_type is not CalType.E12:
            raise ValueError('%s has no E12 terms' % self.cal_type.name)
        return self.t_terms

    @property
    def v_shape(self):
        '''
        Shape of the V matrix of a measured standard.
        '''
        if self.cal_type is CalType.E12:
            raise ValueError('E12 is solved through UE14; use solve_layout()')
        if self.is_t:
            return (self.s_columns, self.s_columns)
        return (self.s_rows, self.s_rows)

    def block(self, name, system=0):
        '''
        Return the :class:`Block` with the given name.

        Parameters
        ----------
        name : str
            block name, e.g. 'ts', 'um' or 'el'
        system : int
            column system (UE14 and E12 only)

        Raises
        ------
        ValueError
            if the type has no such block
        '''
        if not self.cal_type.is_column_system or \
                (name == 'el' and self.cal_type is not CalType.E12):
            system = 0
        try:
            return self._blocks[name, system]
        except KeyError:
            raise ValueError('%s has no %s block for system %d' %
                             (self.cal_type.name, name, system))

    def blocks(self, system=0):
        '''
        List the blocks of one linear system in storage order, excluding
        leakage terms solved outside of the system.
        '''
        return [b for (name, s), b in self._blocks.items()
                if s == system and not (name == 'el' and
                                        self.cal_type is not CalType.E12)]

    def block_entries(self, name, system=0):
        '''
        Return the (row, column) cells of the terms of a block.
        '''
        return list(self.block(name, system).entries)

    def system_offset(self, system):
        '''
        Offset in the error term vector of the first term of a system.
        '''
        if not 0 <= system < self.systems:
            raise IndexError('system index %d out of range' % system)
        return system * self.t_terms

    def unity_offset(self, system=0):
        '''
        Offset in the error term vector of the term normalized to one.

        For T types this is tm11, for U types um11 and for UE14 the
        diagonal um term of the system's own column.
        '''
        if self.cal_type is CalType.E12:
            raise ValueError('E12 has no unity term; use solve_layout()')
        if self.is_t:
            return self.block('tm').offset
        if self.cal_type is CalType.UE14:
            return self.block('um', system).offset + system
        return self.block('um').offset

    def x_indices(self, system=0):
        '''
        Offsets of the unknown (non-unity) terms of a linear system.
        '''
        start = self.system_offset(system)
        unity = self.unity_offset(system)
        return [i for i in range(start, start + self.t_terms) if i != unity]

    def leakage_map(self):
        '''
        Map of off-diagonal measurement cells to leakage term indices.

        Returns
        -------
        leakage : dict
            ``{(row, column): index}`` where index counts row-major over
            the off-diagonal cells and is relative to the first leakage
            term. Empty if the type has no leakage terms.
        '''
        if not self.cal_type.has_leakage:
            return {}
        cells = [(r, c) for r in range(self.m_rows)
                 for c in range(self.m_columns) if r != c]
        return dict((cell, i) for i, cell in enumerate(cells))

    def block_matrix(self, name, terms, system=0):
        '''
        Expand the terms of a block into a matrix.

        Parameters
        ----------
        name : str
            block name
        terms : npy.ndarray
            error term vector (last axis indexed by term); leading axes,
            e.g. frequency, are kept
        system : int
            column system

        Returns
        -------
        matrix : npy.ndarray
            shape ``terms.shape[:-1] + (rows, columns)``
        '''
        b = self.block(name, system)
        terms = npy.asarray(terms)
        out = npy.zeros(terms.shape[:-1] + (b.rows, b.columns), dtype=complex)
        if b.entries:
            rows, columns = zip(*b.entries)
            out[..., list(rows), list(columns)] = \
                terms[..., b.offset:b.offset + len(b.entries)]
        return out

    def leakage_matrix(self, terms):
        '''
        Return the m_rows x m_columns leakage matrix (zero diagonal).
        '''
        terms = npy.asarray(terms)
        out = npy.zeros(terms.shape[:-1] + (self.m_rows, self.m_columns),
                        dtype=complex)
        if self.cal_type is CalType.E12:
            for c in range(self.m_columns):
                el = self.block_matrix('el', terms, c)
                for r in range(self.m_rows):
                    if r != c:
                        out[..., r, c] = el[..., r, c]
            return out
        if self.leakage_terms:
            out += self.block_matrix('el', terms)
        return out

    def solve_layout(self):
        '''
        Return the layout used to solve the linear systems.

        E12 is solved as UE14 and converted afterward; every other type
        is solved directly.
        '''
        if self.cal_type is CalType.E12:
            return Layout(CalType.UE14, self.m_rows, self.m_columns)
        return self

    def describe(self):
        '''
        Names of the error terms in storage order.

        Terms of column systems are prefixed with their column, e.g.
        ``c2.um11``.
        '''
        names = [None] * self.error_terms
        for (name, system), b in self._blocks.items():
            if self.cal_type.is_column_system and \
                    not (name == 'el' and self.cal_type is not CalType.E12):
                prefix = 'c%d.' % (system + 1)
            else:
                prefix = ''
            for i, (r, c) in enumerate(b.entries):
                names[b.offset + i] = '%s%s%d%d' % (prefix, name, r + 1, c + 1)
        return names


def _block_accessor(name, attribute):
    def accessor(self, system=0):
        b = self.block(name, system)
        if attribute == 'terms':
            return len(b.entries)
        return getattr(b, attribute)
    accessor.__name__ = '%s_%s' % (name, attribute)
    accessor.__doc__ = '%s of the %s block' % (attribute, name)
    return accessor


for _name in ('ts', 'ti', 'tx', 'tm', 'um', 'ui', 'ux', 'us', 'el', 'er',
              'em'):
    for _attribute in ('offset', 'rows', 'columns', 'terms'):
        setattr(Layout, '%s_%s' % (_name, _attribute),
                _block_accessor(_name, _attribute))
del _name, _attribute


def compute_layout(cal_type, m_rows, m_columns):
    '''
    Compute the error term layout of a calibration.

    See :class:`Layout`.
    '''
    return Layout(cal_type, m_rows, m_columns)


def equations_per_standard(layout):
    '''
    Equations a fully connected standard adds to each linear system.
    '''
    layout = layout.solve_layout()
    if layout.cal_type is CalType.UE14:
        return layout.m_rows
    if layout.is_t:
        return layout.m_rows * layout.s_columns
    return layout.s_rows * layout.m_columns


def needed_standards(cal_type, m_rows, m_columns):
    '''
    Lower bound on the number of standards needed to solve a calibration.

    The bound assumes fully connected standards; standards that leave
    ports unconnected contribute fewer equations.

    Parameters
    ----------
    cal_type : :class:`CalType` or str
    m_rows : int
    m_columns : int

    Returns
    -------
    count : int

    Examples
    --------
    >>> needed_standards('E12', 1, 1)
    3
    '''
    layout = Layout(cal_type, m_rows, m_columns)
    solve = layout.solve_layout()
    count = int(ceil(solve.x_terms / float(equations_per_standard(solve))))
    if solve.leakage_terms:
        count += 1
    return count
