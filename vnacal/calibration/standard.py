'''
.. module:: vnacal.calibration.standard
================================================================
standard (:mod:`vnacal.calibration.standard`)
================================================================

Measured calibration standards.

A :class:`MeasuredStandard` places the (possibly partial) S matrix of a
standard into the port space of the VNA and holds the measurements
made of it.

.. autosummary::
   :toctree: generated/

   MeasuredStandard
   measurement_from_ab

'''
import numpy as npy

from ..mathFunctions import mrdivide
from .exceptions import InvalidDimensions, SingularMatrix
from .layout import CalType
from .parameter import ZERO, StandardParameter, as_parameter


def measurement_from_ab(a, b, column_system=False, standard_index=None):
    '''
    Find the measurement matrix M = B A^-1 from voltage matrices.

    Parameters
    ----------
    a : npy.ndarray
        frequencies x columns x columns matrix of voltages leaving the
        VNA; for column systems a frequencies x 1 x columns row of
        per-column divisors
    b : npy.ndarray
        frequencies x rows x columns matrix of voltages entering the VNA
    column_system : bool
        divide each column of b by its own entry of a

    Returns
    -------
    m : npy.ndarray
    '''
    a = npy.asarray(a, dtype=complex)
    b = npy.asarray(b, dtype=complex)
    columns = b.shape[-1]
    rows = 1 if column_system else columns
    if a.shape != (b.shape[0], rows, columns):
        raise InvalidDimensions("'a' matrix must be %d x %d" %
                                (rows, columns), standard_index=standard_index)
    m = npy.empty_like(b)
    for findex in range(b.shape[0]):
        if column_system:
            if npy.any(a[findex, 0] == 0.0):
                raise SingularMatrix("'a' matrix is singular",
                                     frequency_index=findex,
                                     standard_index=standard_index)
            m[findex] = b[findex] / a[findex, 0]
        else:
            m[findex], det = mrdivide(b[findex], a[findex])
            if det == 0.0:
                raise SingularMatrix("'a' matrix is singular",
                                     frequency_index=findex,
                                     standard_index=standard_index)
    return m


class MeasuredStandard(object):
    '''
    Calibration standard together with its measurements.

    Parameters
    ----------
    layout : :class:`~vnacal.calibration.layout.Layout`
        layout used to solve the calibration
    m : npy.ndarray
        frequencies x m_rows x m_columns measurement matrix
    s : array_like
        s_rows x s_columns matrix of parameters (or numbers) describing
        the standard
    port_map : sequence of int, optional
        VNA port (1-based) attached to each port of the standard;
        required if `s` is smaller than the calibration
    index : int
        sequence number of the standard, used in error messages

    Attributes
    ----------
    s_cells : npy.ndarray
        full s_rows x s_columns object array; each cell holds a
        :class:`~vnacal.calibration.parameter.Parameter`, or None if
        the value is not known
    reachable : npy.ndarray
        boolean matrix, True where a signal path may exist between
        ports through the standard
    row_given, column_given : npy.ndarray
        rows and columns of the full S matrix completely described by `s`
    '''
    def __init__(self, layout, m, s, port_map=None, index=0):
        self.layout = layout
        self.index = index
        full_rows, full_columns = layout.s_rows, layout.s_columns
        full_ports = max(full_rows, full_columns)

        s = npy.array(s, dtype=object)
        if s.ndim != 2:
            raise InvalidDimensions('s must be a matrix', standard_index=index)
        s_rows, s_columns = s.shape
        s_ports = max(s_rows, s_columns)
        if not 1 <= s_rows <= full_rows:
            raise InvalidDimensions('invalid s_rows value: %d' % s_rows,
                                    standard_index=index)
        if not 1 <= s_columns <= full_columns:
            raise InvalidDimensions('invalid s_columns value: %d' % s_columns,
                                    standard_index=index)

        # In T parameters each given S column must be complete; in U
        # parameters each given S row.
        if layout.is_t and s_rows < s_columns and s_rows != full_rows:
            raise InvalidDimensions('s_rows cannot be less than %d' %
                                    min(s_columns, full_rows),
                                    standard_index=index)
        if layout.is_u and s_columns < s_rows and s_columns != full_columns:
            raise InvalidDimensions('s_columns cannot be less than %d' %
                                    min(s_rows, full_columns),
                                    standard_index=index)

        if port_map is None:
            if s_rows != full_rows or s_columns != full_columns:
                raise InvalidDimensions(
                    'port map is required when the given S matrix is '
                    'smaller than that of the calibration',
                    standard_index=index)
            port_map = list(range(1, full_ports + 1))
        else:
            port_map = [int(p) for p in port_map]
            if len(port_map) != s_ports:
                raise InvalidDimensions('port map must have %d entries' %
                                        s_ports, standard_index=index)
            for p in port_map:
                if not 1 <= p <= full_ports:
                    raise InvalidDimensions('%d: invalid port index' % p,
                                            standard_index=index)
            if len(set(port_map)) != len(port_map):
                raise InvalidDimensions('port map contains duplicate ports',
                                        standard_index=index)
        self.port_map = port_map

        m = npy.asarray(m, dtype=complex)
        if m.ndim == 2:
            m = m[npy.newaxis]
        if m.ndim != 3 or m.shape[1:] != (layout.m_rows, layout.m_columns):
            raise InvalidDimensions('m must be frequencies x %d x %d' %
                                    (layout.m_rows, layout.m_columns),
                                    standard_index=index)
        self.m = m

        # Place s into the full matrix. Cells between ports connected to
        # the standard and ports that aren't are known to be zero; all
        # other cells not given are unknown.
        connected = npy.zeros(full_ports, dtype=bool)
        connected[[p - 1 for p in port_map]] = True
        self.port_connected = connected
        cells = npy.full((full_rows, full_columns), None, dtype=object)
        for r in range(full_rows):
            for c in range(full_columns):
                if connected[r] != connected[c]:
                    cells[r, c] = ZERO
        self.row_given = npy.zeros(full_rows, dtype=bool)
        self.column_given = npy.zeros(full_columns, dtype=bool)
        for i in range(s_rows):
            r = port_map[i] - 1
            self.row_given[r] = True
            for j in range(s_columns):
                c = port_map[j] - 1
                self.column_given[c] = True
                cells[r, c] = as_parameter(s[i, j])
        self.s_cells = cells
        self._check_standard_cells()

        self.reachable = self._reachability()
        if layout.cal_type.is_full:
            self.connectivity = npy.ones_like(self.reachable)
        else:
            self.connectivity = self.reachable | npy.eye(full_rows, dtype=bool)

    def __repr__(self):
        return 'MeasuredStandard(index=%d, port_map=%r)' % (self.index,
                                                          self.port_map)

    def _check_standard_cells(self):
        '''
        Check that the cells of multi-cell standards are placed
        consistently: diagonal cells on the diagonal, each port of the
        standard on exactly one VNA port, every port present, and no
        other non-zero parameters sharing their rows and columns.
        '''
        cells = self.s_cells
        port_of = {}
        standards = {}
        for (r, c), cell in npy.ndenumerate(cells):
            if not isinstance(cell, StandardParameter):
                continue
            standard = cell.standard
            key = id(cell.placement)
            if (r == c) != (cell.row == cell.column):
                raise ValueError(
                    'standard %d: cell (%d, %d) of %r placed at (%d, %d); '
                    'diagonal cells must lie on the diagonal' %
                    (self.index, cell.row + 1, cell.column + 1, standard,
                     r + 1, c + 1))
            standards[key] = standard
            for port, standard_port in ((r, cell.row), (c, cell.column)):
                if port_of.setdefault((key, standard_port), port) != port:
                    raise ValueError(
                        'standard %d: port %d of %r is placed on more than '
                        'one VNA port' % (self.index, standard_port + 1,
                                          standard))
        owner = {}
        for (key, standard_port), port in port_of.items():
            if owner.setdefault(port, key) != key:
                raise ValueError('standard %d: VNA port %d holds more than '
                                 'one standard port' % (self.index, port + 1))
        for key, standard in standards.items():
            missing = [k + 1 for k in range(standard.ports)
                       if (key, k) not in port_of]
            if missing:
                raise ValueError('standard %d: port %d of %r is not placed' %
                                 (self.index, missing[0], standard))
        for (r, c), cell in npy.ndenumerate(cells):
            if cell is None or cell.is_zero:
                continue
            for port in (r, c):
                if port not in owner:
                    continue
                if not isinstance(cell, StandardParameter) or \
                        id(cell.placement) != owner[port]:
                    raise ValueError(
                        'standard %d: cell (%d, %d) mixes %r with other '
                        'parameters' % (self.index, r + 1, c + 1,
                                        standards[owner[port]]))

    def _reachability(self):
        '''
        Transitive closure (Floyd-Warshall) of the non-zero cells of S.

        A cell is reachable unless it can be proven that the standard
        has no signal path between its ports.
        '''
        cells = self.s_cells
        matrix = npy.array([[cell is None or not cell.is_zero
                             for cell in row] for row in cells], dtype=bool)
        for i in range(min(matrix.shape)):
            matrix |= npy.outer(matrix[:, i], matrix[i, :])
        return matrix

    @property
    def frequencies(self):
        return self.m.shape[0]

    def parameters(self):
        '''
        Distinct parameters used by the standard, in row-major order.
        '''
        seen = []
        for cell in self.s_cells.flat:
            if cell is not None and not any(cell is p for p in seen):
                seen.append(cell)
        return seen

    def equation_cells(self, system=0):
        '''
        Cells (row, column) of the equations this standard adds to a
        linear system.

        T types give one equation per measurement row and given S
        column, U types one per given S row and measurement column,
        UE14 one per given S row in the column of the system. Off
        diagonal cells without a signal path are left to the leakage
        terms, except in T16 and U16 where leakage is part of the
        linear system.
        '''
        layout = self.layout
        if layout.cal_type is CalType.UE14:
            cells = [(r, system) for r in range(layout.s_rows)
                     if self.row_given[r]]
        elif layout.is_t:
            cells = [(r, c) for r in range(layout.m_rows)
                     for c in range(layout.s_columns) if self.column_given[c]]
        else:
            cells = [(r, c) for r in range(layout.s_rows)
                     if self.row_given[r] for c in range(layout.m_columns)]
        if not layout.cal_type.is_full:
            cells = [(r, c) for r, c in cells
                     if r == c or self.reachable[r, c]]
        return cells

    def leakage_cells(self):
        '''
        Off-diagonal measurement cells without a signal path through
        the standard.
        '''
        layout = self.layout
        return [(r, c) for r in range(layout.m_rows)
                for c in range(layout.m_columns)
                if r != c and not self.reachable[r, c]]

    def v_mask(self):
        '''
        Cells of the V matrix that may combine equations.

        Only equations of given S columns (T) or rows (U) that share a
        signal path are combined.
        '''
        if self.layout.is_t:
            return self.connectivity & self.column_given[:, npy.newaxis]
        return self.connectivity & self.row_given[npy.newaxis, :]

    def s_matrix(self, known, unknown_values):
        '''
        Numeric S matrix at one frequency.

        Parameters
        ----------
        known : dict
            maps id() of each known parameter to its value
        unknown_values : dict
            maps id() of each unknown parameter to its current estimate

        Returns
        -------
        s : npy.ndarray
            complex matrix; cells not given are zero
        '''
        layout = self.layout
        s = npy.zeros((layout.s_rows, layout.s_columns), dtype=complex)
        for (r, c), cell in npy.ndenumerate(self.s_cells):
            if cell is None or cell.is_zero:
                continue
            if cell.is_unknown:
                s[r, c] = unknown_values[id(cell)]
            else:
                s[r, c] = known[id(cell)]
        return s

    def indicator(self, parameter):
        '''
        Matrix with ones in the cells holding `parameter`.
        '''
        return npy.array([[1.0 if cell is parameter else 0.0 for cell in row]
                          for row in self.s_cells], dtype=complex)
