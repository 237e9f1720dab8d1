'''
.. module:: vnacal.calibration.calibration
================================================================
calibration (:mod:`vnacal.calibration.calibration`)
================================================================

Solved calibrations, conversion between error term types, and
correction of measurements.

.. autosummary::
   :toctree: generated/

   Calibration
   convert_ue14_to_e12
   convert_e12_to_ue14
   convert_t_to_u
   convert_u_to_t

'''
import logging

import numpy as npy

from ..constants import F_EXTRAPOLATION, Z0_DEFAULT
from ..mathFunctions import interpolate_vector, minverse, qrsolve, rsolve
from .exceptions import InvalidDimensions, NotEnoughStandards, SingularMatrix
from .layout import CalType, Layout

logger = logging.getLogger(__name__)


def _store(layout, name, terms, matrix, system=0):
    '''
    Store the entries of a block matrix into an error term array.
    '''
    b = layout.block(name, system)
    rows, columns = zip(*b.entries)
    terms[..., b.offset:b.offset + len(b.entries)] = \
        matrix[..., list(rows), list(columns)]


def _column_terms(layout, terms, c):
    '''
    Diagonal um and ux vectors and scalar ui and us of a UE14 column.
    '''
    um = npy.diagonal(layout.block_matrix('um', terms, c), axis1=-2, axis2=-1)
    ux = npy.diagonal(layout.block_matrix('ux', terms, c), axis1=-2, axis2=-1)
    ui = layout.block_matrix('ui', terms, c)[..., c, c]
    us = layout.block_matrix('us', terms, c)[..., c, c]
    return um, ui, ux, us


def convert_ue14_to_e12(layout, terms):
    '''
    Convert UE14 error terms to classic 12-term (E12) error terms.

    For each column c::

        el[c] = -ui / um[c]
        er[r] = (us - ui ux[c] / um[c]) / um[r]
        em[r] = ux[r] / um[r]

    and the off-diagonal el[r] are the UE14 leakage terms.

    Parameters
    ----------
    layout : :class:`~vnacal.calibration.layout.Layout`
        UE14 layout
    terms : npy.ndarray
        frequencies x error_terms array

    Returns
    -------
    e12_layout : :class:`~vnacal.calibration.layout.Layout`
    e12_terms : npy.ndarray

    Raises
    ------
    SingularMatrix
        if a diagonal um term is zero
    '''
    if layout.cal_type is not CalType.UE14:
        raise ValueError('expected a UE14 layout, got %s' %
                         layout.cal_type.name)
    terms = npy.asarray(terms, dtype=complex)
    e12 = Layout(CalType.E12, layout.m_rows, layout.m_columns)
    out = npy.zeros(terms.shape[:-1] + (e12.error_terms,), dtype=complex)
    leakage = layout.leakage_matrix(terms)
    for c in range(layout.m_columns):
        um, ui, ux, us = _column_terms(layout, terms, c)
        if npy.any(um == 0.0):
            raise SingularMatrix('um term is zero in column %d' % (c + 1))
        n = us - ui * ux[..., c] / um[..., c]
        el = leakage[..., :, c].copy()
        el[..., c] = -ui / um[..., c]
        er = n[..., npy.newaxis] / um
        em = ux / um
        for name, values in (('el', el), ('er', er), ('em', em)):
            start = e12.block(name, c).offset
            out[..., start:start + layout.m_rows] = values
    return e12, out


def convert_e12_to_ue14(layout, terms):
    '''
    Convert E12 error terms to UE14, normalizing um[c] of each column
    to one.

    Raises
    ------
    SingularMatrix
        if an er term is zero
    '''
    if layout.cal_type is not CalType.E12:
        raise ValueError('expected an E12 layout, got %s' %
                         layout.cal_type.name)
    terms = npy.asarray(terms, dtype=complex)
    ue14 = layout.solve_layout()
    out = npy.zeros(terms.shape[:-1] + (ue14.error_terms,), dtype=complex)
    rows = layout.m_rows
    for c in range(layout.m_columns):
        el, er, em = (terms[..., layout.block(name, c).offset:
                            layout.block(name, c).offset + rows]
                      for name in ('el', 'er', 'em'))
        if npy.any(er == 0.0):
            raise SingularMatrix('er term is zero in column %d' % (c + 1))
        um = er[..., c:c + 1] / er
        ux = em * um
        ui = -el[..., c]
        us = er[..., c] - el[..., c] * em[..., c]
        start = ue14.block('um', c).offset
        out[..., start:start + rows] = um
        out[..., ue14.block('ui', c).offset] = ui
        start = ue14.block('ux', c).offset
        out[..., start:start + rows] = ux
        out[..., ue14.block('us', c).offset] = us
    leakage = layout.leakage_matrix(terms)
    for (r, c), k in ue14.leakage_map().items():
        out[..., ue14.leakage_offset + k] = leakage[..., r, c]
    return ue14, out


_T_TO_U = {CalType.T8: CalType.U8, CalType.TE10: CalType.UE10,
           CalType.T16: CalType.U16}
_U_TO_T = dict((u, t) for t, u in _T_TO_U.items())


def _invert_blocks(layout, terms, names, target, new_names, unity):
    if layout.m_rows != layout.m_columns:
        raise InvalidDimensions('conversion requires a square calibration')
    n = layout.m_rows
    terms = npy.asarray(terms, dtype=complex)
    p11, p12, p21, p22 = (layout.block_matrix(name, terms) for name in names)
    shape = terms.shape[:-1]
    big = npy.zeros(shape + (2 * n, 2 * n), dtype=complex)
    big[..., :n, :n] = p11
    big[..., :n, n:] = p12
    big[..., n:, :n] = p21
    big[..., n:, n:] = p22
    flat = big.reshape((-1, 2 * n, 2 * n))
    inverse = npy.empty_like(flat)
    for k in range(flat.shape[0]):
        result, det = minverse(flat[k])
        if result is None:
            raise SingularMatrix('error term matrix is singular',
                                 frequency_index=k)
        inverse[k] = result
    inverse = inverse.reshape(big.shape)
    scale = inverse[..., unity[0], unity[1]]
    if npy.any(scale == 0.0):
        raise SingularMatrix('unity term of the converted terms is zero')
    inverse = inverse / scale[..., npy.newaxis, npy.newaxis]

    new_layout = Layout(target, layout.m_rows, layout.m_columns)
    out = npy.zeros(shape + (new_layout.error_terms,), dtype=complex)
    _store(new_layout, new_names[0], out, inverse[..., :n, :n])
    _store(new_layout, new_names[1], out, inverse[..., :n, n:])
    _store(new_layout, new_names[2], out, inverse[..., n:, :n])
    _store(new_layout, new_names[3], out, inverse[..., n:, n:])
    if layout.leakage_terms:
        start, stop = layout.leakage_offset, layout.error_terms
        out[..., new_layout.leakage_offset:] = terms[..., start:stop]
    return new_layout, out


def convert_t_to_u(layout, terms):
    '''
    Convert T8, TE10 or T16 error terms to U8, UE10 or U16.

    The U terms are the block matrix inverse ``[[Um, Ui], [Ux, Us]] =
    [[Ts, Ti], [Tx, Tm]]^-1`` normalized so that um11 is one. Leakage
    terms are carried over. Only square calibrations can be converted.
    '''
    if layout.cal_type not in _T_TO_U:
        raise ValueError('cannot convert %s to U terms' % layout.cal_type.name)
    return _invert_blocks(layout, terms, ('ts', 'ti', 'tx', 'tm'),
                          _T_TO_U[layout.cal_type], ('um', 'ui', 'ux', 'us'),
                          (0, 0))


def convert_u_to_t(layout, terms):
    '''
    Convert U8, UE10 or U16 error terms to T8, TE10 or T16.

    Inverse of :func:`convert_t_to_u`, normalized so that tm11 is one.
    '''
    if layout.cal_type not in _U_TO_T:
        raise ValueError('cannot convert %s to T terms' % layout.cal_type.name)
    n = layout.m_rows
    return _invert_blocks(layout, terms, ('um', 'ui', 'ux', 'us'),
                          _U_TO_T[layout.cal_type], ('ts', 'ti', 'tx', 'tm'),
                          (n, n))


def _port_map(port_map, dut_ports, vna_ports):
    '''
    Return a VNA port -> DUT port index vector (-1 where unattached).
    '''
    if port_map is None:
        if dut_ports is None:
            dut_ports = vna_ports
        port_map = list(range(1, dut_ports + 1))
    port_map = [int(p) for p in port_map]
    if dut_ports is None:
        dut_ports = len(port_map)
    if len(port_map) != dut_ports:
        raise InvalidDimensions('port map must have %d entries' % dut_ports)
    if len(set(port_map)) != len(port_map):
        raise InvalidDimensions('port map contains duplicate ports')
    vna_to_dut = -npy.ones(vna_ports, dtype=int)
    for d, p in enumerate(port_map):
        if not 1 <= p <= vna_ports:
            raise InvalidDimensions('%d: invalid port index' % p)
        vna_to_dut[p - 1] = d
    return vna_to_dut, dut_ports


class Calibration(object):
    '''
    Solved calibration: error terms at each calibration frequency.

    Parameters
    ----------
    layout : :class:`~vnacal.calibration.layout.Layout`
        layout of the error terms
    frequency_vector : array_like
        ascending calibration frequencies in Hz
    error_terms : npy.ndarray
        frequencies x layout.error_terms array of error terms
    z0 : float
        reference impedance of the calibration
    name : str, optional
        name of the calibration

    Examples
    --------
    Given a solved calibration, correct a measured DUT:

    >>> s = calibration.apply(m)

    See Also
    --------
    vnacal.calibration.solver.Solver
    '''
    def __init__(self, layout, frequency_vector, error_terms, z0=Z0_DEFAULT,
                 name=None):
        self.layout = layout
        self.frequency_vector = npy.asarray(frequency_vector, dtype=float)
        self.error_terms = npy.asarray(error_terms, dtype=complex)
        if self.error_terms.shape != (len(self.frequency_vector),
                                      layout.error_terms):
            raise InvalidDimensions('error_terms must be %d x %d' %
                                    (len(self.frequency_vector),
                                     layout.error_terms))
        self.z0 = z0
        self.name = name

    def __repr__(self):
        return 'Calibration(%s %dx%d, %d frequencies%s)' % (
            self.cal_type.name, self.layout.m_rows, self.layout.m_columns,
            len(self.frequency_vector),
            '' if self.name is None else ', name=%r' % self.name)

    @property
    def cal_type(self):
        return self.layout.cal_type

    @property
    def frequencies(self):
        return len(self.frequency_vector)

    def get_error_terms(self, name, system=None):
        '''
        Error terms of one block as matrices.

        Parameters
        ----------
        name : str
            block name ('ts', 'um', 'el', 'er', ...); 'el' gives the
            m_rows x m_columns leakage matrix
        system : int, optional
            column system (required for the UE14 per-column blocks)

        Returns
        -------
        terms : npy.ndarray
            frequencies x rows x columns
        '''
        layout = self.layout
        if name == 'el' and layout.cal_type is not CalType.E12:
            return layout.leakage_matrix(self.error_terms)
        if system is not None or layout.systems == 1:
            return layout.block_matrix(name, self.error_terms, system or 0)
        if layout.cal_type is CalType.E12:
            return sum(layout.block_matrix(name, self.error_terms, c)
                       for c in range(layout.systems))
        raise ValueError('%s block of %s requires a system index' %
                         (name, layout.cal_type.name))

    def terms_at(self, frequency_vector=None):
        '''
        Error terms at the given frequencies.

        Error terms are interpolated between calibration frequencies;
        extrapolating by more than one percent beyond the calibration
        range is an error.
        '''
        if frequency_vector is None:
            return self.error_terms
        frequency_vector = npy.atleast_1d(npy.asarray(frequency_vector,
                                                      dtype=float))
        fmin = self.frequency_vector[0] * (1.0 - F_EXTRAPOLATION)
        fmax = self.frequency_vector[-1] * (1.0 + F_EXTRAPOLATION)
        if npy.any(frequency_vector < fmin) or \
                npy.any(frequency_vector > fmax):
            raise ValueError('frequency out of calibration range [%e, %e]' %
                             (self.frequency_vector[0],
                              self.frequency_vector[-1]))
        if npy.array_equal(frequency_vector, self.frequency_vector):
            return self.error_terms
        return interpolate_vector(self.frequency_vector, self.error_terms,
                                  frequency_vector)

    def _check_m(self, m, terms):
        m = npy.asarray(m, dtype=complex)
        if m.ndim == 2:
            m = m[npy.newaxis]
        shape = (terms.shape[0], self.layout.m_rows, self.layout.m_columns)
        if m.shape != shape:
            raise InvalidDimensions('m must be %d x %d x %d' % shape)
        return m

    def evaluate(self, s, frequency_vector=None):
        '''
        Measurement a DUT with the given S-parameters would produce.

        Parameters
        ----------
        s : npy.ndarray
            frequencies x s_rows x s_columns (or a single matrix used at
            every frequency), in the port space of the VNA
        frequency_vector : array_like, optional
            frequencies of s; default is the calibration frequencies

        Returns
        -------
        m : npy.ndarray
            frequencies x m_rows x m_columns
        '''
        layout = self.layout
        terms = self.terms_at(frequency_vector)
        frequencies = terms.shape[0]
        s = npy.asarray(s, dtype=complex)
        if s.ndim == 2:
            s = npy.broadcast_to(s, (frequencies,) + s.shape)
        if s.shape != (frequencies, layout.s_rows, layout.s_columns):
            raise InvalidDimensions('s must be %d x %d x %d' %
                                    (frequencies, layout.s_rows,
                                     layout.s_columns))
        cal_type = layout.cal_type
        block = layout.block_matrix
        if layout.is_t:
            m = rsolve(block('tx', terms) @ s + block('tm', terms),
                       block('ts', terms) @ s + block('ti', terms))
        elif cal_type in (CalType.U8, CalType.UE10, CalType.U16):
            m = npy.linalg.solve(block('um', terms) - s @ block('ux', terms),
                                 s @ block('us', terms) - block('ui', terms))
        elif cal_type is CalType.UE14:
            m = npy.zeros((frequencies, layout.m_rows, layout.m_columns),
                          dtype=complex)
            for c in range(layout.m_columns):
                um, ui, ux, us = _column_terms(layout, terms, c)
                rhs = s[..., :, c] * us[..., npy.newaxis]
                rhs[..., c] -= ui
                a = npy.eye(layout.m_rows) * um[..., npy.newaxis, :] - \
                    s * ux[..., npy.newaxis, :]
                m[..., :, c] = npy.linalg.solve(a, rhs[..., npy.newaxis])[..., 0]
        else:
            m = npy.zeros((frequencies, layout.m_rows, layout.m_columns),
                          dtype=complex)
            identity = npy.eye(layout.m_rows)
            for c in range(layout.m_columns):
                el, er, em = (block(name, terms, c)[..., :, c]
                              for name in ('el', 'er', 'em'))
                a = identity - s * em[..., npy.newaxis, :]
                x = npy.linalg.solve(a, s[..., :, c:c + 1])[..., 0]
                m[..., :, c] = er * x
                m[..., c, c] += el[..., c]
        return m + layout.leakage_matrix(terms)

    def apply(self, m, port_map=None, dut_ports=None, frequency_vector=None):
        '''
        Correct a measurement, returning the S-parameters of the DUT.

        Parameters
        ----------
        m : npy.ndarray
            frequencies x m_rows x m_columns measurement matrix
        port_map : sequence of int, optional
            VNA port (1-based) attached to each DUT port; default maps
            DUT port i to VNA port i
        dut_ports : int, optional
            number of DUT ports; default is the length of the port map,
            or the number of VNA ports
        frequency_vector : array_like, optional
            frequencies of m; default is the calibration frequencies

        Returns
        -------
        s : npy.ndarray
            frequencies x dut_ports x dut_ports

        Raises
        ------
        NotEnoughStandards
            if the measurement doesn't determine every DUT S-parameter,
            e.g. a two port DUT measured on a VNA with one detector
        '''
        return self.apply_many([m], [port_map], dut_ports=dut_ports,
                               frequency_vector=frequency_vector)

    def apply_many(self, measurements, maps, dut_ports=None,
                   frequency_vector=None):
        '''
        Correct several measurements of the same DUT made through
        different port maps, solving for the DUT S-parameters in the
        least squares sense.

        Parameters
        ----------
        measurements : sequence of npy.ndarray
            measurement matrices, see :meth:`apply`
        maps : sequence
            port map of each measurement (None for the default map)

        Returns
        -------
        s : npy.ndarray
            frequencies x dut_ports x dut_ports
        '''
        layout = self.layout
        if len(measurements) != len(maps):
            raise ValueError('need one port map per measurement')
        if len(measurements) == 0:
            raise ValueError('no measurements given')
        terms = self.terms_at(frequency_vector)
        if dut_ports is None:
            lengths = set(len(p) for p in maps if p is not None)
            dut_ports = max(lengths) if lengths else layout.s_rows
        vna_ports = layout.s_rows
        port_maps = [_port_map(p, dut_ports, vna_ports)[0] for p in maps]
        ms = [self._check_m(m, terms) for m in measurements]
        leakage = layout.leakage_matrix(terms)
        n = dut_ports
        s = npy.empty((terms.shape[0], n, n), dtype=complex)
        for findex in range(terms.shape[0]):
            a_rows, b_rows = [], []
            for m, vna_to_dut in zip(ms, port_maps):
                a, b = self._equations(terms[findex],
                                       m[findex] - leakage[findex],
                                       m[findex], vna_to_dut, n)
                a_rows.append(a)
                b_rows.append(b)
            a = npy.vstack(a_rows)
            b = npy.concatenate(b_rows)
            x = None
            if a.shape[0] >= n * n:
                x, rank = qrsolve(a, b)
            if x is None:
                raise NotEnoughStandards(
                    'measurements do not determine the DUT S-parameters',
                    frequency_index=findex)
            s[findex] = x.reshape(n, n)
        logger.debug('applied %s calibration to %d measurement(s)',
                     layout.cal_type.name, len(ms))
        return s

    def _equations(self, terms, m, raw_m, vna_to_dut, n):
        '''
        Linear equations in the DUT S-parameters (row-major) given by
        one measurement at one frequency.
        '''
        layout = self.layout
        block = layout.block_matrix
        mapped = npy.flatnonzero(vna_to_dut >= 0)
        a_rows, b_rows = [], []

        def add(coefficients, rhs):
            row = npy.zeros(n * n, dtype=complex)
            for index, value in coefficients:
                row[index] += value
            a_rows.append(row)
            b_rows.append(rhs)

        if layout.is_t:
            # (M Tx - Ts) S = Ti - M Tm, one column of S at a time
            k = m @ block('tx', terms) - block('ts', terms)
            rhs = block('ti', terms) - m @ block('tm', terms)
            for c in mapped:
                for r in range(layout.m_rows):
                    add([(vna_to_dut[i] * n + vna_to_dut[c], k[r, i])
                         for i in mapped], rhs[r, c])
        elif layout.cal_type in (CalType.U8, CalType.UE10, CalType.U16):
            # S (Ux M + Us) = Um M + Ui, one row of S at a time
            g = block('ux', terms) @ m + block('us', terms)
            rhs = block('um', terms) @ m + block('ui', terms)
            for r in mapped:
                for j in range(layout.m_columns):
                    add([(vna_to_dut[r] * n + vna_to_dut[k], g[k, j])
                         for k in mapped], rhs[r, j])
        elif layout.cal_type is CalType.UE14:
            for c in range(layout.m_columns):
                um, ui, ux, us = _column_terms(layout, terms, c)
                g = ux * m[:, c]
                g[c] += us
                for r in mapped:
                    add([(vna_to_dut[r] * n + vna_to_dut[k], g[k])
                         for k in mapped],
                        um[r] * m[r, c] + (ui if r == c else 0.0))
        else:
            # S_rc + sum_k em_k x_k S_rk = x_r, x_k = (m_kc - el_k) / er_k
            for c in range(layout.m_columns):
                el, er, em = (block(name, terms, c)[:, c]
                              for name in ('el', 'er', 'em'))
                x = (raw_m[:, c] - el) / er
                for r in mapped:
                    coefficients = [(vna_to_dut[r] * n + vna_to_dut[k],
                                     em[k] * x[k]) for k in mapped]
                    if vna_to_dut[c] >= 0:
                        coefficients.append(
                            (vna_to_dut[r] * n + vna_to_dut[c], 1.0))
                    add(coefficients, x[r])
        if not a_rows:
            return npy.zeros((0, n * n), dtype=complex), \
                npy.zeros(0, dtype=complex)
        return npy.array(a_rows), npy.array(b_rows)

    def convert(self, cal_type):
        '''
        Return the calibration converted to another error term type.

        Supported conversions are UE14 <-> E12 and, for square
        calibrations, T8 <-> U8, TE10 <-> UE10 and T16 <-> U16.
        '''
        target = CalType.from_name(cal_type)
        source = self.cal_type
        if target is source:
            return self
        if source is CalType.UE14 and target is CalType.E12:
            layout, terms = convert_ue14_to_e12(self.layout, self.error_terms)
        elif source is CalType.E12 and target is CalType.UE14:
            layout, terms = convert_e12_to_ue14(self.layout, self.error_terms)
        elif _T_TO_U.get(source) is target:
            layout, terms = convert_t_to_u(self.layout, self.error_terms)
        elif _U_TO_T.get(source) is target:
            layout, terms = convert_u_to_t(self.layout, self.error_terms)
        else:
            raise ValueError('cannot convert %s to %s' % (source.name,
                                                          target.name))
        return Calibration(layout, self.frequency_vector, terms, self.z0,
                           self.name)
