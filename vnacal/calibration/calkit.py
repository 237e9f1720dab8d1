'''
.. module:: vnacal.calibration.calkit
================================================================
calkit (:mod:`vnacal.calibration.calkit`)
================================================================

Standards described by their construction or by measured data.

A calibration kit describes each standard by an offset transmission
line terminated in a short, open or load, or by a through line joining
two ports. Its S-parameters depend on the reference impedance of the
calibration, so they are evaluated by the solver rather than given as
numbers.

A data standard holds the tabulated S matrix of a standard at a given
reference impedance; it's interpolated to the calibration frequencies
and renormalized to the calibration reference impedance.

The S matrix of a standard is placed in a measured standard as a matrix
of :class:`~vnacal.calibration.parameter.StandardParameter` cells:

>>> through = CalkitThrough(offset_delay=50e-12)
>>> solver.add_mapped_matrix(m_through, through.parameter_matrix(), [1, 2])
>>> short = CalkitShort(l_coefficients=(2e-12,))
>>> solver.add_single_reflect(m_short, short.parameter(), 1)

.. autosummary::
   :toctree: generated/

   Standard
   CalkitShort
   CalkitOpen
   CalkitLoad
   CalkitThrough
   DataStandard

'''
import numpy as npy

from ..constants import Z0_DEFAULT
from ..mathFunctions import (fix_z0_shape, interpolate_vector,
                             renormalize_s)
from .parameter import (StandardParameter, _check_frequency_range,
                        _check_frequency_vector)

# reference impedances closer than this aren't renormalized
Z0_TOLERANCE = 1e-5


class Standard(object):
    '''
    Base class of standards with an S matrix of their own.

    Parameters
    ----------
    ports : int
    name : str, optional
    '''
    def __init__(self, ports, name=None):
        self.ports = ports
        self.name = name

    def __repr__(self):
        name = '' if self.name is None else ' %s' % self.name
        return '%s(%d port%s)' % (self.__class__.__name__, self.ports, name)

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        '''
        S matrix of the standard at each frequency.

        Parameters
        ----------
        frequency_vector : npy.ndarray
            frequencies in Hz
        z0 : complex or array_like
            reference impedance, one value or one per port

        Returns
        -------
        s : npy.ndarray
            frequencies x ports x ports
        '''
        raise NotImplementedError

    def parameter_matrix(self):
        '''
        ports x ports matrix of parameters describing the standard.

        The cells of one matrix must be placed together in a single
        measured standard; call again for each placement.
        '''
        placement = object()
        matrix = npy.empty((self.ports, self.ports), dtype=object)
        for r in range(self.ports):
            for c in range(self.ports):
                matrix[r, c] = StandardParameter(self, r, c, placement)
        return matrix

    def parameter(self):
        '''
        The parameter of a one port standard, placed on its own.
        '''
        if self.ports != 1:
            raise ValueError('%r is not a one port standard; use '
                             'parameter_matrix()' % (self,))
        return StandardParameter(self, 0, 0, object())

    def _port_z0(self, z0, frequencies):
        return fix_z0_shape(z0, frequencies, self.ports)


class CalkitStandard(Standard):
    '''
    Standard at the end of an offset transmission line.

    The line follows the Keysight model: delay, loss and characteristic
    impedance are given for the lossless line, and the loss, in ohms per
    second at 1 GHz, grows with the square root of frequency.

    Parameters
    ----------
    offset_delay : float
        one way delay of the offset line in seconds
    offset_loss : float
        offset loss in ohms per second at 1 GHz
    offset_z0 : float
        characteristic impedance of the lossless offset line
    traditional : bool
        use the traditional approximation of the lossy line rather than
        the revised model
    name : str, optional
    '''
    ports = 1

    def __init__(self, offset_delay=0.0, offset_loss=0.0,
                 offset_z0=Z0_DEFAULT, traditional=False, name=None):
        super(CalkitStandard, self).__init__(self.ports, name)
        if offset_z0 <= 0.0:
            raise ValueError('offset_z0 must be positive')
        if offset_delay < 0.0 or offset_loss < 0.0:
            raise ValueError('offset delay and loss must be non-negative')
        self.offset_delay = float(offset_delay)
        self.offset_loss = float(offset_loss)
        self.offset_z0 = float(offset_z0)
        self.traditional = traditional

    def _line(self, f):
        '''
        Propagation constant times length, and characteristic impedance
        of the offset line at each frequency.
        '''
        f = npy.asarray(f, dtype=float)
        w = 2.0 * npy.pi * f
        delay, loss, z0 = self.offset_delay, self.offset_loss, self.offset_z0
        nonzero = f > 0.0
        safe_f = npy.where(nonzero, f, 1.0)
        if self.traditional:
            root_f = npy.sqrt(f / 1.0e9)
            alpha_l = loss * delay * root_f / (2.0 * z0)
            gl = alpha_l + 1j * (w * delay + alpha_l)
            zc = z0 + npy.where(nonzero, (1.0 - 1.0j) * loss *
                                npy.sqrt(safe_f / 1.0e9) /
                                (2.0 * 2.0 * npy.pi * safe_f), 0.0)
        else:
            temp = npy.where(nonzero, npy.sqrt(
                1.0 + (1.0 - 1.0j) * loss /
                (2.0 * npy.pi * npy.sqrt(1.0e9 * safe_f) * z0) + 0j), 1.0)
            zc = z0 * temp
            gl = 1j * w * delay * temp
        return gl, zc

    def _termination(self, f):
        '''
        Numerator and denominator of the terminating impedance.
        '''
        raise NotImplementedError

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        frequency_vector = npy.asarray(frequency_vector, dtype=float)
        z0 = self._port_z0(z0, len(frequency_vector))[:, 0]
        gl, zc = self._line(frequency_vector)
        n, d = self._termination(frequency_vector)
        th = npy.tanh(gl)
        # input impedance zc (zl + zc th) / (zc + zl th) with zl = n / d
        zi_n = zc * (n + zc * th * d)
        zi_d = zc * d + n * th
        gamma = (zi_n - npy.conj(z0) * zi_d) / (zi_n + z0 * zi_d)
        return gamma.reshape(-1, 1, 1)


def _polynomial(coefficients, f):
    value = npy.zeros_like(f)
    for c in reversed(coefficients):
        value = value * f + c
    return value


class CalkitShort(CalkitStandard):
    '''
    Offset short.

    Parameters
    ----------
    l_coefficients : sequence of float
        inductance polynomial L0, L1, L2, L3 in henries, ``L = L0 + L1 f
        + L2 f^2 + L3 f^3``; missing coefficients are zero
    **kwargs :
        offset line, see :class:`CalkitStandard`
    '''
    def __init__(self, l_coefficients=(), **kwargs):
        super(CalkitShort, self).__init__(**kwargs)
        self.l_coefficients = tuple(float(c) for c in l_coefficients)

    def _termination(self, f):
        inductance = _polynomial(self.l_coefficients, f)
        return 2j * npy.pi * f * inductance, npy.ones_like(f, dtype=complex)


class CalkitOpen(CalkitStandard):
    '''
    Offset open.

    Parameters
    ----------
    c_coefficients : sequence of float
        fringing capacitance polynomial C0, C1, C2, C3 in farads
    **kwargs :
        offset line, see :class:`CalkitStandard`
    '''
    def __init__(self, c_coefficients=(), **kwargs):
        super(CalkitOpen, self).__init__(**kwargs)
        self.c_coefficients = tuple(float(c) for c in c_coefficients)

    def _termination(self, f):
        capacitance = _polynomial(self.c_coefficients, f)
        return npy.ones_like(f, dtype=complex), 2j * npy.pi * f * capacitance


class CalkitLoad(CalkitStandard):
    '''
    Offset load.

    Parameters
    ----------
    zl : complex
        load impedance
    **kwargs :
        offset line, see :class:`CalkitStandard`
    '''
    def __init__(self, zl=Z0_DEFAULT, **kwargs):
        super(CalkitLoad, self).__init__(**kwargs)
        self.zl = complex(zl)

    def _termination(self, f):
        return npy.full(len(f), self.zl, dtype=complex), \
            npy.ones_like(f, dtype=complex)


class CalkitThrough(CalkitStandard):
    '''
    Two port through: an offset line joining the two ports.

    Parameters
    ----------
    **kwargs :
        offset line, see :class:`CalkitStandard`
    '''
    ports = 2

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        frequency_vector = npy.asarray(frequency_vector, dtype=float)
        z0 = self._port_z0(z0, len(frequency_vector))
        z1, z2 = z0[:, 0], z0[:, 1]
        gl, zc = self._line(frequency_vector)
        p = npy.exp(-gl)
        p2 = p * p
        pp = 1.0 + p2
        mp = 1.0 - p2
        rt = npy.sqrt(npy.abs(z1.real / z2.real))
        d = pp * (z1 + z2) * zc + mp * (z1 * z2 + zc * zc)
        c = 4.0 * p * zc / d
        s = npy.empty((len(frequency_vector), 2, 2), dtype=complex)
        s[:, 0, 0] = ((pp * z2 + mp * zc) * zc -
                      (mp * z2 + pp * zc) * npy.conj(z1)) / d
        s[:, 0, 1] = c * z1.real / rt
        s[:, 1, 0] = c * z2.real * rt
        s[:, 1, 1] = ((pp * z1 + mp * zc) * zc -
                      (mp * z1 + pp * zc) * npy.conj(z2)) / d
        return s


class DataStandard(Standard):
    '''
    Standard given by its S matrix at a list of frequencies.

    Parameters
    ----------
    frequency_vector : array_like
        ascending frequencies in Hz
    data : array_like
        frequencies x ports x ports S matrices, or a vector for a one
        port standard
    z0 : complex or array_like
        reference impedance of the data: one value, one per port, one
        per frequency or frequencies x ports
    name : str, optional

    Raises
    ------
    ValueError
        if the shapes of data and z0 don't match the frequencies
    '''
    def __init__(self, frequency_vector, data, z0=Z0_DEFAULT, name=None):
        self.frequency_vector = _check_frequency_vector(frequency_vector)
        data = npy.asarray(data, dtype=complex)
        if data.ndim == 1:
            data = data.reshape(-1, 1, 1)
        if data.ndim != 3 or data.shape[1] != data.shape[2]:
            raise ValueError('data must be frequencies x ports x ports')
        if data.shape[0] != len(self.frequency_vector):
            raise ValueError('data must have one matrix per frequency')
        super(DataStandard, self).__init__(data.shape[1], name)
        self.data = data
        self.z0 = fix_z0_shape(z0, len(self.frequency_vector), self.ports)

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        frequency_vector = npy.asarray(frequency_vector, dtype=float)
        _check_frequency_range(self.frequency_vector, frequency_vector,
                               'data standard')
        s = interpolate_vector(self.frequency_vector, self.data,
                               frequency_vector)
        z_data = interpolate_vector(self.frequency_vector, self.z0,
                                    frequency_vector)
        z_new = self._port_z0(z0, len(frequency_vector))
        if npy.any(npy.abs(z_data - z_new) > Z0_TOLERANCE):
            s = renormalize_s(s, z_data, z_new)
        return s
